"""Rule engine service — records driving events and evaluates alert rules.

Consumes JSON driving events from Kafka, records each one in the event store
and fires an immediate evaluation after every successful insert.  A
background scheduler re-evaluates every rule on a fixed interval as well,
whether or not events are arriving.  Alerts land in the alert store.

Usage:
    python -m rule_engine.main
    python -m rule_engine.main --store memory --log-format json
    python -m rule_engine.main --bootstrap-servers kafka-1:29092 \\
        --mongo-uri mongodb://mongo:27017/DriverList --rules rules.yml
"""

import argparse
import json
import os
import signal
from datetime import timedelta

import structlog
from confluent_kafka import Consumer, KafkaError
from prometheus_client import start_http_server

from rule_engine.engine import EvaluationCycle
from rule_engine.log_config import configure_logging
from rule_engine.models import DrivingEvent
from rule_engine.recorder import EventRecorder
from rule_engine.rules.loader import DEFAULT_RULES_PATH, load_catalog
from rule_engine.scheduler import DEFAULT_MAX_PENDING, Scheduler
from rule_engine.stores import StoreError

log = structlog.get_logger(__name__)

DEFAULT_MONGO_URI = "mongodb://localhost:27017/DriverList"

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down rule engine...")
    running = False


def _build_stores(args):
    """Return (event_store, alert_store, client) for --store.

    client is the MongoClient to close on shutdown, None for memory stores.
    """
    if args.store == "memory":
        from rule_engine.stores.memory import InMemoryAlertStore, InMemoryEventStore
        return InMemoryEventStore(), InMemoryAlertStore(), None

    from rule_engine.stores.mongo import connect, open_stores
    client = connect(args.mongo_uri, args.query_timeout)
    events, alerts = open_stores(client, args.query_timeout)
    events.ensure_indexes()
    alerts.ensure_indexes()
    return events, alerts, client


def _handle(msg, recorder: EventRecorder) -> bool:
    """Parse and record one consumed message.  True if an event was recorded.

    Tombstones, malformed payloads and store failures are logged and skipped;
    nothing a single message carries may stop the consume loop.
    """
    if msg.value() is None:
        return False  # tombstone
    try:
        event = DrivingEvent.from_dict(json.loads(msg.value().decode("utf-8")))
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        log.warning("event.malformed", offset=msg.offset(), error=str(e))
        return False

    try:
        recorder.record(event)
    except StoreError as e:
        log.error("event.record_failed",
                  vehicle_id=event.vehicle_id, error=str(e))
        return False
    return True


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Driving rule engine")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--input-topic", default="driving-events")
    parser.add_argument("--group-id", default="rule-engine")
    parser.add_argument("--store", choices=["mongo", "memory"], default="mongo")
    parser.add_argument(
        "--mongo-uri", default=os.environ.get("MONGO_URI", DEFAULT_MONGO_URI),
    )
    parser.add_argument("--rules", default=str(DEFAULT_RULES_PATH),
                        help="YAML file of location type thresholds")
    parser.add_argument("--window-seconds", type=int, default=300)
    parser.add_argument(
        "--interval-seconds", type=int, default=None,
        help="Periodic evaluation interval (default: same as the window)",
    )
    parser.add_argument(
        "--max-pending", type=int, default=DEFAULT_MAX_PENDING,
        help="Event-triggered cycles allowed to wait for a worker at once",
    )
    parser.add_argument("--query-timeout", type=float, default=5.0,
                        help="Seconds before a store query is abandoned")
    parser.add_argument("--metrics-port", type=int, default=9100,
                        help="Prometheus metrics HTTP port (0 disables)")
    parser.add_argument("--log-format", choices=["console", "json"],
                        default="console")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)
    if args.interval_seconds is None:
        args.interval_seconds = args.window_seconds
    return args


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.log_format, args.log_level)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    catalog = load_catalog(args.rules)
    events, alerts, client = _build_stores(args)
    cycle = EvaluationCycle(
        catalog, events, alerts, window=timedelta(seconds=args.window_seconds),
    )
    scheduler = Scheduler(
        cycle,
        interval=timedelta(seconds=args.interval_seconds),
        max_pending=args.max_pending,
    )
    recorder = EventRecorder(events, scheduler)

    if args.metrics_port:
        start_http_server(args.metrics_port)
        print(f"Prometheus metrics server started on :{args.metrics_port}")

    consumer = Consumer({
        "bootstrap.servers": args.bootstrap_servers,
        "group.id": args.group_id,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": True,
    })
    consumer.subscribe([args.input_topic])
    scheduler.start()

    consumed = 0
    recorded = 0

    print(f"Rule engine started  input={args.input_topic}  store={args.store}  "
          f"rules={len(catalog)}  window={args.window_seconds}s  "
          f"interval={args.interval_seconds}s")

    try:
        while running:
            msg = consumer.poll(1.0)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                log.error("kafka.consumer_error", error=str(msg.error()))
                continue

            consumed += 1
            if _handle(msg, recorder):
                recorded += 1

            if consumed % 500 == 0:
                print(f"  ... {consumed} events consumed, {recorded} recorded")
    finally:
        consumer.close()
        scheduler.shutdown()
        if client is not None:
            client.close()
        print(f"Done. {consumed} events consumed, {recorded} recorded.")


if __name__ == "__main__":
    main()
