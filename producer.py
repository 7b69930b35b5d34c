"""Driving event generator.

Simulates a fleet of vehicles reporting driving observations with
configurable careful and aggressive driver profiles.  Each event carries the
fields the rule engine ingests: timestamp, isSafeDriving, vehicleID,
locationType.

Usage:
    python producer.py
    python producer.py --careful 20 --aggressive 3
    python producer.py --eps 20 --topic driving-events --unknown-rate 0.05
"""

import argparse
import json
import random
import signal
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from confluent_kafka import Producer
from confluent_kafka.admin import AdminClient, NewTopic

LOCATION_TYPES = ["highway", "cityCenter", "commercial", "residential"]
# Reported by some older units; deliberately absent from the rule catalog.
UNKNOWN_LOCATION_TYPES = ["parkingLot", "offRoad"]

running = True


def _shutdown(sig, frame):
    global running
    print("\nShutting down generator...")
    running = False


signal.signal(signal.SIGINT, _shutdown)   # Ctrl+C (local dev)
signal.signal(signal.SIGTERM, _shutdown)  # docker stop / k8s pod termination


# ---------------------------------------------------------------------------
# Vehicle profiles
# ---------------------------------------------------------------------------

@dataclass
class Vehicle:
    vehicle_id: str
    role: str  # careful | aggressive
    events_per_min: float
    unsafe_rate: float  # fraction of observations flagged unsafe
    home_location: str  # where most of its driving happens


def _create_fleet(n_careful, n_aggressive):
    """Build the vehicle pool.  Each vehicle gets a stable home location."""
    vehicles = []
    vid = 0

    # --- Careful drivers: steady reporting, rare unsafe flags ---
    for _ in range(n_careful):
        vid += 1
        vehicles.append(Vehicle(
            vehicle_id=f"VH-{vid:04d}", role="careful",
            events_per_min=random.uniform(2, 10),
            unsafe_rate=random.uniform(0.0, 0.03),
            home_location=random.choice(LOCATION_TYPES),
        ))

    # --- Aggressive drivers: frequent reports, many unsafe flags ---
    for _ in range(n_aggressive):
        vid += 1
        vehicles.append(Vehicle(
            vehicle_id=f"VH-{vid:04d}", role="aggressive",
            events_per_min=random.uniform(10, 30),
            unsafe_rate=random.uniform(0.3, 0.7),
            home_location=random.choice(LOCATION_TYPES),
        ))

    return vehicles


# ---------------------------------------------------------------------------
# Event generation
# ---------------------------------------------------------------------------

def _make_event(vehicle: Vehicle, unknown_rate: float) -> dict:
    """Generate one observation for a vehicle based on its profile."""
    roll = random.random()
    if roll < unknown_rate:
        location = random.choice(UNKNOWN_LOCATION_TYPES)
    elif roll < 0.8:
        location = vehicle.home_location
    else:
        location = random.choice(LOCATION_TYPES)

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "isSafeDriving": random.random() >= vehicle.unsafe_rate,
        "vehicleID": vehicle.vehicle_id,
        "locationType": location,
    }


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

def _ensure_topics(bootstrap_servers, topics):
    """Create Kafka topics if they don't already exist."""
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    new_topics = [NewTopic(t, num_partitions=3, replication_factor=1) for t in topics]
    fs = admin.create_topics(new_topics)
    for topic, f in fs.items():
        try:
            f.result()
            print(f"Created topic '{topic}'")
        except Exception as e:
            if "TOPIC_ALREADY_EXISTS" in str(e):
                print(f"Topic '{topic}' already exists")
            else:
                raise


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def main():
    parser = argparse.ArgumentParser(description="Driving event generator")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument("--topic", default="driving-events")
    parser.add_argument("--careful", type=int, default=10)
    parser.add_argument("--aggressive", type=int, default=2)
    parser.add_argument("--unknown-rate", type=float, default=0.02,
                        help="Fraction of events with an unrated location type")
    parser.add_argument("--eps", type=float, default=5, help="Target events/sec")
    args = parser.parse_args()

    vehicles = _create_fleet(args.careful, args.aggressive)
    weights = [v.events_per_min for v in vehicles]

    print(f"Generating to topic '{args.topic}' at ~{args.eps} events/sec")
    print(f"Vehicles: {len(vehicles)} total")
    for v in vehicles:
        print(f"  {v.vehicle_id}  {v.role:<10s} ~{v.events_per_min:>5.1f} epm  "
              f"unsafe={v.unsafe_rate:.0%}  home={v.home_location}")

    _ensure_topics(args.bootstrap_servers, [args.topic])

    producer = Producer({
        "bootstrap.servers": args.bootstrap_servers,
        "acks": "all",
        "client.id": "driving-event-generator",
    })

    count = 0
    delay = 1.0 / args.eps

    while running:
        vehicle = random.choices(vehicles, weights=weights, k=1)[0]
        event = _make_event(vehicle, args.unknown_rate)

        producer.produce(
            topic=args.topic,
            key=event["vehicleID"].encode(),
            value=json.dumps(event),
        )
        producer.poll(0)

        count += 1
        if count % 500 == 0:
            print(f"  ... {count} events produced")

        time.sleep(delay)

    producer.flush()
    print(f"Done. {count} events produced.")


if __name__ == "__main__":
    main()
