"""Look up a stored alert by id and print it as JSON.

Usage:
    python -m rule_engine.lookup 65f1c0ffee0ddba11c0ffee0
    python -m rule_engine.lookup --mongo-uri mongodb://mongo:27017/DriverList <id>

Exit status: 0 found, 1 not found, 2 store unavailable.
"""

import argparse
import json
import os
import sys

from rule_engine.stores import AlertStore, StoreError

DEFAULT_MONGO_URI = "mongodb://localhost:27017/DriverList"


def lookup(alerts: AlertStore, alert_id: str) -> dict | None:
    """Return the alert's wire record (with its id), or None."""
    alert = alerts.find_by_id(alert_id)
    if alert is None:
        return None
    record = alert.to_json_dict()
    record["id"] = alert_id
    return record


def main(argv=None):
    parser = argparse.ArgumentParser(description="Alert lookup")
    parser.add_argument("alert_id")
    parser.add_argument(
        "--mongo-uri", default=os.environ.get("MONGO_URI", DEFAULT_MONGO_URI),
    )
    parser.add_argument("--query-timeout", type=float, default=5.0)
    args = parser.parse_args(argv)

    from rule_engine.stores.mongo import connect, open_stores
    client = connect(args.mongo_uri, args.query_timeout)
    _, alerts = open_stores(client, args.query_timeout)

    try:
        record = lookup(alerts, args.alert_id)
    except StoreError as e:
        print(f"Error retrieving alert: {e}", file=sys.stderr)
        return 2
    finally:
        client.close()

    if record is None:
        print(f"Alert not found: {args.alert_id}", file=sys.stderr)
        return 1
    print(json.dumps(record, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
