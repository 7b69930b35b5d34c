"""MongoDB-backed stores.

Collections and field names match the schema the fleet has been writing to
all along: ``DriverList.drivingevents`` and ``DriverList.alerts`` with
camelCase fields.  Every query carries ``maxTimeMS`` so a stalled server
cannot wedge the scheduler's worker threads.
"""

from datetime import datetime

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from rule_engine.models import Alert, DrivingEvent
from rule_engine.stores import (
    AlertStore,
    EventStore,
    StoreQueryFailure,
    StoreWriteFailure,
)

DEFAULT_DATABASE = "DriverList"
EVENTS_COLLECTION = "drivingevents"
ALERTS_COLLECTION = "alerts"


def connect(uri: str, timeout_seconds: float = 5.0) -> MongoClient:
    """Build a client whose every round trip is bounded by *timeout_seconds*.

    tz_aware=True makes stored dates come back as UTC-aware datetimes, which
    is what the models compare against.
    """
    timeout_ms = int(timeout_seconds * 1000)
    return MongoClient(
        uri,
        tz_aware=True,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )


def open_stores(client: MongoClient, timeout_seconds: float = 5.0):
    """Return (MongoEventStore, MongoAlertStore) on the URI's database."""
    db = client.get_default_database(default=DEFAULT_DATABASE)
    return (
        MongoEventStore(db[EVENTS_COLLECTION], timeout_seconds),
        MongoAlertStore(db[ALERTS_COLLECTION], timeout_seconds),
    )


class MongoEventStore(EventStore):

    def __init__(self, collection: Collection, timeout_seconds: float = 5.0):
        self._coll = collection
        self._max_time_ms = int(timeout_seconds * 1000)

    def ensure_indexes(self) -> None:
        self._coll.create_index([
            ("locationType", ASCENDING),
            ("isSafeDriving", ASCENDING),
            ("timestamp", ASCENDING),
        ])

    def insert(self, event: DrivingEvent) -> str:
        try:
            result = self._coll.insert_one(event.to_dict())
        except PyMongoError as e:
            raise StoreWriteFailure(f"event insert failed: {e}") from e
        return str(result.inserted_id)

    def count_unsafe_in_window(self, category: str, start: datetime,
                               end: datetime) -> int:
        query = {
            "locationType": category,
            "isSafeDriving": False,
            "timestamp": {"$gte": start, "$lte": end},
        }
        try:
            return self._coll.count_documents(query, maxTimeMS=self._max_time_ms)
        except PyMongoError as e:
            raise StoreQueryFailure(f"event count failed for {category}: {e}") from e


class MongoAlertStore(AlertStore):

    def __init__(self, collection: Collection, timeout_seconds: float = 5.0):
        self._coll = collection
        self._max_time_ms = int(timeout_seconds * 1000)

    def ensure_indexes(self) -> None:
        self._coll.create_index([
            ("locationType", ASCENDING),
            ("timestamp", ASCENDING),
        ])

    def insert(self, alert: Alert) -> str:
        try:
            result = self._coll.insert_one(alert.to_dict())
        except PyMongoError as e:
            raise StoreWriteFailure(f"alert insert failed: {e}") from e
        return str(result.inserted_id)

    def exists_in_window(self, category: str, start: datetime,
                         end: datetime) -> bool:
        query = {
            "locationType": category,
            "timestamp": {"$gte": start, "$lte": end},
        }
        try:
            doc = self._coll.find_one(
                query, projection={"_id": 1}, max_time_ms=self._max_time_ms,
            )
        except PyMongoError as e:
            raise StoreQueryFailure(f"alert lookup failed for {category}: {e}") from e
        return doc is not None

    def find_by_id(self, alert_id: str) -> Alert | None:
        try:
            oid = ObjectId(alert_id)
        except (InvalidId, TypeError):
            return None
        try:
            doc = self._coll.find_one({"_id": oid}, max_time_ms=self._max_time_ms)
        except PyMongoError as e:
            raise StoreQueryFailure(f"alert {alert_id} lookup failed: {e}") from e
        if doc is None:
            return None
        try:
            return Alert.from_dict(doc)
        except ValueError as e:
            raise StoreQueryFailure(f"alert {alert_id} is malformed: {e}") from e
