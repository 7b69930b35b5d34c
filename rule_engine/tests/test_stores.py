"""Tests for the in-memory and MongoDB stores."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from bson import ObjectId
from pymongo.errors import ExecutionTimeout, ServerSelectionTimeoutError

from rule_engine.models import Alert, DrivingEvent
from rule_engine.stores import StoreQueryFailure, StoreWriteFailure
from rule_engine.stores.memory import InMemoryAlertStore, InMemoryEventStore
from rule_engine.stores.mongo import (
    MongoAlertStore,
    MongoEventStore,
    connect,
    open_stores,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
START = NOW - timedelta(minutes=5)


def _event(at=NOW, safe=False, location_type="highway"):
    return DrivingEvent(timestamp=at, is_safe_driving=safe,
                        vehicle_id="VH-0042", location_type=location_type)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class TestInMemoryEventStore:
    def test_insert_returns_unique_ids(self):
        store = InMemoryEventStore()
        ids = {store.insert(_event()) for _ in range(10)}
        assert len(ids) == 10
        assert len(store) == 10

    def test_count_filters_category_safety_and_window(self):
        store = InMemoryEventStore()
        store.insert(_event(at=START))
        store.insert(_event(at=NOW))
        store.insert(_event(at=NOW, safe=True))
        store.insert(_event(at=NOW, location_type="residential"))
        store.insert(_event(at=START - timedelta(seconds=1)))
        store.insert(_event(at=NOW + timedelta(seconds=1)))
        assert store.count_unsafe_in_window("highway", START, NOW) == 2


class TestInMemoryAlertStore:
    def test_find_by_id(self):
        store = InMemoryAlertStore()
        alert = Alert(timestamp=NOW, location_type="highway")
        alert_id = store.insert(alert)
        assert store.find_by_id(alert_id) == alert
        assert store.find_by_id("missing") is None

    def test_exists_in_window_inclusive(self):
        store = InMemoryAlertStore()
        store.insert(Alert(timestamp=START, location_type="highway"))
        assert store.exists_in_window("highway", START, NOW)
        assert not store.exists_in_window("residential", START, NOW)
        assert not store.exists_in_window(
            "highway", START + timedelta(seconds=1), NOW,
        )

    def test_all_is_oldest_first(self):
        store = InMemoryAlertStore()
        store.insert(Alert(timestamp=NOW, location_type="b"))
        store.insert(Alert(timestamp=START, location_type="a"))
        assert [a.location_type for a in store.all()] == ["a", "b"]


@pytest.mark.parametrize("store_cls", [InMemoryEventStore, InMemoryAlertStore])
def test_len_waits_for_store_lock(store_cls):
    store = store_cls()
    sizes = []
    with store._lock:
        reader = threading.Thread(target=lambda: sizes.append(len(store)))
        reader.start()
        reader.join(timeout=0.1)
        assert reader.is_alive()
    reader.join(timeout=5)
    assert sizes == [0]


# ---------------------------------------------------------------------------
# MongoDB (collections mocked)
# ---------------------------------------------------------------------------

class TestMongoEventStore:
    def setup_method(self):
        self.coll = MagicMock()
        self.store = MongoEventStore(self.coll, timeout_seconds=2)

    def test_insert_writes_wire_document(self):
        oid = ObjectId()
        self.coll.insert_one.return_value.inserted_id = oid
        assert self.store.insert(_event()) == str(oid)
        self.coll.insert_one.assert_called_once_with({
            "timestamp": NOW,
            "isSafeDriving": False,
            "vehicleID": "VH-0042",
            "locationType": "highway",
        })

    def test_count_query_shape_and_timeout(self):
        self.coll.count_documents.return_value = 3
        assert self.store.count_unsafe_in_window("highway", START, NOW) == 3
        self.coll.count_documents.assert_called_once_with(
            {
                "locationType": "highway",
                "isSafeDriving": False,
                "timestamp": {"$gte": START, "$lte": NOW},
            },
            maxTimeMS=2000,
        )

    def test_count_failure_is_query_failure(self):
        self.coll.count_documents.side_effect = ExecutionTimeout("operation exceeded time limit")
        with pytest.raises(StoreQueryFailure, match="highway"):
            self.store.count_unsafe_in_window("highway", START, NOW)

    def test_insert_failure_is_write_failure(self):
        self.coll.insert_one.side_effect = ServerSelectionTimeoutError("no primary")
        with pytest.raises(StoreWriteFailure):
            self.store.insert(_event())

    def test_ensure_indexes(self):
        self.store.ensure_indexes()
        keys = self.coll.create_index.call_args.args[0]
        assert [k for k, _ in keys] == ["locationType", "isSafeDriving", "timestamp"]


class TestMongoAlertStore:
    def setup_method(self):
        self.coll = MagicMock()
        self.store = MongoAlertStore(self.coll, timeout_seconds=1.5)

    def test_insert(self):
        oid = ObjectId()
        self.coll.insert_one.return_value.inserted_id = oid
        alert_id = self.store.insert(Alert(timestamp=NOW, location_type="commercial"))
        assert alert_id == str(oid)
        self.coll.insert_one.assert_called_once_with(
            {"timestamp": NOW, "locationType": "commercial"}
        )

    def test_exists_in_window_query(self):
        self.coll.find_one.return_value = {"_id": ObjectId()}
        assert self.store.exists_in_window("commercial", START, NOW) is True
        self.coll.find_one.assert_called_once_with(
            {"locationType": "commercial", "timestamp": {"$gte": START, "$lte": NOW}},
            projection={"_id": 1},
            max_time_ms=1500,
        )

    def test_exists_in_window_none(self):
        self.coll.find_one.return_value = None
        assert self.store.exists_in_window("commercial", START, NOW) is False

    def test_exists_failure_is_query_failure(self):
        self.coll.find_one.side_effect = ExecutionTimeout("slow")
        with pytest.raises(StoreQueryFailure):
            self.store.exists_in_window("commercial", START, NOW)

    def test_insert_failure_is_write_failure(self):
        self.coll.insert_one.side_effect = ServerSelectionTimeoutError("no primary")
        with pytest.raises(StoreWriteFailure):
            self.store.insert(Alert(timestamp=NOW, location_type="commercial"))

    def test_find_by_id_found(self):
        oid = ObjectId()
        self.coll.find_one.return_value = {
            "_id": oid, "timestamp": NOW, "locationType": "commercial",
        }
        assert self.store.find_by_id(str(oid)) == Alert(NOW, "commercial")
        self.coll.find_one.assert_called_once_with({"_id": oid}, max_time_ms=1500)

    def test_find_by_id_missing(self):
        self.coll.find_one.return_value = None
        assert self.store.find_by_id(str(ObjectId())) is None

    def test_find_by_id_malformed_id(self):
        assert self.store.find_by_id("not-an-object-id") is None
        self.coll.find_one.assert_not_called()

    def test_find_by_id_malformed_document(self):
        self.coll.find_one.return_value = {"_id": ObjectId(), "locationType": "x"}
        with pytest.raises(StoreQueryFailure, match="malformed"):
            self.store.find_by_id(str(ObjectId()))


class TestConnect:
    def test_client_built_with_bounded_timeouts(self):
        with patch("rule_engine.stores.mongo.MongoClient") as client_cls:
            connect("mongodb://db:27017/DriverList", timeout_seconds=3)
        client_cls.assert_called_once_with(
            "mongodb://db:27017/DriverList",
            tz_aware=True,
            serverSelectionTimeoutMS=3000,
            connectTimeoutMS=3000,
            socketTimeoutMS=3000,
        )

    def test_open_stores_uses_driverlist_collections(self):
        client = MagicMock()
        db = client.get_default_database.return_value
        events, alerts = open_stores(client)
        client.get_default_database.assert_called_once_with(default="DriverList")
        db.__getitem__.assert_any_call("drivingevents")
        db.__getitem__.assert_any_call("alerts")
        assert isinstance(events, MongoEventStore)
        assert isinstance(alerts, MongoAlertStore)
