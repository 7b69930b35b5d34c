"""Tests for DrivingEvent / Alert parsing."""

import dataclasses
import json
from datetime import datetime, timedelta, timezone

import pytest

from rule_engine.models import Alert, DrivingEvent, parse_timestamp

UTC = timezone.utc


def _record(**overrides):
    r = {
        "timestamp": "2024-03-01T12:00:00Z",
        "isSafeDriving": False,
        "vehicleID": "VH-0001",
        "locationType": "highway",
    }
    r.update(overrides)
    return r


class TestParseTimestamp:
    def test_iso_with_z(self):
        assert parse_timestamp("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=UTC)

    def test_iso_with_offset_normalized_to_utc(self):
        ts = parse_timestamp("2024-03-01T13:00:00+01:00")
        assert ts == datetime(2024, 3, 1, 12, tzinfo=UTC)
        assert ts.tzinfo == UTC

    def test_naive_is_utc(self):
        assert parse_timestamp(datetime(2024, 3, 1, 12)).tzinfo == UTC

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize("bad", [
        "yesterday", True, [], {},
        float("inf"), float("nan"), 1e20,
        "0001-01-01T00:00:00+01:00",
        "9999-12-31T23:59:59-01:00",
    ])
    def test_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            parse_timestamp(bad)

    @pytest.mark.parametrize("raw", [
        "Infinity", "1e20", '"0001-01-01T00:00:00+01:00"',
    ])
    def test_out_of_range_wire_timestamp_is_value_error(self, raw):
        record = json.loads(
            '{"timestamp": %s, "isSafeDriving": false, '
            '"vehicleID": "VH-0001", "locationType": "highway"}' % raw
        )
        with pytest.raises(ValueError):
            DrivingEvent.from_dict(record)


class TestDrivingEvent:
    def test_from_wire_record(self):
        event = DrivingEvent.from_dict(_record())
        assert event == DrivingEvent(
            timestamp=datetime(2024, 3, 1, 12, tzinfo=UTC),
            is_safe_driving=False,
            vehicle_id="VH-0001",
            location_type="highway",
        )

    def test_missing_timestamp_uses_ingestion_time(self):
        record = _record()
        del record["timestamp"]
        before = datetime.now(UTC)
        event = DrivingEvent.from_dict(record)
        assert before <= event.timestamp <= datetime.now(UTC) + timedelta(seconds=1)

    def test_unknown_location_type_is_accepted(self):
        """The engine never evaluates it, but ingestion still stores it."""
        assert DrivingEvent.from_dict(_record(locationType="offRoad")).location_type == "offRoad"

    @pytest.mark.parametrize("value", ["false", 0, None])
    def test_is_safe_driving_must_be_bool(self, value):
        with pytest.raises(ValueError, match="isSafeDriving"):
            DrivingEvent.from_dict(_record(isSafeDriving=value))

    @pytest.mark.parametrize("field", ["vehicleID", "locationType"])
    def test_required_strings(self, field):
        with pytest.raises(ValueError, match=field):
            DrivingEvent.from_dict(_record(**{field: ""}))
        record = _record()
        del record[field]
        with pytest.raises(ValueError, match=field):
            DrivingEvent.from_dict(record)

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            DrivingEvent.from_dict(["not", "a", "record"])

    def test_is_immutable(self):
        event = DrivingEvent.from_dict(_record())
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.is_safe_driving = True

    def test_json_dict_uses_wire_names(self):
        d = DrivingEvent.from_dict(_record()).to_json_dict()
        assert d == {
            "timestamp": "2024-03-01T12:00:00+00:00",
            "isSafeDriving": False,
            "vehicleID": "VH-0001",
            "locationType": "highway",
        }


class TestAlert:
    def test_from_stored_document(self):
        doc = {"_id": "ignored", "timestamp": datetime(2024, 3, 1, 12, tzinfo=UTC),
               "locationType": "commercial"}
        assert Alert.from_dict(doc) == Alert(datetime(2024, 3, 1, 12, tzinfo=UTC), "commercial")

    def test_missing_timestamp_rejected(self):
        with pytest.raises(ValueError):
            Alert.from_dict({"locationType": "commercial"})

    def test_json_dict(self):
        alert = Alert(datetime(2024, 3, 1, 12, 3, tzinfo=UTC), "commercial")
        assert alert.to_json_dict() == {
            "timestamp": "2024-03-01T12:03:00+00:00",
            "locationType": "commercial",
        }
