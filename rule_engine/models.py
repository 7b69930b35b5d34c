"""Driving event and alert records.

Both are frozen dataclasses: the engine never mutates a stored record.  The
wire format (Kafka messages, Mongo documents) keeps the camelCase field names
the fleet clients already send (timestamp, isSafeDriving, vehicleID,
locationType), so from_dict()/to_dict() are the only places that know them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime:
    """Accept a datetime, an ISO 8601 string or epoch seconds.

    Naive values are taken as UTC.  Anything that cannot be represented as a
    UTC datetime (NaN, infinities, offsets past year 1 or 9999) is a
    ValueError.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid timestamp: {value!r}")
    try:
        if isinstance(value, datetime):
            ts = value
        elif isinstance(value, (int, float)):
            ts = datetime.fromtimestamp(value, tz=timezone.utc)
        elif isinstance(value, str):
            # fromisoformat() only learned the trailing "Z" in 3.11
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        else:
            raise ValueError(f"invalid timestamp: {value!r}")

        if ts.tzinfo is None:
            return ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ValueError(f"invalid timestamp: {value!r}") from None


def _require_str(record: dict, field: str) -> str:
    value = record.get(field)
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{field}' must be a non-empty string, got {value!r}")
    return value


@dataclass(frozen=True)
class DrivingEvent:
    timestamp: datetime
    is_safe_driving: bool
    vehicle_id: str
    location_type: str

    @classmethod
    def from_dict(cls, record: dict) -> DrivingEvent:
        """Parse a wire record.  Raises ValueError on malformed input.

        A record without a timestamp is stamped with the ingestion time.
        """
        if not isinstance(record, dict):
            raise ValueError(f"expected an object, got {type(record).__name__}")
        safe = record.get("isSafeDriving")
        if not isinstance(safe, bool):
            raise ValueError(f"'isSafeDriving' must be a boolean, got {safe!r}")

        raw_ts = record.get("timestamp")
        return cls(
            timestamp=utcnow() if raw_ts is None else parse_timestamp(raw_ts),
            is_safe_driving=safe,
            vehicle_id=_require_str(record, "vehicleID"),
            location_type=_require_str(record, "locationType"),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "isSafeDriving": self.is_safe_driving,
            "vehicleID": self.vehicle_id,
            "locationType": self.location_type,
        }

    def to_json_dict(self) -> dict:
        d = self.to_dict()
        d["timestamp"] = self.timestamp.isoformat()
        return d


@dataclass(frozen=True)
class Alert:
    timestamp: datetime  # evaluation time at which the threshold was met
    location_type: str

    @classmethod
    def from_dict(cls, record: dict) -> Alert:
        if "timestamp" not in record:
            raise ValueError("'timestamp' is required")
        return cls(
            timestamp=parse_timestamp(record["timestamp"]),
            location_type=_require_str(record, "locationType"),
        )

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "locationType": self.location_type}

    def to_json_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "locationType": self.location_type,
        }
