# Event and alert stores.
#
# The engine only ever talks to these two interfaces.  MongoDB backs them in
# production (rule_engine.stores.mongo); the in-memory versions back local
# runs and the test suite (rule_engine.stores.memory).
#
# Implementations raise StoreQueryFailure / StoreWriteFailure and nothing
# else, so the evaluation cycle can recover per category without knowing
# which driver sits underneath.

from datetime import datetime

from rule_engine.models import Alert, DrivingEvent


class StoreError(Exception):
    """Base class for store failures."""


class StoreQueryFailure(StoreError):
    """A read against the event or alert store failed."""


class StoreWriteFailure(StoreError):
    """An insert into the event or alert store failed."""


class EventStore:
    """Durable collection of driving events."""

    def insert(self, event: DrivingEvent) -> str:
        """Persist *event* and return its id."""
        raise NotImplementedError

    def count_unsafe_in_window(self, category: str, start: datetime,
                               end: datetime) -> int:
        """Count unsafe events for *category* with start <= timestamp <= end."""
        raise NotImplementedError


class AlertStore:
    """Durable collection of alert records."""

    def insert(self, alert: Alert) -> str:
        """Persist *alert* and return its id."""
        raise NotImplementedError

    def exists_in_window(self, category: str, start: datetime,
                         end: datetime) -> bool:
        """Is there an alert for *category* with start <= timestamp <= end?"""
        raise NotImplementedError

    def find_by_id(self, alert_id: str) -> Alert | None:
        """Look up one alert.  Unknown or malformed ids return None."""
        raise NotImplementedError
