"""In-memory stores for local runs and tests.

Dicts guarded by a lock; each read or write is atomic on its own, which is
the same guarantee a single Mongo operation gives.  Nothing is evicted; the
engine treats the store as durable history.
"""

import threading
import uuid
from datetime import datetime

from rule_engine.models import Alert, DrivingEvent
from rule_engine.stores import AlertStore, EventStore


class InMemoryEventStore(EventStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._events: dict[str, DrivingEvent] = {}

    def insert(self, event: DrivingEvent) -> str:
        event_id = uuid.uuid4().hex
        with self._lock:
            self._events[event_id] = event
        return event_id

    def count_unsafe_in_window(self, category: str, start: datetime,
                               end: datetime) -> int:
        with self._lock:
            return sum(
                1 for e in self._events.values()
                if e.location_type == category
                and not e.is_safe_driving
                and start <= e.timestamp <= end
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class InMemoryAlertStore(AlertStore):

    def __init__(self):
        self._lock = threading.Lock()
        self._alerts: dict[str, Alert] = {}

    def insert(self, alert: Alert) -> str:
        alert_id = uuid.uuid4().hex
        with self._lock:
            self._alerts[alert_id] = alert
        return alert_id

    def exists_in_window(self, category: str, start: datetime,
                         end: datetime) -> bool:
        with self._lock:
            return any(
                a.location_type == category and start <= a.timestamp <= end
                for a in self._alerts.values()
            )

    def find_by_id(self, alert_id: str) -> Alert | None:
        with self._lock:
            return self._alerts.get(alert_id)

    def all(self) -> list[Alert]:
        """Snapshot of every stored alert, oldest first."""
        with self._lock:
            return sorted(self._alerts.values(), key=lambda a: a.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)
