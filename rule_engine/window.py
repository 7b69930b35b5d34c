"""Trailing-window unsafe-event counter.

Asks the event store how many unsafe events one location type produced in
[now - length, now].  Both ends are inclusive: an event stamped exactly at
the window start or exactly at evaluation time counts.  Pure query plus
arithmetic; alerting decisions belong to the evaluation cycle.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from rule_engine.stores import EventStore, StoreError, StoreQueryFailure

DEFAULT_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime

    def __contains__(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


@dataclass(frozen=True)
class WindowCount:
    category: str
    window: Window
    unsafe_count: int


class WindowEvaluator:
    __slots__ = ("length", "_events")

    def __init__(self, events: EventStore, length: timedelta = DEFAULT_WINDOW):
        if length <= timedelta(0):
            raise ValueError(f"window length must be positive, got {length}")
        self.length = length
        self._events = events

    def bounds(self, now: datetime) -> Window:
        return Window(start=now - self.length, end=now)

    def evaluate(self, category: str, now: datetime) -> WindowCount:
        """Count unsafe events for *category* in the window ending at *now*.

        Any store failure surfaces as StoreQueryFailure for this category
        only; the caller decides whether to carry on with the others.
        """
        window = self.bounds(now)
        try:
            count = self._events.count_unsafe_in_window(
                category, window.start, window.end,
            )
        except StoreQueryFailure:
            raise
        except StoreError as e:
            raise StoreQueryFailure(str(e)) from e
        except Exception as e:
            # Driver bugs and malformed records land here too.
            raise StoreQueryFailure(f"event count failed for {category}: {e}") from e
        return WindowCount(category=category, window=window, unsafe_count=count)
