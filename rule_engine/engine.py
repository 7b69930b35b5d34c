"""Evaluation cycle — checks every rule category and records alerts.

Pure business logic, no Kafka or scheduler dependency.  The scheduler calls
run() on a timer and after every recorded event; tests call it directly with
an explicit ``now``.

State: dict[category, Lock] plus dict[category, last alert time], both keyed
by the catalog's categories, which never change after construction.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

import structlog

from rule_engine import metrics
from rule_engine.models import Alert, utcnow
from rule_engine.rules import RuleCatalog
from rule_engine.stores import (
    AlertStore,
    EventStore,
    StoreError,
    StoreQueryFailure,
    StoreWriteFailure,
)
from rule_engine.window import DEFAULT_WINDOW, WindowEvaluator

log = structlog.get_logger(__name__)


@dataclass
class CycleReport:
    """What one run() did, per category."""

    now: datetime
    created: dict[str, str] = field(default_factory=dict)  # category -> alert id
    suppressed: list[str] = field(default_factory=list)
    below_threshold: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # category -> error


class EvaluationCycle:

    def __init__(self, catalog: RuleCatalog, events: EventStore,
                 alerts: AlertStore, window: timedelta = DEFAULT_WINDOW,
                 clock: Callable[[], datetime] = utcnow):
        self.catalog = catalog
        self.evaluator = WindowEvaluator(events, window)
        self._alerts = alerts
        self._clock = clock

        # The check-then-insert against the alert store is two round trips;
        # cycles for the same category must not interleave between them.
        self._locks: dict[str, threading.Lock] = {
            c: threading.Lock() for c in catalog.categories()
        }
        # Newest alert this process created per category.  Read under the
        # category lock so a cycle that captured an older ``now`` cannot add
        # a second alert for a window another cycle already covered.
        self._last_alerted: dict[str, datetime] = {}

    @property
    def window(self) -> timedelta:
        return self.evaluator.length

    def run(self, now: datetime | None = None) -> CycleReport:
        """Evaluate every category once.  Never raises for store failures.

        For each category, in lexicographic order:
          1. Rule    — look up the threshold (categories without one are skipped)
          2. Count   — unsafe events in [now - window, now]
          3. Compare — below threshold: nothing to do
          4. Dedup   — alert already in the same window: suppress
          5. Alert   — insert Alert(timestamp=now, location_type=category)
        """
        if now is None:
            now = self._clock()
        report = CycleReport(now=now)

        for category in self.catalog.categories():
            self._evaluate(category, now, report)

        return report

    def _evaluate(self, category: str, now: datetime, report: CycleReport) -> None:
        # 1. Rule
        threshold = self.catalog.threshold_for(category)
        if threshold is None:
            return

        # 2. Count
        try:
            result = self.evaluator.evaluate(category, now)
        except StoreQueryFailure as e:
            self._failed(report, category, "query", e)
            return

        # 3. Compare
        if result.unsafe_count < threshold:
            report.below_threshold.append(category)
            return

        window = result.window
        with self._locks[category]:
            # 4. Dedup, same bounds as the count above
            last = self._last_alerted.get(category)
            if last is not None and last >= window.start:
                self._suppressed(report, category)
                return
            try:
                exists = self._alerts.exists_in_window(
                    category, window.start, window.end,
                )
            except Exception as e:
                self._failed(report, category, "query", _as(StoreQueryFailure, e))
                return
            if exists:
                self._suppressed(report, category)
                return

            # 5. Alert. Not retried on failure: the next cycle's dedup
            #    check will still find nothing and try again.
            try:
                alert_id = self._alerts.insert(
                    Alert(timestamp=now, location_type=category)
                )
            except Exception as e:
                self._failed(report, category, "write", _as(StoreWriteFailure, e))
                return
            self._last_alerted[category] = now

        report.created[category] = alert_id
        metrics.alerts_created_total.labels(location_type=category).inc()
        log.info(
            "alert.created",
            location_type=category,
            alert_id=alert_id,
            unsafe_count=result.unsafe_count,
            threshold=threshold,
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
        )

    def _suppressed(self, report: CycleReport, category: str) -> None:
        report.suppressed.append(category)
        metrics.alerts_suppressed_total.labels(location_type=category).inc()
        log.debug("alert.suppressed", location_type=category)

    def _failed(self, report: CycleReport, category: str, kind: str,
                error: StoreError) -> None:
        report.failed[category] = str(error)
        metrics.evaluation_failures_total.labels(
            location_type=category, kind=kind,
        ).inc()
        log.warning(
            f"evaluation.{kind}_failed",
            location_type=category,
            error=str(error),
        )


def _as(kind: type[StoreError], error: Exception) -> StoreError:
    """Normalize an arbitrary store exception into the store taxonomy."""
    if isinstance(error, StoreError):
        return error
    return kind(f"{type(error).__name__}: {error}")
