"""Evaluation scheduler.

Two trigger sources feed the same cycle:

  periodic — an APScheduler interval job, every ``interval`` from start()
  event    — trigger_now() submits a one-shot job after each recorded event

Both run on the background scheduler's worker pool, so neither blocks the
caller.  The one-shot jobs are independent of the interval job: they never
reset or delay it.  A cycle that raises is logged and counted by the job
error listener; there is no retry, the next trigger simply runs again.

At most ``max_pending`` event cycles wait for a worker at once.  A burst of
events beyond that adds nothing a waiting cycle would not already count.
"""

import threading
from datetime import timedelta

import structlog
from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from rule_engine import metrics
from rule_engine.engine import CycleReport, EvaluationCycle

log = structlog.get_logger(__name__)

DEFAULT_INTERVAL = timedelta(minutes=5)
DEFAULT_MAX_PENDING = 100
PERIODIC_JOB_ID = "periodic-evaluation"


class Scheduler:

    def __init__(self, cycle: EvaluationCycle,
                 interval: timedelta = DEFAULT_INTERVAL,
                 scheduler: BaseScheduler | None = None,
                 max_pending: int = DEFAULT_MAX_PENDING):
        if interval <= timedelta(0):
            raise ValueError(f"interval must be positive, got {interval}")
        if max_pending < 1:
            raise ValueError(f"max_pending must be at least 1, got {max_pending}")
        self.cycle = cycle
        self.interval = interval
        self.max_pending = max_pending
        self._pending = 0
        self._pending_lock = threading.Lock()
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def start(self) -> None:
        self._scheduler.add_job(
            self.run_cycle,
            "interval",
            seconds=self.interval.total_seconds(),
            args=["periodic"],
            id=PERIODIC_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        log.info("scheduler.started",
                 interval_seconds=self.interval.total_seconds(),
                 window_seconds=self.cycle.window.total_seconds())

    def shutdown(self, wait: bool = True) -> None:
        self._scheduler.shutdown(wait=wait)
        log.info("scheduler.stopped")

    @property
    def pending(self) -> int:
        """Event-triggered cycles queued but not yet started."""
        with self._pending_lock:
            return self._pending

    def trigger_now(self) -> bool:
        """Queue one detached evaluation to run as soon as a worker is free.

        Returns False when ``max_pending`` event cycles are already waiting.
        Those cycles read the clock only when they start, so each of them
        still sees the event that asked for this one.
        """
        with self._pending_lock:
            if self._pending >= self.max_pending:
                metrics.event_triggers_dropped_total.inc()
                log.debug("trigger.dropped", pending=self._pending)
                return False
            self._pending += 1
        # No run_date: APScheduler runs a date-triggered job immediately.
        # misfire_grace_time=None keeps it from being dropped when every
        # worker is busy and it starts late.
        try:
            self._scheduler.add_job(
                self.run_cycle, args=["event"], misfire_grace_time=None,
            )
        except Exception:
            with self._pending_lock:
                self._pending -= 1
            raise
        return True

    def run_cycle(self, trigger: str = "manual") -> CycleReport:
        if trigger == "event":
            with self._pending_lock:
                self._pending = max(self._pending - 1, 0)
        metrics.cycles_total.labels(trigger=trigger).inc()
        try:
            with metrics.cycle_duration.time():
                report = self.cycle.run()
        except Exception:
            metrics.cycle_errors_total.labels(trigger=trigger).inc()
            raise
        log.debug(
            "cycle.completed",
            trigger=trigger,
            created=len(report.created),
            suppressed=len(report.suppressed),
            failed=len(report.failed),
        )
        return report

    def _on_job_error(self, event: JobExecutionEvent) -> None:
        log.error(
            "cycle.failed",
            job_id=event.job_id,
            error=repr(event.exception),
            traceback=event.traceback,
        )
