"""Event recorder — the seam between ingestion and evaluation.

The only outcome a reporting client ever sees is the event store insert.
Evaluation is kicked off strictly after the insert has acknowledged, so the
triggered cycle always sees the new event, and it runs detached on the
scheduler's pool.
"""

import structlog

from rule_engine import metrics
from rule_engine.models import DrivingEvent
from rule_engine.scheduler import Scheduler
from rule_engine.stores import EventStore

log = structlog.get_logger(__name__)


class EventRecorder:

    def __init__(self, events: EventStore, scheduler: Scheduler):
        self._events = events
        self._scheduler = scheduler

    def record(self, event: DrivingEvent) -> str:
        """Store *event* and return its id.

        StoreWriteFailure from the insert propagates; nothing is triggered
        in that case.
        """
        event_id = self._events.insert(event)
        metrics.events_recorded_total.inc()
        log.debug(
            "event.recorded",
            event_id=event_id,
            vehicle_id=event.vehicle_id,
            location_type=event.location_type,
            safe=event.is_safe_driving,
        )

        # Best effort: a failure to queue the evaluation must not turn a
        # successful insert into a failed ingestion.  The periodic trigger
        # still covers this event.
        try:
            self._scheduler.trigger_now()
        except Exception as e:
            log.warning("evaluation.trigger_failed", event_id=event_id, error=repr(e))
        return event_id
