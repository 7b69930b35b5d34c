"""Prometheus collectors for the rule engine.

Module-level collectors register themselves in prometheus_client's global
REGISTRY on import; the ingestion service serves them with
start_http_server().
"""

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------
events_recorded_total = Counter(
    "rule_engine_events_recorded_total",
    "Driving events durably recorded",
)

# ---------------------------------------------------------------------------
# Evaluation cycles
# ---------------------------------------------------------------------------
cycles_total = Counter(
    "rule_engine_cycles_total",
    "Evaluation cycles started",
    ["trigger"],
)
cycle_errors_total = Counter(
    "rule_engine_cycle_errors_total",
    "Evaluation cycles that raised instead of completing",
    ["trigger"],
)
cycle_duration = Histogram(
    "rule_engine_cycle_duration_seconds",
    "Wall time of one evaluation cycle",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1, 5, 15, 60],
)
event_triggers_dropped_total = Counter(
    "rule_engine_event_triggers_dropped_total",
    "Event triggers skipped because max_pending cycles were already queued",
)

# ---------------------------------------------------------------------------
# Per-category outcomes
# ---------------------------------------------------------------------------
alerts_created_total = Counter(
    "rule_engine_alerts_created_total",
    "Alerts inserted into the alert store",
    ["location_type"],
)
alerts_suppressed_total = Counter(
    "rule_engine_alerts_suppressed_total",
    "Threshold breaches already covered by an alert in the window",
    ["location_type"],
)
evaluation_failures_total = Counter(
    "rule_engine_evaluation_failures_total",
    "Per-category store failures during evaluation",
    ["location_type", "kind"],  # kind: query | write
)
