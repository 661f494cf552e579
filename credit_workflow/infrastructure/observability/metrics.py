"""Prometheus metrics for monitoring decisions, overrides and scoring health"""

from prometheus_client import Counter, Histogram
from credit_workflow.domain.models import DecisionEvent, EventKind

# Workflow metrics
transition_counter = Counter(
    "credit_workflow_transitions_total",
    "Decision events recorded",
    ["kind", "decision"],  # AUTO_SCORE | MANUAL_OVERRIDE | DATA_CORRECTION | CONTESTATION
)

score_bucket_counter = Counter(
    "credit_workflow_score_bucket",
    "Automatic scores issued by probability bucket",
    ["bucket"],  # <0.3, 0.3-0.6, 0.6-0.8, 0.8+
)

conflict_counter = Counter(
    "credit_workflow_conflicts_total",
    "Writes rejected because the application changed concurrently",
)

# Scoring oracle metrics
scoring_latency_histogram = Histogram(
    "scoring_latency_seconds",
    "Scoring oracle response time",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

scoring_failures_counter = Counter(
    "scoring_failures_total",
    "Failed or timed out scoring attempts",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(event: DecisionEvent) -> None:
    """Record transition metrics for monitoring approval and override rates"""
    decision = event.decision.value if event.decision else "none"
    transition_counter.labels(kind=event.kind.value, decision=decision).inc()

    if event.kind is not EventKind.AUTO_SCORE:
        return

    # Bucket automatic scores for distribution analysis
    if event.score < 0.3:
        bucket = "<0.3"
    elif event.score <= 0.6:
        bucket = "0.3-0.6"
    elif event.score <= 0.8:
        bucket = "0.6-0.8"
    else:
        bucket = "0.8+"

    score_bucket_counter.labels(bucket=bucket).inc()
