"""
Metrics collection for monitoring the planning bot.
Integrates with Prometheus for metrics export via the webhook server's
``/metrics`` endpoint.
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

log = structlog.get_logger(__name__)

# Trigger metrics
triggers_total = Counter(
    "repo_planner_triggers_total",
    "Comment triggers handled",
    ["task", "status"],
)

intent_resolutions = Counter(
    "repo_planner_intent_resolutions_total",
    "Intent resolutions by source",
    ["source", "intent"],
)

rate_limited_total = Counter(
    "repo_planner_rate_limited_total",
    "Triggers denied by the per-repository rate limit",
    ["task"],
)

# Stage metrics
stage_duration = Histogram(
    "repo_planner_stage_duration_seconds",
    "Stage execution duration",
    ["task"],
    buckets=(1, 5, 10, 30, 60, 120, 300, 600),
)

analysis_fallbacks = Counter(
    "repo_planner_analysis_fallbacks_total",
    "Analyses replaced by the deterministic fallback plan",
)

# Issue metrics
issues_created = Counter("repo_planner_issues_created_total", "Issues created from approved plans")

issue_creation_failures = Counter(
    "repo_planner_issue_creation_failures_total",
    "Issues that could not be created",
)

attachment_repairs = Counter(
    "repo_planner_attachment_repairs_total",
    "Milestone link repairs after verification",
    ["result"],
)


class MetricsCollector:
    """Collect and export metrics."""

    @staticmethod
    def record_trigger(task: str | None, status: str) -> None:
        """Record a handled trigger."""
        triggers_total.labels(task=task or "none", status=status).inc()

    @staticmethod
    def record_resolution(source: str, intent: str) -> None:
        intent_resolutions.labels(source=source, intent=intent).inc()

    @staticmethod
    def record_rate_limited(task: str) -> None:
        rate_limited_total.labels(task=task).inc()
        log.debug("metric_recorded", metric="rate_limited", task=task)

    @staticmethod
    def record_analysis_fallback() -> None:
        analysis_fallbacks.inc()

    @staticmethod
    def record_issue_creation(created: int, failed: int, repaired: int, unresolved: int) -> None:
        """Record the outcome of one approval run."""
        issues_created.inc(created)
        issue_creation_failures.inc(failed)
        attachment_repairs.labels(result="repaired").inc(repaired)
        attachment_repairs.labels(result="unresolved").inc(unresolved)

    @staticmethod
    def get_metrics() -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest()


@contextmanager
def measure_stage(task: str) -> Iterator[None]:
    """Observe the duration of a stage run, successful or not."""
    start = time.monotonic()
    try:
        yield
    finally:
        stage_duration.labels(task=task).observe(time.monotonic() - start)

