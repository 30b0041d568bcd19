"""Prometheus metrics for the planning bot."""

from repo_planner.monitoring.metrics import CONTENT_TYPE_LATEST, MetricsCollector, measure_stage

__all__ = ["CONTENT_TYPE_LATEST", "MetricsCollector", "measure_stage"]
