"""Tests for repo_planner/monitoring/metrics.py."""

import pytest

# Skip if prometheus_client not available
pytest.importorskip("prometheus_client")

from prometheus_client import REGISTRY

from repo_planner.engine.pipeline import PlanningPipeline
from repo_planner.models.domain import TriggerPayload
from repo_planner.monitoring import MetricsCollector, measure_stage


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_record_trigger(self):
        before = sample("repo_planner_triggers_total", task="plan-task", status="completed")

        MetricsCollector.record_trigger("plan-task", "completed")

        assert sample("repo_planner_triggers_total", task="plan-task", status="completed") == before + 1

    def test_trigger_without_task(self):
        before = sample("repo_planner_triggers_total", task="none", status="skipped")

        MetricsCollector.record_trigger(None, "skipped")

        assert sample("repo_planner_triggers_total", task="none", status="skipped") == before + 1

    def test_record_issue_creation(self):
        created = sample("repo_planner_issues_created_total")
        unresolved = sample("repo_planner_attachment_repairs_total", result="unresolved")

        MetricsCollector.record_issue_creation(created=5, failed=0, repaired=1, unresolved=1)

        assert sample("repo_planner_issues_created_total") == created + 5
        assert sample("repo_planner_attachment_repairs_total", result="unresolved") == unresolved + 1

    def test_export_format(self):
        MetricsCollector.record_rate_limited("plan-task")

        assert b"repo_planner_rate_limited_total" in MetricsCollector.get_metrics()


class TestMeasureStage:
    def test_failure_is_observed(self):
        before = sample("repo_planner_stage_duration_seconds_count", task="plan-cancellation-task")

        with pytest.raises(RuntimeError):
            with measure_stage("plan-cancellation-task"):
                raise RuntimeError("boom")

        assert sample("repo_planner_stage_duration_seconds_count", task="plan-cancellation-task") == before + 1


class TestPipelineMetrics:
    @pytest.mark.asyncio
    async def test_handled_trigger_is_counted(self, settings, mock_git, mock_completion):
        pipeline = PlanningPipeline(settings, mock_git, mock_completion)
        before = sample("repo_planner_intent_resolutions_total", source="pattern", intent="execution")

        await pipeline.handle(
            TriggerPayload(owner="acme", repo="api", issue_number=12, message="@l execute")
        )

        assert sample("repo_planner_intent_resolutions_total", source="pattern", intent="execution") == before + 1
