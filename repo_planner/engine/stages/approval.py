"""
Approval stage implementation.

Turns the plan milestone of the thread into issues. The plan is read back
from the milestone description, so approval works in a separate invocation
from planning without any stored state.

Execution Flow:
    1. Locate the plan milestone (instruct the user to plan first if none)
    2. Parse the description into an analysis
    3. Expand entries into issue templates, critical first, capped
    4. Optionally enrich the issue bodies with the AI service
    5. Create the issues, verify and repair milestone links
    6. Reply with a summary sorted by priority
"""

from collections import Counter

import structlog

from repo_planner.engine.attachments import IssueCreator
from repo_planner.engine.issue_expander import IssueEnricher, expand, extract_repository_context
from repo_planner.engine.milestones import parse_description
from repo_planner.engine.stages.base import PipelineStage, StageRequest
from repo_planner.enums import IssuePriority, TaskType
from repo_planner.models.domain import CreationReport, StageOutcome
from repo_planner.monitoring import MetricsCollector

log = structlog.get_logger(__name__)


def priority_distribution(report: CreationReport) -> dict[str, int]:
    """Count created issues per priority, every priority present."""
    counts = Counter(template.priority for _, template in report.created)
    return {str(priority): counts.get(priority, 0) for priority in IssuePriority}


class ApprovalStage(PipelineStage):
    """Create the issues of an approved plan."""

    task = TaskType.PLAN_APPROVAL
    title = "Plan Approval"
    retry_command = "approve"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.enricher = IssueEnricher(self.completion, self.settings.ai, self.settings.limits)

    async def execute(self, request: StageRequest, completed: list[str]) -> StageOutcome:
        lookup = await self.locate_milestone(request, action="approve")
        if lookup is None:
            return StageOutcome(status="skipped", task=self.task, message="No plan milestone found")
        milestone = lookup.milestone

        analysis = parse_description(milestone.description)
        limits = self.settings.limits
        templates = expand(analysis, milestone.number, limits.max_issues, self.renderer)
        log.info("plan_expanded", milestone=milestone.number, issues=len(templates))

        if limits.enrichment_enabled:
            context = await extract_repository_context(self.git, request.owner, request.repo, self.renderer)
            templates = await self.enricher.enrich(templates, context)

        creator = IssueCreator(self.git, request.owner, request.repo, limits)
        report = await creator.create_all(templates, milestone.number)
        MetricsCollector.record_issue_creation(
            created=len(report.created),
            failed=len(report.creation_failures),
            repaired=report.repaired,
            unresolved=len(report.unresolved),
        )
        completed.append(f"{len(report.created)} of {report.attempted} issues created in milestone #{milestone.number}")

        report.created.sort(key=lambda pair: pair[1].priority.rank)
        await self.reply(
            request,
            "comments/approval_summary.md.j2",
            milestone=milestone,
            candidates=lookup.candidates,
            created=report.created,
            attempted=report.attempted,
            creation_failures=report.creation_failures,
            unresolved=report.unresolved,
            repaired=report.repaired,
            distribution=priority_distribution(report),
        )

        return StageOutcome(
            status="completed",
            task=self.task,
            message=f"{len(report.created)} issues created",
            milestone=milestone,
            report=report,
        )
