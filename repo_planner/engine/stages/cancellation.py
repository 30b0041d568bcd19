"""Cancellation stage: closes the thread's plan milestone."""

import structlog

from repo_planner.engine.stages.base import PipelineStage, StageRequest
from repo_planner.enums import TaskType
from repo_planner.models.domain import StageOutcome

log = structlog.get_logger(__name__)


class CancellationStage(PipelineStage):
    """Reject a plan by closing its milestone."""

    task = TaskType.PLAN_CANCELLATION
    title = "Plan Cancellation"
    retry_command = "cancel"

    async def execute(self, request: StageRequest, completed: list[str]) -> StageOutcome:
        lookup = await self.locate_milestone(request, action="cancel")
        if lookup is None:
            return StageOutcome(status="skipped", task=self.task, message="No plan milestone found")

        milestone = await self.milestones.close(request.owner, request.repo, lookup.milestone.number)
        completed.append(f"Milestone #{milestone.number} closed")

        await self.reply(request, "comments/plan_cancelled.md.j2", milestone=milestone, candidates=lookup.candidates)
        log.info("plan_cancelled", milestone=milestone.number)
        return StageOutcome(status="completed", task=self.task, milestone=milestone)
