"""
Refinement stage implementation.

Revises the thread's plan with the user's feedback. The revised plan gets a
new milestone and the superseded one is closed, so later approval or
cancellation commands resolve to the revised plan.
"""

import structlog

from repo_planner.engine.analysis import AnalysisOrchestrator
from repo_planner.engine.milestones import parse_description
from repo_planner.engine.stages.base import PipelineStage, StageRequest
from repo_planner.enums import TaskType
from repo_planner.models.domain import StageOutcome

log = structlog.get_logger(__name__)


class RefinementStage(PipelineStage):
    """Revise an existing plan according to user feedback."""

    task = TaskType.PLAN_REFINEMENT
    title = "Plan Refinement"
    retry_command = "refine [your feedback]"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.analyzer = AnalysisOrchestrator(self.completion, self.settings.ai, self.settings.limits)

    async def execute(self, request: StageRequest, completed: list[str]) -> StageOutcome:
        # misspelled commands routed by the classifier carry no parsed query
        feedback = request.parsed.user_query or request.parsed.full_text.partition(" ")[2].strip()
        if not feedback:
            await self.reply(request, "comments/refinement_needs_feedback.md.j2")
            return StageOutcome(status="skipped", task=self.task, message="No refinement feedback given")

        lookup = await self.locate_milestone(request, action="refine")
        if lookup is None:
            return StageOutcome(status="skipped", task=self.task, message="No plan milestone found")
        previous = lookup.milestone

        analysis = await self.analyzer.refine(parse_description(previous.description), feedback)
        refined = await self.milestones.create(request.owner, request.repo, analysis)
        completed.append(f"Refined milestone [{refined.title}]({refined.url}) created")

        await self.milestones.close(request.owner, request.repo, previous.number)
        completed.append(f"Previous milestone #{previous.number} closed")

        await self.reply(
            request,
            "comments/plan_refined.md.j2",
            milestone=previous,
            candidates=lookup.candidates,
            refined=refined,
            feedback=feedback,
            analysis=analysis,
        )

        log.info("plan_refined", previous=previous.number, refined=refined.number)
        return StageOutcome(status="completed", task=self.task, message=refined.url, milestone=refined)
