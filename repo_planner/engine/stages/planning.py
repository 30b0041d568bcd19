"""
Planning stage implementation.

Analyzes the triggering repository and records the resulting plan as a new
milestone. No issues are created here; the user approves, refines or
cancels the plan with a follow-up comment.

Execution Flow:
    1. Acknowledge the request on the issue
    2. Ingest the repository into a bounded summary
    3. Analyze the summary (falls back to a generic plan if the AI fails)
    4. Create the milestone with the rendered plan
    5. Reply with the milestone link and the approval instructions
"""

import structlog

from repo_planner.engine.analysis import AnalysisOrchestrator
from repo_planner.engine.ingestor import RepositoryIngestor
from repo_planner.engine.stages.base import PipelineStage, StageRequest
from repo_planner.enums import TaskType
from repo_planner.models.domain import StageOutcome
from repo_planner.monitoring import MetricsCollector

log = structlog.get_logger(__name__)


class PlanningStage(PipelineStage):
    """Generate a development plan milestone for a repository.

    Example:
        >>> stage = PlanningStage(git, completion, settings)
        >>> outcome = await stage.run(request)
        >>> outcome.milestone.url
        'https://github.com/acme/api/milestone/7'
    """

    task = TaskType.PLAN
    title = "Plan Generation"
    retry_command = "plan"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ingestor = RepositoryIngestor(self.git, self.settings.limits, self.renderer)
        self.analyzer = AnalysisOrchestrator(self.completion, self.settings.ai, self.settings.limits)

    async def execute(self, request: StageRequest, completed: list[str]) -> StageOutcome:
        repository = request.repository.full_name
        user_query = request.parsed.user_query

        await self.reply(request, "comments/plan_started.md.j2", repository=repository)

        summary = await self.ingestor.ingest(request.owner, request.repo)
        completed.append(f"Repository {repository} ingested")

        analysis = await self.analyzer.analyze(summary, user_query)
        if analysis.is_fallback:
            MetricsCollector.record_analysis_fallback()
        completed.append(f"Analysis finished with {analysis.total_items()} plan items")

        milestone = await self.milestones.create(request.owner, request.repo, analysis)
        completed.append(f"Milestone [{milestone.title}]({milestone.url}) created")

        await self.reply(
            request,
            "comments/plan_created.md.j2",
            repository=repository,
            analysis=analysis,
            milestone=milestone,
            user_query=user_query,
            max_issues=self.settings.limits.max_issues,
        )

        log.info("plan_created", milestone=milestone.number, fallback=analysis.is_fallback)
        return StageOutcome(status="completed", task=self.task, message=milestone.url, milestone=milestone)
