"""
Multi-repository planning stage.

Ingests and analyzes every named repository, merges the analyses into one
plan with ``[owner/repo]`` prefixed entries and records it as a milestone in
the triggering repository. Repositories that cannot be analyzed are listed
in the reply; the stage fails only when none can be.
"""

import structlog

from repo_planner.engine.analysis import AnalysisOrchestrator
from repo_planner.engine.ingestor import RepositoryIngestor
from repo_planner.engine.stages.base import PipelineStage, StageRequest
from repo_planner.enums import TaskType
from repo_planner.exceptions import WorkflowError
from repo_planner.models.domain import PlanAnalysis, RepositoryRef, StageOutcome
from repo_planner.utils.batching import BatchProcessor

log = structlog.get_logger(__name__)


class MultiPlanStage(PipelineStage):
    """Create one plan spanning several repositories."""

    task = TaskType.MULTI_PLAN
    title = "Multi-Repository Plan Generation"
    retry_command = "multi-plan owner/repo1, owner/repo2"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ingestor = RepositoryIngestor(self.git, self.settings.limits, self.renderer)
        self.analyzer = AnalysisOrchestrator(self.completion, self.settings.ai, self.settings.limits)

    async def execute(self, request: StageRequest, completed: list[str]) -> StageOutcome:
        if not request.repositories:
            raise WorkflowError("No valid repositories were named. Use the form `owner/repo1, owner/repo2`.")

        await self.reply(
            request,
            "comments/plan_started.md.j2",
            repository=", ".join(ref.full_name for ref in request.repositories),
        )

        processor = BatchProcessor(
            batch_size=self.settings.limits.ingestion_batch_size,
            delay_between_batches=self.settings.limits.ingestion_batch_delay,
        )
        outcomes = await processor.process(request.repositories, self._analyze_one, name="repository_analysis")

        analyses: list[tuple[RepositoryRef, PlanAnalysis]] = []
        failed: list[str] = []
        for outcome in outcomes:
            if outcome.ok and outcome.result is not None:
                analyses.append((outcome.item, outcome.result))
            else:
                log.warning("repository_analysis_failed", repository=outcome.item.full_name, error=str(outcome.error))
                failed.append(outcome.item.full_name)

        if not analyses:
            raise WorkflowError(f"None of the repositories could be analyzed: {', '.join(failed)}")
        completed.append(f"{len(analyses)} of {len(outcomes)} repositories analyzed")

        analysis = await self.analyzer.aggregate(analyses, failed)
        milestone = await self.milestones.create(request.owner, request.repo, analysis)
        completed.append(f"Milestone [{milestone.title}]({milestone.url}) created")

        await self.reply(
            request,
            "comments/multi_plan_created.md.j2",
            milestone=milestone,
            analysis=analysis,
            analyzed=[ref.full_name for ref, _ in analyses],
            failed=failed,
        )

        log.info("multi_plan_created", milestone=milestone.number, analyzed=len(analyses), failed=len(failed))
        return StageOutcome(status="completed", task=self.task, message=milestone.url, milestone=milestone)

    async def _analyze_one(self, ref: RepositoryRef) -> PlanAnalysis:
        summary = await self.ingestor.ingest(ref.owner, ref.repo)
        return await self.analyzer.analyze(summary)
