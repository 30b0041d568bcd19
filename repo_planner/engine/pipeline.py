"""
Planning pipeline: the entry point for one comment trigger.

Architecture Overview:
    The pipeline sits between the inbound trigger (webhook or CLI) and the
    stages. For each trigger it:

    1. Validates the payload (incomplete payloads are logged and skipped)
    2. Resolves the comment into an intent and a task
    3. Applies the per-repository rate limit for plan-creating tasks
    4. Dispatches to the stage registered for the task

    Comments that address the bot without a recognizable command get a help
    reply; recognized tasks without a stage (execution, dev) get a
    "not supported" reply.

Example:
    >>> pipeline = PlanningPipeline(settings, git, completion)
    >>> outcome = await pipeline.handle(TriggerPayload.from_dict(body))
"""

import structlog

from repo_planner.config.settings import PlannerSettings
from repo_planner.engine.command_parser import parse_repository_list
from repo_planner.engine.intent_resolver import AIIntentClassifier, IntentResolver, ResolutionContext
from repo_planner.engine.milestones import TITLE_PREFIX
from repo_planner.engine.rate_limiter import RateLimiter, multi_plan_creation_key, plan_creation_key
from repo_planner.engine.stages import (
    ApprovalStage,
    CancellationStage,
    MultiPlanStage,
    PipelineStage,
    PlanningStage,
    RefinementStage,
    StageRequest,
)
from repo_planner.enums import TaskType
from repo_planner.exceptions import RateLimitExceededError, RepoPlannerError
from repo_planner.models.domain import RepositoryRef, Resolution, StageOutcome, TriggerPayload
from repo_planner.monitoring import MetricsCollector
from repo_planner.providers.base import CompletionProvider, GitProvider
from repo_planner.rendering import TemplateRenderer, get_renderer
from repo_planner.utils.logging_config import bind_run_context

log = structlog.get_logger(__name__)

# Bot comments this far back count as "a plan was just created"
RECENT_COMMENT_WINDOW = 3


class PlanningPipeline:
    """Route comment triggers to pipeline stages.

    Attributes:
        settings: Planner settings.
        git: Platform provider.
        resolver: Two-stage intent resolver.
        rate_limiter: Sliding-window limiter for plan-creating tasks.
        stages: Registry mapping task identifiers to stage implementations.
    """

    def __init__(
        self,
        settings: PlannerSettings,
        git: GitProvider,
        completion: CompletionProvider,
        resolver: IntentResolver | None = None,
        rate_limiter: RateLimiter | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.settings = settings
        self.git = git
        self.completion = completion
        self.renderer = renderer or get_renderer()
        self.resolver = resolver or self._build_resolver(settings, completion)
        self.rate_limiter = rate_limiter or RateLimiter(window_seconds=settings.rate_limits.window_seconds)

        stage_classes: list[type[PipelineStage]] = [
            PlanningStage,
            ApprovalStage,
            RefinementStage,
            CancellationStage,
            MultiPlanStage,
        ]
        self.stages: dict[TaskType, PipelineStage] = {
            cls.task: cls(git, completion, settings, self.renderer) for cls in stage_classes
        }

    @staticmethod
    def _build_resolver(settings: PlannerSettings, completion: CompletionProvider) -> IntentResolver:
        classifier = None
        if settings.ai.classifier_enabled:
            classifier = AIIntentClassifier(completion, model=settings.ai.classifier_model)
        return IntentResolver(
            classifier=classifier,
            min_confidence=settings.ai.classifier_min_confidence,
            mention_names=tuple(settings.bot.mention_names),
        )

    async def handle(self, payload: TriggerPayload) -> StageOutcome:
        """Process one trigger.

        Returns:
            The outcome of the run; ``skipped`` for invalid payloads and
            comments that do not address the bot
        """
        outcome = await self._dispatch(payload)
        MetricsCollector.record_trigger(str(outcome.task) if outcome.task else None, outcome.status)
        return outcome

    async def _dispatch(self, payload: TriggerPayload) -> StageOutcome:
        missing = payload.missing_fields()
        if missing:
            log.error("trigger_payload_invalid", missing=missing)
            return StageOutcome(status="skipped", message=f"Missing required fields: {', '.join(missing)}")

        bind_run_context(
            owner=payload.owner,
            repo=payload.repo,
            issue_number=payload.issue_number,
            requester=payload.requester,
        )
        log.info("trigger_received", message_length=len(payload.message))

        context = await self._resolution_context(payload)
        resolution = await self.resolver.resolve(payload.message, context)
        MetricsCollector.record_resolution(resolution.source, str(resolution.intent))
        if payload.is_multi_repo and resolution.task in (None, TaskType.PLAN):
            resolution = Resolution(
                intent=resolution.intent,
                task=TaskType.MULTI_PLAN,
                parsed=resolution.parsed,
                source="payload",
            )

        if resolution.task is None:
            if not resolution.parsed.is_mention:
                log.info("trigger_not_addressed")
                return StageOutcome(status="skipped", message="Comment does not address the bot")
            await self._reply(payload, "comments/help.md.j2")
            return StageOutcome(status="skipped", message="Unrecognized command")

        stage = self.stages.get(resolution.task)
        if stage is None:
            log.info("task_not_supported", task=str(resolution.task))
            await self._reply(payload, "comments/unsupported.md.j2", task=str(resolution.task))
            return StageOutcome(status="skipped", task=resolution.task, message="Task not supported")

        try:
            self._check_rate_limit(resolution.task, payload)
        except RateLimitExceededError as e:
            MetricsCollector.record_rate_limited(str(resolution.task))
            await self._reply(
                payload,
                "comments/rate_limited.md.j2",
                repository=payload.repository.full_name,
                limit=e.limit,
                window_seconds=e.window_seconds,
                kind="multi-repository planning" if resolution.task == TaskType.MULTI_PLAN else "planning",
            )
            return StageOutcome(status="rate_limited", task=resolution.task, message=e.message)

        request = StageRequest(
            owner=payload.owner,
            repo=payload.repo,
            issue_number=payload.issue_number,
            parsed=resolution.parsed,
            requester=payload.requester,
            repositories=self._repositories(payload, resolution),
        )
        return await stage.run(request)

    def _check_rate_limit(self, task: TaskType, payload: TriggerPayload) -> None:
        limits = self.settings.rate_limits
        if task == TaskType.PLAN:
            self.rate_limiter.check(plan_creation_key(payload.owner, payload.repo), limits.plan_per_window)
        elif task == TaskType.MULTI_PLAN:
            self.rate_limiter.check(multi_plan_creation_key(payload.owner, payload.repo), limits.multi_plan_per_window)

    @staticmethod
    def _repositories(payload: TriggerPayload, resolution: Resolution) -> list[RepositoryRef]:
        """Repositories of a multi-repository plan; bare names take the trigger's owner."""
        refs = resolution.parsed.repositories or parse_repository_list(",".join(payload.repositories))
        resolved: list[RepositoryRef] = []
        for ref in refs:
            full = ref if ref.owner else RepositoryRef(owner=payload.owner, repo=ref.repo)
            if full not in resolved:
                resolved.append(full)
        return resolved

    async def _resolution_context(self, payload: TriggerPayload) -> ResolutionContext:
        """Thread context for the AI classifier, read only when it will be consulted."""
        if not self.resolver.needs_classification(payload.message):
            return ResolutionContext()
        try:
            comments = await self.git.get_comments(payload.owner, payload.repo, payload.issue_number)
        except RepoPlannerError as e:
            log.warning("resolution_context_unavailable", error=e.message)
            return ResolutionContext()
        recent = comments[-RECENT_COMMENT_WINDOW:]
        return ResolutionContext(
            milestone_just_created=any(TITLE_PREFIX in c.body and "milestone" in c.body.lower() for c in recent)
        )

    async def _reply(self, payload: TriggerPayload, template: str, **context) -> None:
        body = self.renderer.render(template, mention=self.settings.bot.short_mention, **context)
        try:
            await self.git.add_comment(payload.owner, payload.repo, payload.issue_number, body)
        except RepoPlannerError as e:
            log.error("reply_failed", template=template, error=e.message)
