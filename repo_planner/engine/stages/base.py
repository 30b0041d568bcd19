"""
Base class for pipeline stages.

This module provides the PipelineStage abstract base class shared by the
planning, approval, refinement, cancellation and multi-repository stages.

Stage Lifecycle:
    Stages are instantiated once by the ``PlanningPipeline`` and reused for
    every trigger routed to their task. For each trigger:

    1. ``run()`` is called with a ``StageRequest``
    2. ``execute()`` performs the stage work and records finished steps
    3. The stage replies on the triggering issue
    4. On failure, ``_handle_stage_error()`` posts what went wrong and what
       had already been done

Stage Responsibilities:
    - Performing the stage-specific work (analysis, milestone, issues)
    - Keeping the user informed with comments on the triggering issue
    - Recording completed steps so a failure report is accurate

Rate limiting happens in the pipeline before a stage is entered.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import structlog

from repo_planner.config.settings import PlannerSettings
from repo_planner.engine.milestones import MilestoneManager
from repo_planner.enums import TaskType
from repo_planner.exceptions import RepoPlannerError
from repo_planner.models.domain import (
    MilestoneLookup,
    MilestoneLookupStatus,
    ParsedCommand,
    RepositoryRef,
    StageOutcome,
)
from repo_planner.monitoring import measure_stage
from repo_planner.providers.base import CompletionProvider, GitProvider
from repo_planner.rendering import TemplateRenderer, get_renderer

log = structlog.get_logger(__name__)


@dataclass
class StageRequest:
    """One trigger routed to a stage."""

    owner: str
    repo: str
    issue_number: int
    parsed: ParsedCommand
    requester: str = ""
    repositories: list[RepositoryRef] = field(default_factory=list)
    """Repositories of a multi-repository plan, owners already resolved."""

    @property
    def repository(self) -> RepositoryRef:
        return RepositoryRef(owner=self.owner, repo=self.repo)


class PipelineStage(ABC):
    """Abstract base class for all pipeline stages.

    Attributes:
        git: Platform provider for repositories, milestones, issues, comments.
        completion: AI completion provider.
        settings: Planner settings (limits, AI models, bot mention).
        renderer: Template renderer for replies.
        milestones: Milestone manager shared by the plan lifecycle stages.

    Subclass Contract:
        Implementations set ``task``, ``title`` and ``retry_command`` and
        override ``execute()``. Expected failures surface as
        ``RepoPlannerError``; ``run()`` turns them into an error comment and
        a ``failed`` outcome.
    """

    task: TaskType
    title: str = "Stage"
    retry_command: str = "plan"

    def __init__(
        self,
        git: GitProvider,
        completion: CompletionProvider,
        settings: PlannerSettings,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.git = git
        self.completion = completion
        self.settings = settings
        self.renderer = renderer or get_renderer()
        self.milestones = MilestoneManager(git, settings.limits, self.renderer)

    async def run(self, request: StageRequest) -> StageOutcome:
        """Execute the stage, reporting failures on the issue."""
        log.info("stage_started", task=str(self.task), issue=request.issue_number)
        completed: list[str] = []
        try:
            with measure_stage(str(self.task)):
                outcome = await self.execute(request, completed)
        except RepoPlannerError as e:
            await self._handle_stage_error(request, e, completed)
            return StageOutcome(status="failed", task=self.task, message=e.message)
        except Exception as e:
            await self._handle_stage_error(request, e, completed)
            raise

        log.info("stage_finished", task=str(self.task), status=outcome.status)
        return outcome

    @abstractmethod
    async def execute(self, request: StageRequest, completed: list[str]) -> StageOutcome:
        """Perform the stage work.

        Args:
            request: The routed trigger
            completed: Append a short description of every finished step;
                it is shown to the user if a later step fails

        Raises:
            RepoPlannerError: On expected failures
        """
        pass

    async def reply(self, request: StageRequest, template: str, **context: Any) -> None:
        """Render a comment template and post it on the triggering issue."""
        body = self.renderer.render(template, mention=self.settings.bot.short_mention, **context)
        await self.git.add_comment(request.owner, request.repo, request.issue_number, body)

    async def locate_milestone(self, request: StageRequest, action: str) -> MilestoneLookup | None:
        """Find the plan milestone of the thread.

        Replies with an instruction to run the planning command first and
        returns None when there is no plan.
        """
        comments = await self.git.get_comments(request.owner, request.repo, request.issue_number)
        lookup = await self.milestones.find(request.owner, request.repo, comments)
        if lookup.status == MilestoneLookupStatus.NOT_FOUND:
            await self.reply(request, "comments/milestone_not_found.md.j2", action=action)
            return None
        if lookup.status == MilestoneLookupStatus.AMBIGUOUS:
            log.warning(
                "milestone_ambiguous",
                chosen=lookup.milestone.number,
                candidates=[m.number for m in lookup.candidates],
            )
        return lookup

    async def _handle_stage_error(self, request: StageRequest, error: Exception, completed: list[str]) -> None:
        """Log the failure and tell the user what happened.

        A failure to post the comment is logged and does not mask ``error``.
        """
        message = error.message if isinstance(error, RepoPlannerError) else f"Unexpected error: {error}"
        log.error("stage_error", task=str(self.task), issue=request.issue_number, error=message, exc_info=True)

        try:
            await self.reply(
                request,
                "comments/stage_failed.md.j2",
                stage_title=self.title,
                error=message,
                completed=completed,
                retry_command=self.retry_command,
            )
        except RepoPlannerError as e:
            log.error("stage_error_comment_failed", issue=request.issue_number, error=e.message)
