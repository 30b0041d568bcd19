"""
Issue creation with milestone attachment verification and repair.

The platform occasionally creates an issue but drops its milestone link.
Links are therefore checked on the creation response (with an immediate
repair) and again in a verification pass that re-reads every created issue.
Issues flagged by the verification are repaired once more, each repair
confirmed by a re-read. Whatever is still unlinked is reported to the user;
it never fails the run.
"""

import structlog

from repo_planner.config.settings import LimitsConfig
from repo_planner.exceptions import RepoPlannerError
from repo_planner.models.domain import (
    AttachmentFailure,
    AttachmentResult,
    CreationReport,
    Issue,
    IssueTemplate,
)
from repo_planner.providers.base import GitProvider
from repo_planner.utils.batching import BatchProcessor

log = structlog.get_logger(__name__)


class AttachmentVerifier:
    """Checks and repairs issue-to-milestone links."""

    def __init__(self, git: GitProvider, owner: str, repo: str) -> None:
        self.git = git
        self.owner = owner
        self.repo = repo

    async def verify(self, issues: list[Issue], milestone_number: int) -> AttachmentResult:
        """Re-read every issue and compare its milestone link.

        An issue that cannot be re-read counts as a failure.
        """
        result = AttachmentResult()
        for issue in issues:
            try:
                current = await self.git.get_issue(self.owner, self.repo, issue.number)
            except RepoPlannerError as e:
                log.warning("attachment_check_failed", issue=issue.number, error=e.message)
                current = None

            if current is not None and current.milestone_number == milestone_number:
                result.successful += 1
            else:
                result.failed += 1
                result.failures.append(AttachmentFailure(issue_number=issue.number, title=issue.title))
                log.warning(
                    "issue_not_attached",
                    issue=issue.number,
                    expected=milestone_number,
                    actual=current.milestone_number if current else None,
                )

        log.info(
            "attachment_verification_completed",
            milestone=milestone_number,
            successful=result.successful,
            failed=result.failed,
        )
        return result

    async def repair(self, failures: list[AttachmentFailure], milestone_number: int) -> int:
        """Set the milestone on each failed issue; returns how many are now confirmed."""
        unresolved = await self.repair_all(failures, milestone_number)
        return len(failures) - len(unresolved)

    async def repair_all(self, failures: list[AttachmentFailure], milestone_number: int) -> list[AttachmentFailure]:
        """Repair every failure and return the ones still unlinked."""
        unresolved = [failure for failure in failures if not await self.attach(failure.issue_number, milestone_number)]
        log.info("attachment_repair_completed", attempted=len(failures), repaired=len(failures) - len(unresolved))
        return unresolved

    async def attach(self, issue_number: int, milestone_number: int) -> bool:
        """Link one issue and confirm the link by re-reading it."""
        try:
            await self.git.set_issue_milestone(self.owner, self.repo, issue_number, milestone_number)
            confirmed = await self.git.get_issue(self.owner, self.repo, issue_number)
        except RepoPlannerError as e:
            log.error("attachment_repair_failed", issue=issue_number, error=e.message)
            return False

        if confirmed.milestone_number != milestone_number:
            log.warning("attachment_repair_unconfirmed", issue=issue_number, actual=confirmed.milestone_number)
            return False
        return True


class IssueCreator:
    """Creates plan issues in batches and makes sure they end up in the milestone.

    Example:
        >>> creator = IssueCreator(git, "acme", "api", settings.limits)
        >>> report = await creator.create_all(templates, milestone.number)
        >>> [f"#{f.issue_number}: {f.title}" for f in report.unresolved]
        []
    """

    def __init__(self, git: GitProvider, owner: str, repo: str, limits: LimitsConfig | None = None) -> None:
        self.git = git
        self.owner = owner
        self.repo = repo
        self.limits = limits or LimitsConfig()
        self.verifier = AttachmentVerifier(git, owner, repo)

    async def create_all(self, templates: list[IssueTemplate], milestone_number: int) -> CreationReport:
        """Create, verify and repair.

        A failed creation is recorded in ``creation_failures`` and never
        aborts the remaining items.
        """
        log.info("issue_creation_started", count=len(templates), milestone=milestone_number)
        processor = BatchProcessor(
            batch_size=self.limits.creation_batch_size,
            delay_between_batches=self.limits.creation_batch_delay,
        )
        outcomes = await processor.process(
            templates,
            lambda template: self._create_one(template, milestone_number),
            name="issue_creation",
        )

        report = CreationReport()
        for outcome in outcomes:
            if outcome.ok and outcome.result is not None:
                report.created.append((outcome.result, outcome.item))
            else:
                log.error("issue_creation_failed", title=outcome.item.title, error=str(outcome.error))
                report.creation_failures.append(outcome.item)

        report.verification = await self.verifier.verify([issue for issue, _ in report.created], milestone_number)
        if report.verification.failures:
            report.unresolved = await self.verifier.repair_all(report.verification.failures, milestone_number)
            report.repaired = len(report.verification.failures) - len(report.unresolved)

        log.info(
            "issue_creation_completed",
            requested=len(templates),
            created=len(report.created),
            failed=len(report.creation_failures),
            repaired=report.repaired,
            unresolved=len(report.unresolved),
        )
        return report

    async def _create_one(self, template: IssueTemplate, milestone_number: int) -> Issue:
        issue = await self.git.create_issue(
            self.owner,
            self.repo,
            template.title,
            template.body,
            labels=template.labels,
            milestone_number=milestone_number,
        )
        if issue.milestone_number != milestone_number:
            log.warning(
                "milestone_dropped_on_creation",
                issue=issue.number,
                expected=milestone_number,
                actual=issue.milestone_number,
            )
            if await self.verifier.attach(issue.number, milestone_number):
                issue.milestone_number = milestone_number
                log.info("milestone_attached_immediately", issue=issue.number)
        return issue
