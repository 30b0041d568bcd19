"""
Milestone management: the durable record of a plan.

A plan lives on the platform as a milestone whose description is the
rendered analysis. Approval, refinement and cancellation run in later,
independent invocations, so they locate the milestone again from the issue
thread and parse the description back into a ``PlanAnalysis``.

Lookup order:
    1. Milestone references in thread comments, newest comment first.
       Within a comment, more specific reference shapes win (full URL before
       ``milestone #N`` before ``created milestone ... #N``). Every candidate
       is confirmed through the API; missing or closed milestones are skipped.
    2. Open milestones whose title starts with ``TITLE_PREFIX``, newest first.
"""

import re
import secrets
import string
from datetime import UTC, datetime, timedelta

import structlog

from repo_planner.config.settings import LimitsConfig
from repo_planner.enums import AnalysisCategory
from repo_planner.exceptions import DomainError, NotFoundError, WorkflowError
from repo_planner.models.domain import (
    Comment,
    Milestone,
    MilestoneLookup,
    MilestoneLookupStatus,
    PlanAnalysis,
)
from repo_planner.providers.base import GitProvider
from repo_planner.rendering import TemplateRenderer, get_renderer
from repo_planner.utils.text import collapse_whitespace

log = structlog.get_logger(__name__)

TITLE_PREFIX = "AI Development Plan"
SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 6
MAX_TITLE_ATTEMPTS = 3

SECTION_NAMES: dict[AnalysisCategory, str] = {
    AnalysisCategory.CRITICAL: "Critical Fixes",
    AnalysisCategory.MISSING: "Missing Components",
    AnalysisCategory.IMPROVEMENT: "Required Improvements",
    AnalysisCategory.INNOVATION: "Innovation Ideas",
}
SECTION_HEADINGS: dict[AnalysisCategory, str] = {
    AnalysisCategory.CRITICAL: "Critical Fixes (ASAP) 🚨",
    AnalysisCategory.MISSING: "Missing Components 📋",
    AnalysisCategory.IMPROVEMENT: "Required Improvements 🔧",
    AnalysisCategory.INNOVATION: "Innovation Ideas 💡",
}
OVERVIEW_HEADING = "Repository Overview"

_HEADING_RE = re.compile(r"^##\s+(.+?)\s*$")
_NUMBERED_RE = re.compile(r"^\d+\.\s+(.*\S)\s*$")

# (name, pattern); the milestone number is always the last group
REFERENCE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("full_url", re.compile(r"https?://[^\s/]+/([^/\s]+)/([^/\s]+)/milestone/(\d+)", re.IGNORECASE)),
    ("relative_url", re.compile(r"(?<![\w/:])/([^/\s]+)/([^/\s]+)/milestone/(\d+)", re.IGNORECASE)),
    ("hash_reference", re.compile(r"milestone\s*#(\d+)", re.IGNORECASE)),
    ("colon_reference", re.compile(r"milestone:\s*#?(\d+)", re.IGNORECASE)),
    ("spaced_reference", re.compile(r"milestone\s+(\d+)\b", re.IGNORECASE)),
    ("markdown_link", re.compile(r"\[.*?\]\(.*?milestone/(\d+).*?\)", re.IGNORECASE)),
    ("created_notification", re.compile(r"created milestone.*?#(\d+)", re.IGNORECASE)),
    ("assigned_notification", re.compile(r"assigned to milestone.*?#(\d+)", re.IGNORECASE)),
]


def generate_title(now: datetime | None = None, suffix: str | None = None) -> str:
    """Build a unique milestone title.

    The timestamp keeps only characters the platform accepts in titles
    (``:`` and ``.`` become ``-``); the random suffix separates titles
    generated within the same millisecond.

    Example:
        >>> generate_title(datetime(2024, 5, 1, 12, 30, tzinfo=UTC), "a1b2c3")
        'AI Development Plan - 2024-05-01T12-30-00-000Z-a1b2c3'
    """
    now = (now or datetime.now(UTC)).astimezone(UTC)
    timestamp = now.strftime("%Y-%m-%dT%H:%M:%S") + f".{now.microsecond // 1000:03d}Z"
    timestamp = timestamp.replace(":", "-").replace(".", "-")
    if suffix is None:
        suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{TITLE_PREFIX} - {timestamp}-{suffix}"


def find_references(text: str, owner: str, repo: str) -> list[tuple[str, int]]:
    """Milestone numbers referenced in ``text``, most specific shape first.

    URL references pointing at another repository are ignored.
    """
    found: list[tuple[str, int]] = []
    seen: set[int] = set()
    for name, pattern in REFERENCE_PATTERNS:
        for match in pattern.finditer(text):
            if pattern.groups == 3:
                match_owner, match_repo = match.group(1), match.group(2)
                if match_owner.lower() != owner.lower() or match_repo.lower() != repo.lower():
                    continue
            number = int(match.group(pattern.groups))
            if number > 0 and number not in seen:
                seen.add(number)
                found.append((name, number))
    return found


def parse_description(text: str) -> PlanAnalysis:
    """Parse a milestone description back into an analysis.

    Raises:
        WorkflowError: If the description holds no plan entries
    """
    analysis = PlanAnalysis(repository_overview="")
    overview_lines: list[str] = []
    current: AnalysisCategory | str | None = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line == "---":
            current = None
            continue
        heading = _HEADING_RE.match(line)
        if heading:
            title = heading.group(1)
            current = next((c for c, name in SECTION_NAMES.items() if title.startswith(name)), None)
            if current is None and title.startswith(OVERVIEW_HEADING):
                current = OVERVIEW_HEADING
            continue
        if current == OVERVIEW_HEADING:
            if line:
                overview_lines.append(line)
        elif isinstance(current, AnalysisCategory):
            entry = _NUMBERED_RE.match(line)
            if entry:
                analysis.entries(current).append(entry.group(1))

    analysis.repository_overview = " ".join(overview_lines)
    if analysis.total_items() == 0:
        raise WorkflowError("The milestone description does not contain a development plan")
    return analysis


def _is_title_collision(error: DomainError) -> bool:
    return error.details.get("status") == 422 and "already_exists" in str(error.details.get("errors"))


class MilestoneManager:
    """Creates, locates and closes plan milestones."""

    def __init__(
        self,
        git: GitProvider,
        limits: LimitsConfig | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.git = git
        self.limits = limits or LimitsConfig()
        self.renderer = renderer or get_renderer()

    def render_description(self, analysis: PlanAnalysis, now: datetime | None = None) -> str:
        """Render the milestone description, critical fixes first."""
        now = now or datetime.now(UTC)
        return self.renderer.render(
            "milestone_description.md.j2",
            analysis=analysis,
            generated_on=now.strftime("%Y-%m-%d"),
            sections=[
                (SECTION_HEADINGS[category], [collapse_whitespace(entry) for entry in analysis.entries(category)])
                for category in AnalysisCategory
            ],
        )

    async def create(self, owner: str, repo: str, analysis: PlanAnalysis) -> Milestone:
        """Create the milestone for a plan.

        Title collisions are retried with a fresh random suffix.

        Raises:
            DomainError: If the platform rejects the milestone
        """
        now = datetime.now(UTC)
        description = self.render_description(analysis, now)
        due_on = now + timedelta(days=self.limits.milestone_due_days)

        attempt = 1
        while True:
            title = generate_title(now)
            try:
                milestone = await self.git.create_milestone(owner, repo, title, description, due_on=due_on)
                break
            except DomainError as e:
                if not _is_title_collision(e) or attempt >= MAX_TITLE_ATTEMPTS:
                    raise
                log.warning("milestone_title_collision", title=title, attempt=attempt)
                attempt += 1

        log.info("milestone_created", owner=owner, repo=repo, number=milestone.number, title=milestone.title)
        return milestone

    async def find(self, owner: str, repo: str, comments: list[Comment]) -> MilestoneLookup:
        """Locate the plan milestone an issue thread refers to.

        Args:
            owner: Repository owner
            repo: Repository name
            comments: Thread comments, oldest first

        Returns:
            FOUND with the milestone, AMBIGUOUS with the most recent of
            several candidates, or NOT_FOUND
        """
        for comment in reversed(comments):
            for pattern_name, number in find_references(comment.body, owner, repo):
                try:
                    milestone = await self.git.get_milestone(owner, repo, number)
                except NotFoundError:
                    log.debug("milestone_reference_stale", number=number, comment_id=comment.id)
                    continue
                if milestone.state != "open":
                    log.debug("milestone_reference_closed", number=number, comment_id=comment.id)
                    continue
                log.info(
                    "milestone_found",
                    number=milestone.number,
                    source="reference",
                    pattern=pattern_name,
                    comment_id=comment.id,
                )
                return MilestoneLookup(
                    status=MilestoneLookupStatus.FOUND,
                    milestone=milestone,
                    candidates=[milestone],
                    source="reference",
                )

        milestones = await self.git.list_milestones(owner, repo, state="open")
        candidates = [m for m in milestones if m.title.startswith(TITLE_PREFIX)]
        candidates.sort(key=lambda m: m.created_at or datetime.min.replace(tzinfo=UTC), reverse=True)

        if not candidates:
            log.info("milestone_not_found", owner=owner, repo=repo, comments_searched=len(comments))
            return MilestoneLookup.not_found()

        status = MilestoneLookupStatus.FOUND if len(candidates) == 1 else MilestoneLookupStatus.AMBIGUOUS
        log.info(
            "milestone_found",
            number=candidates[0].number,
            source="listing",
            status=status.value,
            candidates=len(candidates),
        )
        return MilestoneLookup(status=status, milestone=candidates[0], candidates=candidates, source="listing")

    async def close(self, owner: str, repo: str, number: int) -> Milestone:
        """Close a plan milestone."""
        milestone = await self.git.close_milestone(owner, repo, number)
        log.info("milestone_closed", owner=owner, repo=repo, number=number)
        return milestone
