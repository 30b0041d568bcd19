"""
Domain models for the planning bot.

This module contains the data classes passed between pipeline components:
parsed commands, repository summaries, plan analyses, work-item templates and
the normalized views of platform objects (milestones, issues, comments).
Everything here is transient and scoped to a single pipeline run; the only
durable record of an analysis is the milestone description on the platform.

Example:
    Building an analysis by hand::

        analysis = PlanAnalysis(
            repository_overview="Small Flask API",
            critical_fixes=["Add input validation [Size: S, Priority: Must, Risk: High]"],
            missing_components=["CI pipeline"],
            required_improvements=["Split app.py"],
            innovation_ideas=["Expose a GraphQL endpoint"],
        )
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from repo_planner.enums import AnalysisCategory, Intent, IssuePriority, ProjectType, TaskType


@dataclass(frozen=True)
class RepositoryRef:
    """Reference to a repository on the platform."""

    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        """Return ``owner/repo``."""
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class ParsedCommand:
    """Result of deterministic command parsing.

    Invariant: ``is_mention`` False implies ``command == ""``.
    """

    command: str
    """Lowercased text following the mention."""

    full_text: str
    """Sanitized comment text."""

    is_mention: bool
    """Whether the comment addressed the bot."""

    user_query: str | None = None
    """Free-text request accompanying the command (e.g. ``plan focus on auth``)."""

    is_dev_command: bool = False
    is_multi_repo_command: bool = False
    repositories: tuple[RepositoryRef, ...] = ()
    """Repositories named by a multi-repository command; owner may be empty."""


@dataclass(frozen=True)
class IntentClassification:
    """Structured answer of the AI intent classifier."""

    intent: Intent
    confidence: float
    normalized_command: str
    language: str = "en"


@dataclass(frozen=True)
class Resolution:
    """Final routing decision for one comment."""

    intent: Intent
    task: TaskType | None
    """Task to run, None when the command is unrecognized."""

    parsed: ParsedCommand
    source: str
    """``pattern`` when deterministic rules matched, ``ai`` or ``none`` otherwise."""

    confidence: float = 1.0


@dataclass
class RepositoryInfo:
    """Repository metadata as returned by the platform."""

    owner: str
    name: str
    full_name: str
    description: str | None = None
    language: str | None = None
    default_branch: str = "main"
    stars: int = 0
    topics: list[str] = field(default_factory=list)
    url: str = ""


@dataclass
class RepositorySummary:
    """Size-capped textual summary of a repository used as AI context."""

    repository: RepositoryRef
    text: str
    files_included: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.text)


@dataclass
class PlanAnalysis:
    """Structured result of the repository analysis.

    Each entry is free text carrying embedded annotations such as
    ``[Size: M, Priority: Must, Risk: High]``. After fallback has been
    applied every category list is non-empty.
    """

    repository_overview: str
    critical_fixes: list[str] = field(default_factory=list)
    missing_components: list[str] = field(default_factory=list)
    required_improvements: list[str] = field(default_factory=list)
    innovation_ideas: list[str] = field(default_factory=list)
    project_type: ProjectType | None = None
    is_fallback: bool = False
    """True when the analysis came from the deterministic fallback."""

    def entries(self, category: AnalysisCategory) -> list[str]:
        """Return the entry list of a category."""
        return {
            AnalysisCategory.CRITICAL: self.critical_fixes,
            AnalysisCategory.MISSING: self.missing_components,
            AnalysisCategory.IMPROVEMENT: self.required_improvements,
            AnalysisCategory.INNOVATION: self.innovation_ideas,
        }[category]

    def is_complete(self) -> bool:
        """Whether all four category lists are non-empty."""
        return all(self.entries(category) for category in AnalysisCategory)

    def total_items(self) -> int:
        return sum(len(self.entries(category)) for category in AnalysisCategory)


@dataclass
class IssueTemplate:
    """One work item to be created on the platform."""

    title: str
    body: str
    labels: list[str]
    priority: IssuePriority
    category: AnalysisCategory
    source_entry: str = ""
    """Analysis entry the template was expanded from."""


@dataclass
class Milestone:
    """Tracking container grouping the issues of one plan."""

    number: int
    title: str
    description: str
    url: str
    state: str = "open"
    created_at: datetime | None = None
    due_on: datetime | None = None


@dataclass
class Issue:
    """Work item on the platform, normalized."""

    number: int
    title: str
    body: str
    labels: list[str]
    url: str
    milestone_number: int | None = None
    """Number of the linked milestone, None when the link is absent."""


@dataclass
class Comment:
    """Comment on an issue thread."""

    id: int
    body: str
    author: str
    created_at: datetime


@dataclass(frozen=True)
class AttachmentFailure:
    """A created issue that is not linked to its milestone."""

    issue_number: int
    title: str


@dataclass
class AttachmentResult:
    """Outcome of one verification pass over created issues."""

    successful: int = 0
    failed: int = 0
    failures: list[AttachmentFailure] = field(default_factory=list)


@dataclass
class CreationReport:
    """Outcome of creating, verifying and repairing a batch of issues."""

    created: list[tuple[Issue, IssueTemplate]] = field(default_factory=list)
    creation_failures: list[IssueTemplate] = field(default_factory=list)
    verification: AttachmentResult = field(default_factory=AttachmentResult)
    repaired: int = 0
    unresolved: list[AttachmentFailure] = field(default_factory=list)
    """Issues still unlinked after repair; always ``failed - repaired`` long."""

    @property
    def attempted(self) -> int:
        return len(self.created) + len(self.creation_failures)


class MilestoneLookupStatus(str, Enum):
    """Outcome kinds of a milestone lookup."""

    FOUND = "found"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass
class MilestoneLookup:
    """Result of locating the milestone a thread refers to.

    ``AMBIGUOUS`` carries the most recent candidate in ``milestone`` and the
    full candidate list in ``candidates``.
    """

    status: MilestoneLookupStatus
    milestone: Milestone | None = None
    candidates: list[Milestone] = field(default_factory=list)
    source: str | None = None
    """How the milestone was located (``reference`` or ``listing``)."""

    @classmethod
    def not_found(cls) -> "MilestoneLookup":
        return cls(status=MilestoneLookupStatus.NOT_FOUND)


@dataclass
class TriggerPayload:
    """Inbound trigger handed over by the webhook layer."""

    owner: str | None
    repo: str | None
    issue_number: int | None
    requester: str = ""
    installation_id: int | None = None
    message: str = ""
    repositories: list[str] = field(default_factory=list)
    is_multi_repo: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerPayload":
        """Build a payload from camelCase or snake_case keys without validating it."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        def as_int(value: Any) -> int | None:
            try:
                return int(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        def as_repositories(value: Any) -> list[str]:
            # Accepts "a/b, c", ["a/b", "c"] or [{"owner": "a", "repo": "b"}, {"repo": "c"}]
            if isinstance(value, str):
                return [part for part in re.split(r"[,\s]+", value) if part]
            if not isinstance(value, list | tuple):
                return []
            names = []
            for item in value:
                if isinstance(item, dict) and isinstance(item.get("repo"), str) and item["repo"]:
                    owner = item.get("owner")
                    names.append(f"{owner}/{item['repo']}" if isinstance(owner, str) and owner else item["repo"])
                elif isinstance(item, str) and item.strip():
                    names.append(item.strip())
            return names

        return cls(
            owner=pick("owner"),
            repo=pick("repo"),
            issue_number=as_int(pick("issue_number", "issueNumber")),
            requester=pick("requester") or "",
            installation_id=as_int(pick("installation_id", "installationId")),
            message=pick("message") or "",
            repositories=as_repositories(pick("repositories")),
            is_multi_repo=bool(pick("is_multi_repo", "isMultiRepo")),
        )

    def missing_fields(self) -> list[str]:
        """Names of required fields that are absent."""
        missing = []
        if not self.owner:
            missing.append("owner")
        if not self.repo:
            missing.append("repo")
        if self.issue_number is None:
            missing.append("issue_number")
        return missing

    @property
    def repository(self) -> RepositoryRef:
        return RepositoryRef(owner=self.owner or "", repo=self.repo or "")


@dataclass
class StageOutcome:
    """What a pipeline run did, returned to the caller for logging."""

    status: str
    """``completed``, ``skipped``, ``rate_limited`` or ``failed``."""

    task: TaskType | None = None
    message: str = ""
    milestone: Milestone | None = None
    report: CreationReport | None = None
