"""
Abstract base classes for providers.

This module defines the provider interfaces the pipeline depends on: a code
hosting platform (repositories, milestones, issues, comments) and an AI chat
completion service. Pipeline components only ever see these interfaces, so
tests substitute ``AsyncMock`` implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from repo_planner.models.domain import Comment, Issue, Milestone, RepositoryInfo


class GitProvider(ABC):
    """Abstract base class for code-hosting platform implementations.

    All methods take the repository explicitly because one pipeline run may
    touch several repositories (multi-repository plans).

    Error contract:
        - Transient failures (5xx, 429, network) raise ``ExternalServiceError``
          after the provider's own retries are exhausted.
        - 404 raises ``NotFoundError`` and 403 raises ``PermissionDeniedError``;
          neither is retried.
    """

    @abstractmethod
    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        """Get repository metadata."""
        pass

    @abstractmethod
    async def get_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Get language breakdown in bytes per language."""
        pass

    @abstractmethod
    async def get_recent_commits(self, owner: str, repo: str, limit: int = 10) -> list[str]:
        """Get the subject lines of the most recent commits, newest first."""
        pass

    @abstractmethod
    async def get_tree(self, owner: str, repo: str, ref: str) -> list[str]:
        """Get every path of the recursive tree at ``ref``.

        Directories are returned with a trailing slash.
        """
        pass

    @abstractmethod
    async def get_file(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        """Get decoded file contents.

        Raises:
            NotFoundError: If the file does not exist at ``ref``.
        """
        pass

    @abstractmethod
    async def create_milestone(
        self,
        owner: str,
        repo: str,
        title: str,
        description: str,
        due_on: datetime | None = None,
    ) -> Milestone:
        """Create a milestone.

        Raises:
            DomainError: If a milestone with the same title already exists.
        """
        pass

    @abstractmethod
    async def get_milestone(self, owner: str, repo: str, number: int) -> Milestone:
        """Get a milestone by number."""
        pass

    @abstractmethod
    async def list_milestones(self, owner: str, repo: str, state: str = "open") -> list[Milestone]:
        """List milestones, newest first."""
        pass

    @abstractmethod
    async def close_milestone(self, owner: str, repo: str, number: int) -> Milestone:
        """Close a milestone."""
        pass

    @abstractmethod
    async def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
        milestone_number: int | None = None,
    ) -> Issue:
        """Create an issue, optionally linked to a milestone.

        The platform may drop the milestone link silently; callers verify.
        """
        pass

    @abstractmethod
    async def get_issue(self, owner: str, repo: str, issue_number: int) -> Issue:
        """Get an issue by number."""
        pass

    @abstractmethod
    async def set_issue_milestone(self, owner: str, repo: str, issue_number: int, milestone_number: int) -> Issue:
        """Link an existing issue to a milestone."""
        pass

    @abstractmethod
    async def add_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Comment:
        """Add a comment to an issue thread."""
        pass

    @abstractmethod
    async def get_comments(self, owner: str, repo: str, issue_number: int) -> list[Comment]:
        """Get all comments of an issue thread, oldest first."""
        pass


class CompletionProvider(ABC):
    """Abstract base class for AI chat completion services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """Run one chat completion and return the text content.

        Args:
            system_prompt: System message
            user_prompt: User message
            model: Model identifier, provider default if None
            temperature: Sampling temperature
            max_tokens: Completion token limit
            timeout: Request timeout in seconds

        Returns:
            Non-empty completion text.

        Raises:
            ExternalServiceError: On HTTP errors, timeouts and network errors.
            AIResponseError: When the completion is missing or empty.
        """
        pass
