"""GitHub provider implementation using PyGithub and REST API."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from github import Github, GithubException, RateLimitExceededException  # type: ignore[import-not-found]
from github.Issue import Issue as GHIssue  # type: ignore[import-not-found]
from github.IssueComment import IssueComment as GHComment  # type: ignore[import-not-found]
from github.Milestone import Milestone as GHMilestone  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from repo_planner.exceptions import (
    DomainError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    RepoPlannerError,
)
from repo_planner.models.domain import Comment, Issue, Milestone, RepositoryInfo
from repo_planner.providers.base import GitProvider
from repo_planner.utils.retry import is_transient, retry_async

log = structlog.get_logger(__name__)

T = TypeVar("T")


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a synchronous function in a thread pool.

    This prevents blocking the event loop when calling synchronous
    PyGithub methods.
    """
    return await asyncio.to_thread(func)


def translate_github_error(error: GithubException, operation: str) -> RepoPlannerError:
    """Map a PyGithub exception onto the planner's error taxonomy."""
    status = error.status
    data = error.data if isinstance(error.data, dict) else {}
    detail = data.get("message") or str(error)
    message = f"GitHub {operation} failed: {detail}"

    if isinstance(error, RateLimitExceededException) or status == 429:
        return ExternalServiceError(message, status_code=429, response_text=str(error.data))
    if status == 404:
        return NotFoundError(message, details={"operation": operation})
    if status == 403:
        return PermissionDeniedError(message, details={"operation": operation})
    if status is not None and 400 <= status < 500:
        return DomainError(message, details={"operation": operation, "status": status, "errors": data.get("errors")})
    return ExternalServiceError(message, status_code=status, response_text=str(error.data))


class GitHubRestProvider(GitProvider):
    """GitHub implementation using PyGithub library.

    Every call runs in a worker thread, is retried on transient failures with
    exponential backoff and surfaces 403/404 as domain errors immediately.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        web_url: str = "https://github.com",
        max_attempts: int = 3,
        base_delay: float = 1.0,
    ):
        """Initialize GitHub provider.

        Args:
            token: GitHub App installation token or personal access token
            base_url: GitHub API base URL (for GitHub Enterprise)
            web_url: Web URL used to build milestone links
            max_attempts: Attempts per API call for transient failures
            base_delay: Base delay for exponential backoff in seconds
        """
        self.token = token.strip() if token else token
        self.base_url = base_url.rstrip("/")
        self.web_url = web_url.rstrip("/")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._client: Github | None = None
        self._repos: dict[str, GHRepository] = {}

    async def connect(self) -> None:
        """Initialize GitHub client."""
        self._client = await _run_sync(lambda: Github(self.token, base_url=self.base_url))
        log.info("github_connected", base_url=self.base_url)

    async def disconnect(self) -> None:
        """Close GitHub client."""
        if self._client:
            await _run_sync(self._client.close)
            self._client = None
            self._repos = {}

    async def _call(self, operation: str, func: Callable[[], T], **context: Any) -> T:
        """Run a PyGithub call with retry and error translation."""

        async def attempt() -> T:
            try:
                return await _run_sync(func)
            except GithubException as e:
                raise translate_github_error(e, operation) from e
            except OSError as e:
                # requests' connection errors derive from OSError
                raise ExternalServiceError(f"GitHub {operation} failed: {e}") from e

        try:
            return await retry_async(
                attempt,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                exceptions=(ExternalServiceError,),
                retry_if=is_transient,
                operation=f"github_{operation}",
            )
        except DomainError as e:
            log.warning(f"github_{operation}_rejected", error=e.message, **context)
            raise
        except RepoPlannerError as e:
            log.error(f"github_{operation}_failed", error=e.message, **context)
            raise

    def _get_repo(self, owner: str, repo: str) -> GHRepository:
        """Resolve and cache a repository handle (runs in worker thread)."""
        if self._client is None:
            self._client = Github(self.token, base_url=self.base_url)
        full_name = f"{owner}/{repo}"
        if full_name not in self._repos:
            self._repos[full_name] = self._client.get_repo(full_name)
        return self._repos[full_name]

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        """Get repository metadata."""
        log.info("get_repository", owner=owner, repo=repo)

        def _get() -> RepositoryInfo:
            gh_repo = self._get_repo(owner, repo)
            return RepositoryInfo(
                owner=owner,
                name=gh_repo.name,
                full_name=gh_repo.full_name,
                description=gh_repo.description,
                language=gh_repo.language,
                default_branch=gh_repo.default_branch or "main",
                stars=gh_repo.stargazers_count or 0,
                topics=list(gh_repo.get_topics()),
                url=gh_repo.html_url,
            )

        return await self._call("get_repository", _get, owner=owner, repo=repo)

    async def get_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Get language breakdown."""
        return await self._call(
            "get_languages",
            lambda: dict(self._get_repo(owner, repo).get_languages()),
            owner=owner,
            repo=repo,
        )

    async def get_recent_commits(self, owner: str, repo: str, limit: int = 10) -> list[str]:
        """Get recent commit subjects."""

        def _get() -> list[str]:
            commits = self._get_repo(owner, repo).get_commits()
            return [c.commit.message.split("\n", 1)[0] for c in commits[:limit]]

        return await self._call("get_recent_commits", _get, owner=owner, repo=repo)

    async def get_tree(self, owner: str, repo: str, ref: str) -> list[str]:
        """Get the recursive tree of a ref."""

        def _get() -> list[str]:
            tree = self._get_repo(owner, repo).get_git_tree(ref, recursive=True)
            return [f"{el.path}/" if el.type == "tree" else el.path for el in tree.tree]

        return await self._call("get_tree", _get, owner=owner, repo=repo, ref=ref)

    async def get_file(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        """Get decoded file contents."""

        def _get() -> str:
            gh_repo = self._get_repo(owner, repo)
            contents = gh_repo.get_contents(path, ref=ref) if ref else gh_repo.get_contents(path)
            if isinstance(contents, list):
                raise NotFoundError(f"{path} is a directory", details={"path": path})
            return contents.decoded_content.decode("utf-8", errors="replace")

        return await self._call("get_file", _get, owner=owner, repo=repo, path=path)

    async def create_milestone(
        self,
        owner: str,
        repo: str,
        title: str,
        description: str,
        due_on: datetime | None = None,
    ) -> Milestone:
        """Create a milestone."""
        log.info("create_milestone", owner=owner, repo=repo, title=title)

        def _create() -> GHMilestone:
            gh_repo = self._get_repo(owner, repo)
            if due_on is not None:
                return gh_repo.create_milestone(title=title, state="open", description=description, due_on=due_on)
            return gh_repo.create_milestone(title=title, state="open", description=description)

        gh_milestone = await self._call("create_milestone", _create, owner=owner, repo=repo, title=title)
        return self._convert_milestone(gh_milestone, owner, repo)

    async def get_milestone(self, owner: str, repo: str, number: int) -> Milestone:
        """Get a milestone by number."""
        gh_milestone = await self._call(
            "get_milestone",
            lambda: self._get_repo(owner, repo).get_milestone(number),
            owner=owner,
            repo=repo,
            number=number,
        )
        return self._convert_milestone(gh_milestone, owner, repo)

    async def list_milestones(self, owner: str, repo: str, state: str = "open") -> list[Milestone]:
        """List milestones sorted by creation date, newest first."""
        gh_milestones = await self._call(
            "list_milestones",
            lambda: list(self._get_repo(owner, repo).get_milestones(state=state)),
            owner=owner,
            repo=repo,
        )
        milestones = [self._convert_milestone(m, owner, repo) for m in gh_milestones]
        oldest = datetime.min.replace(tzinfo=UTC)
        return sorted(milestones, key=lambda m: m.created_at or oldest, reverse=True)

    async def close_milestone(self, owner: str, repo: str, number: int) -> Milestone:
        """Close a milestone."""
        log.info("close_milestone", owner=owner, repo=repo, number=number)

        def _close() -> GHMilestone:
            gh_milestone = self._get_repo(owner, repo).get_milestone(number)
            gh_milestone.edit(gh_milestone.title, state="closed")
            return self._get_repo(owner, repo).get_milestone(number)

        gh_milestone = await self._call("close_milestone", _close, owner=owner, repo=repo, number=number)
        return self._convert_milestone(gh_milestone, owner, repo)

    async def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
        milestone_number: int | None = None,
    ) -> Issue:
        """Create a new issue."""
        log.info("create_issue", owner=owner, repo=repo, title=title, milestone=milestone_number)

        def _create() -> GHIssue:
            gh_repo = self._get_repo(owner, repo)
            if milestone_number is not None:
                milestone = gh_repo.get_milestone(milestone_number)
                return gh_repo.create_issue(title=title, body=body, labels=labels or [], milestone=milestone)
            return gh_repo.create_issue(title=title, body=body, labels=labels or [])

        gh_issue = await self._call("create_issue", _create, owner=owner, repo=repo, title=title)
        return self._convert_issue(gh_issue)

    async def get_issue(self, owner: str, repo: str, issue_number: int) -> Issue:
        """Get single issue by number."""
        gh_issue = await self._call(
            "get_issue",
            lambda: self._get_repo(owner, repo).get_issue(issue_number),
            owner=owner,
            repo=repo,
            number=issue_number,
        )
        return self._convert_issue(gh_issue)

    async def set_issue_milestone(self, owner: str, repo: str, issue_number: int, milestone_number: int) -> Issue:
        """Link an issue to a milestone."""
        log.info("set_issue_milestone", owner=owner, repo=repo, number=issue_number, milestone=milestone_number)

        def _update() -> GHIssue:
            gh_repo = self._get_repo(owner, repo)
            gh_issue = gh_repo.get_issue(issue_number)
            gh_issue.edit(milestone=gh_repo.get_milestone(milestone_number))
            return gh_repo.get_issue(issue_number)

        gh_issue = await self._call("set_issue_milestone", _update, owner=owner, repo=repo, number=issue_number)
        return self._convert_issue(gh_issue)

    async def add_comment(self, owner: str, repo: str, issue_number: int, body: str) -> Comment:
        """Add comment to issue."""
        log.info("add_comment", owner=owner, repo=repo, number=issue_number)

        def _add_comment() -> GHComment:
            return self._get_repo(owner, repo).get_issue(issue_number).create_comment(body)

        gh_comment = await self._call("add_comment", _add_comment, owner=owner, repo=repo, number=issue_number)
        return self._convert_comment(gh_comment)

    async def get_comments(self, owner: str, repo: str, issue_number: int) -> list[Comment]:
        """Retrieve all comments for an issue."""

        def _get_comments() -> list[GHComment]:
            return list(self._get_repo(owner, repo).get_issue(issue_number).get_comments())

        gh_comments = await self._call("get_comments", _get_comments, owner=owner, repo=repo, number=issue_number)
        return [self._convert_comment(c) for c in gh_comments]

    def milestone_url(self, owner: str, repo: str, number: int) -> str:
        """Web URL of a milestone."""
        return f"{self.web_url}/{owner}/{repo}/milestone/{number}"

    def _convert_milestone(self, gh_milestone: GHMilestone, owner: str, repo: str) -> Milestone:
        """Convert PyGithub Milestone to our Milestone model."""
        return Milestone(
            number=gh_milestone.number,
            title=gh_milestone.title,
            description=gh_milestone.description or "",
            url=self.milestone_url(owner, repo, gh_milestone.number),
            state=gh_milestone.state,
            created_at=gh_milestone.created_at,
            due_on=gh_milestone.due_on,
        )

    def _convert_issue(self, gh_issue: GHIssue) -> Issue:
        """Convert PyGithub Issue to our Issue model."""
        return Issue(
            number=gh_issue.number,
            title=gh_issue.title,
            body=gh_issue.body or "",
            labels=[label.name for label in gh_issue.labels],
            url=gh_issue.html_url,
            milestone_number=gh_issue.milestone.number if gh_issue.milestone else None,
        )

    def _convert_comment(self, gh_comment: GHComment) -> Comment:
        """Convert PyGithub IssueComment to our Comment model."""
        return Comment(
            id=gh_comment.id,
            body=gh_comment.body or "",
            author=gh_comment.user.login if gh_comment.user else "",
            created_at=gh_comment.created_at,
        )
