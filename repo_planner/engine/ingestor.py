"""
Repository ingestion: a bounded textual summary of a repository.

The summary combines metadata, the language breakdown, recent commit
subjects, the directory layout and the contents of a fixed allow-list of key
files. Each key file is truncated to its share of the content limit before
concatenation, and the whole summary is truncated again at the end.

Failure semantics:
    - Metadata or tree unavailable: ``IngestionError`` (nothing useful to analyze).
    - Languages or commits unavailable: section rendered empty.
    - A key file unavailable: logged and skipped.
"""

import asyncio
from typing import Any, TypeVar

import structlog

from repo_planner.config.settings import LimitsConfig
from repo_planner.exceptions import IngestionError, RepoPlannerError
from repo_planner.models.domain import RepositoryInfo, RepositoryRef, RepositorySummary
from repo_planner.providers.base import GitProvider
from repo_planner.rendering import TemplateRenderer, get_renderer
from repo_planner.utils.batching import BatchProcessor
from repo_planner.utils.text import truncate_content

log = structlog.get_logger(__name__)

T = TypeVar("T")

KEY_FILES = (
    "README.md",
    "package.json",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "setup.py",
    "pyproject.toml",
)
NOTABLE_SUFFIXES = (".md", ".json", ".yml", ".yaml", ".toml")
NOTABLE_MARKERS = ("config", "README", "LICENSE")
MAX_DIRECTORIES = 20
MAX_NOTABLE_FILES = 30
RECENT_COMMITS = 10


def language_shares(languages: dict[str, int]) -> list[tuple[str, str]]:
    """Convert byte counts into percentage strings, largest first."""
    total = sum(languages.values())
    if total <= 0:
        return []
    ordered = sorted(languages.items(), key=lambda item: item[1], reverse=True)
    return [(name, f"{count / total * 100:.1f}%") for name, count in ordered]


def select_notable_files(paths: list[str]) -> list[str]:
    """Pick files worth listing: docs, manifests and configuration."""
    notable = [
        path
        for path in paths
        if not path.endswith("/")
        and (path.endswith(NOTABLE_SUFFIXES) or any(marker in path for marker in NOTABLE_MARKERS))
    ]
    return notable[:MAX_NOTABLE_FILES]


class RepositoryIngestor:
    """Builds ``RepositorySummary`` objects for the analysis stage."""

    def __init__(
        self,
        git: GitProvider,
        limits: LimitsConfig | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.git = git
        self.limits = limits or LimitsConfig()
        self.renderer = renderer or get_renderer()

    async def ingest(self, owner: str, repo: str) -> RepositorySummary:
        """Ingest a repository.

        Args:
            owner: Repository owner
            repo: Repository name

        Returns:
            Summary capped at ``limits.max_content_length`` characters

        Raises:
            IngestionError: If metadata or the file tree cannot be read
        """
        log.info("ingestion_started", owner=owner, repo=repo)

        info_result, languages, commits = await asyncio.gather(
            self.git.get_repository(owner, repo),
            self._optional(self.git.get_languages(owner, repo), {}, "languages"),
            self._optional(self.git.get_recent_commits(owner, repo, RECENT_COMMITS), [], "commits"),
            return_exceptions=True,
        )
        if isinstance(info_result, RepoPlannerError):
            raise IngestionError(f"Cannot read repository {owner}/{repo}: {info_result.message}") from info_result
        if isinstance(info_result, BaseException):
            raise info_result
        for result in (languages, commits):
            if isinstance(result, BaseException):
                raise result

        info: RepositoryInfo = info_result

        try:
            tree = await self.git.get_tree(owner, repo, info.default_branch)
        except RepoPlannerError as e:
            raise IngestionError(f"Cannot read file tree of {owner}/{repo}: {e.message}") from e

        paths = set(tree)
        candidates = [name for name in KEY_FILES if name in paths][: self.limits.max_files]
        contents, skipped = await self._read_key_files(owner, repo, info.default_branch, candidates)

        per_file_limit = self.limits.max_content_length // max(len(contents), 1)
        text = self.renderer.render(
            "repository_summary.md.j2",
            info=info,
            languages=language_shares(languages),
            total_entries=len(tree),
            directories=[path.rstrip("/") for path in tree if path.endswith("/")][:MAX_DIRECTORIES],
            notable_files=select_notable_files(tree),
            file_contents=[(name, truncate_content(content, per_file_limit)) for name, content in contents],
            commits=commits,
        )
        summary = RepositorySummary(
            repository=RepositoryRef(owner=owner, repo=repo),
            text=truncate_content(text, self.limits.max_content_length),
            files_included=[name for name, _ in contents],
        )

        log.info(
            "ingestion_completed",
            owner=owner,
            repo=repo,
            summary_length=len(summary),
            key_files=len(summary.files_included),
            skipped=len(skipped),
        )
        return summary

    async def _read_key_files(
        self, owner: str, repo: str, ref: str, names: list[str]
    ) -> tuple[list[tuple[str, str]], list[str]]:
        """Read key files in batches; failed reads are skipped."""
        processor = BatchProcessor(
            batch_size=self.limits.ingestion_batch_size,
            delay_between_batches=self.limits.ingestion_batch_delay,
        )
        outcomes = await processor.process(
            names,
            lambda name: self.git.get_file(owner, repo, name, ref),
            name="key_file_read",
        )

        contents: list[tuple[str, str]] = []
        skipped: list[str] = []
        for outcome in outcomes:
            if outcome.ok and outcome.result:
                contents.append((outcome.item, outcome.result))
            else:
                log.warning(
                    "key_file_skipped",
                    path=outcome.item,
                    error=str(outcome.error) if outcome.error else "empty file",
                )
                skipped.append(outcome.item)
        return contents, skipped

    @staticmethod
    async def _optional(call: Any, default: T, section: str) -> T:
        """Await ``call``, degrading platform failures to ``default``."""
        try:
            return await call
        except RepoPlannerError as e:
            log.warning("ingestion_section_unavailable", section=section, error=e.message)
            return default
