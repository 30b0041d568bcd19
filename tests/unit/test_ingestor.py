"""Tests for repo_planner/engine/ingestor.py."""

import pytest

from repo_planner.config.settings import LimitsConfig
from repo_planner.engine.ingestor import RepositoryIngestor, language_shares, select_notable_files
from repo_planner.exceptions import ExternalServiceError, IngestionError, NotFoundError
from repo_planner.utils.text import TRUNCATION_NOTICE

KEY_FILE_TREE = [
    "src/",
    "src/app.py",
    "README.md",
    "package.json",
    "requirements.txt",
    "Cargo.toml",
    "pyproject.toml",
]


@pytest.fixture
def limits():
    return LimitsConfig(ingestion_batch_delay=0)


class TestHelpers:
    def test_language_shares(self):
        shares = language_shares({"Python": 300, "Shell": 100})

        assert shares == [("Python", "75.0%"), ("Shell", "25.0%")]

    def test_language_shares_empty(self):
        assert language_shares({}) == []

    def test_select_notable_files(self):
        paths = ["docs/", "README.md", "src/app.py", "config/app.yaml", "LICENSE", "setup.cfg"]

        assert select_notable_files(paths) == ["README.md", "config/app.yaml", "LICENSE"]


class TestRepositoryIngestor:
    """Tests for ingest()."""

    @pytest.mark.asyncio
    async def test_summary_contains_sections(self, mock_git, limits):
        ingestor = RepositoryIngestor(mock_git, limits)

        summary = await ingestor.ingest("acme", "api")

        assert "# Repository Analysis for acme/api" in summary.text
        assert "TypeScript: 90.0%" in summary.text
        assert "Add order export" in summary.text
        assert "📁 src" in summary.text
        assert summary.files_included == ["README.md", "package.json"]
        mock_git.get_tree.assert_awaited_once_with("acme", "api", "main")

    @pytest.mark.asyncio
    async def test_missing_key_files_are_skipped(self, mock_git, limits):
        """Two of five key files return 404; the other three are included."""
        mock_git.get_tree.return_value = KEY_FILE_TREE

        async def get_file(owner, repo, path, ref=None):
            if path in ("requirements.txt", "Cargo.toml"):
                raise NotFoundError(f"{path} not found")
            return f"contents of {path}"

        mock_git.get_file.side_effect = get_file
        ingestor = RepositoryIngestor(mock_git, limits)

        summary = await ingestor.ingest("acme", "api")

        assert summary.files_included == ["README.md", "package.json", "pyproject.toml"]
        assert "contents of pyproject.toml" in summary.text
        assert "contents of Cargo.toml" not in summary.text

    @pytest.mark.asyncio
    async def test_max_files_limits_reads(self, mock_git):
        mock_git.get_tree.return_value = KEY_FILE_TREE
        ingestor = RepositoryIngestor(mock_git, LimitsConfig(max_files=2, ingestion_batch_delay=0))

        summary = await ingestor.ingest("acme", "api")

        assert len(summary.files_included) == 2
        assert mock_git.get_file.await_count == 2

    @pytest.mark.asyncio
    async def test_summary_is_bounded(self, mock_git):
        """Huge files never push the summary past the configured length."""
        mock_git.get_file.return_value = "line of text\n" * 5000
        ingestor = RepositoryIngestor(mock_git, LimitsConfig(max_content_length=2000, ingestion_batch_delay=0))

        summary = await ingestor.ingest("acme", "api")

        assert len(summary.text) <= 2000 + len(TRUNCATION_NOTICE)

    @pytest.mark.asyncio
    async def test_optional_sections_degrade(self, mock_git, limits):
        """Languages and commits are optional."""
        mock_git.get_languages.side_effect = ExternalServiceError("down", status_code=502)
        mock_git.get_recent_commits.side_effect = NotFoundError("empty repository")
        ingestor = RepositoryIngestor(mock_git, limits)

        summary = await ingestor.ingest("acme", "api")

        assert "No language data" in summary.text
        assert "No commit data" in summary.text

    @pytest.mark.asyncio
    async def test_metadata_failure_raises(self, mock_git, limits):
        mock_git.get_repository.side_effect = NotFoundError("no such repository")
        ingestor = RepositoryIngestor(mock_git, limits)

        with pytest.raises(IngestionError, match="acme/api"):
            await ingestor.ingest("acme", "api")

    @pytest.mark.asyncio
    async def test_tree_failure_raises(self, mock_git, limits):
        mock_git.get_tree.side_effect = ExternalServiceError("tree too large", status_code=500)
        ingestor = RepositoryIngestor(mock_git, limits)

        with pytest.raises(IngestionError):
            await ingestor.ingest("acme", "api")
