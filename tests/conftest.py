"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock

import pytest

from repo_planner.config.settings import PlannerSettings
from repo_planner.models.domain import PlanAnalysis, RepositoryInfo
from tests.factories import make_comment


@pytest.fixture
def settings() -> PlannerSettings:
    """Settings with delays disabled so tests never sleep."""
    return PlannerSettings(
        github={"api_token": "test-token"},
        ai={"api_key": "test-key", "classifier_enabled": False},
        limits={
            "retry_attempts": 3,
            "retry_base_delay": 0,
            "ingestion_batch_delay": 0,
            "creation_batch_delay": 0,
            "enrichment_batch_delay": 0,
            "enrichment_enabled": False,
            "refinement_passes": 0,
        },
    )


@pytest.fixture
def repository_info() -> RepositoryInfo:
    """Metadata of the ``acme/api`` repository."""
    return RepositoryInfo(
        owner="acme",
        name="api",
        full_name="acme/api",
        description="Order management API",
        language="TypeScript",
        default_branch="main",
        stars=42,
        topics=["api", "orders"],
        url="https://github.com/acme/api",
    )


@pytest.fixture
def sample_analysis() -> PlanAnalysis:
    """A complete analysis with one or two entries per category."""
    return PlanAnalysis(
        repository_overview="A TypeScript REST API for order management.",
        critical_fixes=[
            "Rotate the hard-coded database password [Size: S, Priority: Must, Risk: High]",
            "Validate order payloads before persisting them",
        ],
        missing_components=["Automated test suite running in CI"],
        required_improvements=["Split the 2000-line order controller into services"],
        innovation_ideas=["Webhook notifications for order status changes"],
    )


@pytest.fixture
def mock_git(repository_info: RepositoryInfo) -> AsyncMock:
    """AsyncMock platform provider with neutral defaults."""
    mock = AsyncMock()
    mock.get_repository.return_value = repository_info
    mock.get_languages.return_value = {"TypeScript": 9000, "JavaScript": 1000}
    mock.get_recent_commits.return_value = ["Add order export", "Fix pagination"]
    mock.get_tree.return_value = ["src/", "src/index.ts", "README.md", "package.json"]
    mock.get_file.return_value = "content"
    mock.get_comments.return_value = []
    mock.list_milestones.return_value = []
    mock.add_comment.return_value = make_comment("reply", comment_id=99)
    return mock


@pytest.fixture
def mock_completion() -> AsyncMock:
    """AsyncMock completion provider."""
    return AsyncMock()
