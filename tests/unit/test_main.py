"""Tests for repo_planner.main CLI module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from repo_planner.enums import TaskType
from repo_planner.exceptions import ExternalServiceError
from repo_planner.main import cli, close_pipeline, create_pipeline
from repo_planner.models.domain import StageOutcome

CONFIG = """\
github:
  api_token: test-token
ai:
  api_key: test-key
"""


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "planner.yaml"
    path.write_text(CONFIG)
    return str(path)


@pytest.fixture
def mock_pipeline():
    pipeline = AsyncMock()
    pipeline.handle.return_value = StageOutcome(status="completed", task=TaskType.PLAN, message="Plan created")
    with (
        patch("repo_planner.main.create_pipeline", AsyncMock(return_value=pipeline)),
        patch("repo_planner.main.close_pipeline", AsyncMock()) as close,
    ):
        pipeline.close = close
        yield pipeline


def process_args(config_file: str, *extra: str) -> list[str]:
    return [
        "--config",
        config_file,
        "process-comment",
        "--owner",
        "acme",
        "--repo",
        "api",
        "--issue",
        "12",
        "--comment",
        "@l plan",
        *extra,
    ]


class TestCLIBasics:
    def test_cli_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "comment-triggered repository planning bot" in result.output

    def test_cli_missing_config(self, cli_runner):
        """Test CLI handles missing config file."""
        result = cli_runner.invoke(cli, ["--config", "/nonexistent/file.yaml", "process-comment", "--help"])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_cli_invalid_config(self, cli_runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("limits:\n  max_issues: [unclosed\n")

        result = cli_runner.invoke(cli, ["--config", str(path), "process-comment", "--help"])

        assert result.exit_code == 1
        assert "Invalid YAML syntax" in result.output


class TestProcessComment:
    def test_outcome_is_printed(self, cli_runner, config_file, mock_pipeline):
        result = cli_runner.invoke(cli, process_args(config_file, "--author", "alice"))

        assert result.exit_code == 0
        assert "completed: plan-task Plan created" in result.output
        payload = mock_pipeline.handle.await_args.args[0]
        assert payload.requester == "alice"
        assert payload.is_multi_repo is False
        mock_pipeline.close.assert_awaited_once_with(mock_pipeline)

    def test_repositories_make_multi_repo_payload(self, cli_runner, config_file, mock_pipeline):
        result = cli_runner.invoke(
            cli, process_args(config_file, "--repository", "acme/web", "--repository", "acme/tools")
        )

        assert result.exit_code == 0
        payload = mock_pipeline.handle.await_args.args[0]
        assert payload.is_multi_repo is True
        assert payload.repositories == ["acme/web", "acme/tools"]

    def test_failed_outcome_exits_nonzero(self, cli_runner, config_file, mock_pipeline):
        mock_pipeline.handle.return_value = StageOutcome(status="failed", task=TaskType.PLAN, message="Analysis failed")

        result = cli_runner.invoke(cli, process_args(config_file))

        assert result.exit_code == 1
        assert "failed: plan-task Analysis failed" in result.output

    def test_domain_error(self, cli_runner, config_file, mock_pipeline):
        mock_pipeline.handle.side_effect = ExternalServiceError("GitHub unavailable", status_code=502)

        result = cli_runner.invoke(cli, process_args(config_file))

        assert result.exit_code == 1
        assert "Error: GitHub unavailable" in result.output
        mock_pipeline.close.assert_awaited_once()

    def test_skipped_outcome_without_task(self, cli_runner, config_file, mock_pipeline):
        mock_pipeline.handle.return_value = StageOutcome(status="skipped", message="Comment does not address the bot")

        result = cli_runner.invoke(cli, process_args(config_file))

        assert result.exit_code == 0
        assert "skipped: - Comment does not address the bot" in result.output


class TestServe:
    def test_serve_runs_uvicorn(self, cli_runner, config_file):
        with patch("uvicorn.run") as run, patch("repo_planner.webhook_server.settings", None):
            result = cli_runner.invoke(cli, ["--config", config_file, "serve", "--port", "9000"])

        assert result.exit_code == 0
        assert run.call_args.args[0].title == "Repository Planner Webhook Server"
        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.kwargs["host"] == "127.0.0.1"


class TestPipelineLifecycle:
    @pytest.mark.asyncio
    async def test_create_pipeline_connects(self, settings):
        git = MagicMock()
        git.connect = AsyncMock()
        with (
            patch("repo_planner.main.create_git_provider", return_value=git),
            patch("repo_planner.main.create_completion_provider", return_value=MagicMock()),
        ):
            pipeline = await create_pipeline(settings)

        git.connect.assert_awaited_once()
        assert pipeline.git is git

    @pytest.mark.asyncio
    async def test_close_pipeline(self):
        pipeline = MagicMock()
        pipeline.completion.close = AsyncMock()
        pipeline.git.disconnect = AsyncMock()

        await close_pipeline(pipeline)

        pipeline.completion.close.assert_awaited_once()
        pipeline.git.disconnect.assert_awaited_once()
