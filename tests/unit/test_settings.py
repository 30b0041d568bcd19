"""Tests for repo_planner/config/settings.py."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from repo_planner.config.settings import BotConfig, LimitsConfig, PlannerSettings
from repo_planner.exceptions import ConfigurationError

BUNDLED_CONFIG = Path(__file__).parents[2] / "repo_planner" / "config" / "planner_config.yaml"


def write_config(tmp_path: Path, content: str) -> str:
    path = tmp_path / "planner.yaml"
    path.write_text(content)
    return str(path)


class TestDefaults:
    def test_limit_defaults(self):
        limits = LimitsConfig()

        assert limits.max_issues == 20
        assert limits.max_files == 10
        assert limits.max_content_length == 8000
        assert limits.retry_attempts == 3
        assert limits.milestone_due_days == 7

    def test_rate_limit_defaults(self):
        settings = PlannerSettings()

        assert settings.rate_limits.window_seconds == 60
        assert settings.rate_limits.plan_per_window == 3
        assert settings.rate_limits.multi_plan_per_window == 2

    def test_empty_mention_names_rejected(self):
        with pytest.raises(ValidationError):
            BotConfig(mention_names=[])

    def test_out_of_range_limit_rejected(self):
        with pytest.raises(ValidationError):
            LimitsConfig(max_issues=0)


class TestFromYaml:
    """Loading and interpolation."""

    def test_partial_override(self, tmp_path):
        path = write_config(tmp_path, "limits:\n  max_issues: 5\nbot:\n  short_mention: planner\n")

        settings = PlannerSettings.from_yaml(path)

        assert settings.limits.max_issues == 5
        assert settings.limits.max_files == 10
        assert settings.bot.short_mention == "planner"

    def test_env_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_GH_TOKEN", "ghs_abc")
        monkeypatch.delenv("TEST_AI_URL", raising=False)
        path = write_config(
            tmp_path,
            "github:\n  api_token: ${TEST_GH_TOKEN}\nai:\n  base_url: ${TEST_AI_URL:-http://localhost:1234/v1}\n",
        )

        settings = PlannerSettings.from_yaml(path)

        assert settings.github.api_token == "ghs_abc"
        assert settings.ai.base_url == "http://localhost:1234/v1"

    def test_unset_variable_without_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_MISSING_TOKEN", raising=False)
        path = write_config(tmp_path, "github:\n  api_token: ${TEST_MISSING_TOKEN}\n")

        with pytest.raises(ConfigurationError, match="TEST_MISSING_TOKEN"):
            PlannerSettings.from_yaml(path)

    def test_comment_lines_not_interpolated(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_MISSING_TOKEN", raising=False)
        path = write_config(tmp_path, "# api_token: ${TEST_MISSING_TOKEN}\nlimits:\n  max_files: 4\n")

        assert PlannerSettings.from_yaml(path).limits.max_files == 4

    def test_missing_file(self):
        with pytest.raises(ConfigurationError, match="not found"):
            PlannerSettings.from_yaml("/nonexistent/planner.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path, "limits: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML syntax"):
            PlannerSettings.from_yaml(path)

    def test_scalar_document(self, tmp_path):
        path = write_config(tmp_path, "just a string\n")

        with pytest.raises(ConfigurationError, match="YAML object"):
            PlannerSettings.from_yaml(path)

    def test_invalid_value(self, tmp_path):
        path = write_config(tmp_path, "limits:\n  max_issues: -1\n")

        with pytest.raises(ConfigurationError, match="Failed to validate"):
            PlannerSettings.from_yaml(path)

    def test_empty_file_uses_defaults(self, tmp_path):
        path = write_config(tmp_path, "")

        assert PlannerSettings.from_yaml(path).limits.max_issues == 20

    def test_bundled_config_loads(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghs_test")

        settings = PlannerSettings.from_yaml(str(BUNDLED_CONFIG))

        assert settings.github.api_token == "ghs_test"
        assert settings.bot.mention_names == ["uwularpy", "l"]


class TestEnvironmentOverride:
    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("PLANNER_LIMITS__MAX_ISSUES", "10")
        monkeypatch.setenv("PLANNER_AI__CLASSIFIER_ENABLED", "false")

        settings = PlannerSettings()

        assert settings.limits.max_issues == 10
        assert settings.ai.classifier_enabled is False

    def test_environment_wins_over_yaml(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        monkeypatch.setenv("PLANNER_LIMITS__MAX_ISSUES", "10")

        settings = PlannerSettings.from_yaml(str(BUNDLED_CONFIG))

        assert settings.limits.max_issues == 10
        assert settings.limits.max_files == 10
        assert settings.limits.refinement_passes == 1
        assert settings.github.api_token == "ghp_test"
