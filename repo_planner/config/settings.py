"""
Configuration system using Pydantic for type-safe settings management.

This module provides the configuration classes for the planning bot: the
GitHub connection, the AI completion service, pipeline limits and rate
limits. Every limit has a default and can be overridden individually from
YAML or from ``PLANNER_``-prefixed environment variables, e.g.
``PLANNER_LIMITS__MAX_ISSUES=10``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from repo_planner.exceptions import ConfigurationError


class GitHubConfig(BaseModel):
    """GitHub connection configuration."""

    api_token: str = Field(default="", description="Installation or personal access token")
    base_url: str = Field(default="https://api.github.com", description="API base URL (GitHub Enterprise)")
    web_url: str = Field(default="https://github.com", description="Web URL used to build milestone links")


class AIConfig(BaseModel):
    """AI completion service configuration.

    Any OpenAI-compatible chat completions endpoint works.
    """

    base_url: str = Field(default="https://api.openai.com/v1", description="Chat completions API base URL")
    api_key: str | None = Field(default=None, description="API key sent as a bearer token")
    analysis_model: str = Field(default="gpt-4o", description="Model used for repository analysis")
    analysis_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    analysis_max_tokens: int = Field(default=4000, ge=1)
    enrichment_model: str = Field(default="gpt-4o-mini", description="Model used for issue enrichment")
    classifier_model: str = Field(default="gpt-4o-mini", description="Model used for intent classification")
    classifier_enabled: bool = Field(default=True, description="Use the AI classifier when patterns do not match")
    classifier_min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class LimitsConfig(BaseModel):
    """Pipeline limits, batch sizes and retry policy."""

    max_issues: int = Field(default=20, ge=1, description="Maximum issues created per plan")
    max_files: int = Field(default=10, ge=1, description="Maximum key files read per ingestion")
    max_content_length: int = Field(default=8000, ge=500, description="Maximum repository summary length")
    ai_timeout: float = Field(default=120.0, gt=0, description="Timeout for analysis calls in seconds")
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per external call")
    retry_base_delay: float = Field(default=1.0, ge=0, description="Base delay for exponential backoff")
    refinement_passes: int = Field(default=1, ge=0, le=5, description="Follow-up analysis passes")
    ingestion_batch_size: int = Field(default=3, ge=1)
    ingestion_batch_delay: float = Field(default=0.2, ge=0)
    creation_batch_size: int = Field(default=3, ge=1)
    creation_batch_delay: float = Field(default=2.0, ge=0)
    enrichment_enabled: bool = Field(default=True)
    enrichment_batch_size: int = Field(default=3, ge=1)
    enrichment_batch_delay: float = Field(default=1.0, ge=0)
    enrichment_timeout: float = Field(default=30.0, gt=0)
    milestone_due_days: int = Field(default=7, ge=1)


class RateLimitConfig(BaseModel):
    """Per-repository run limits over a sliding window."""

    window_seconds: float = Field(default=60.0, gt=0)
    plan_per_window: int = Field(default=3, ge=1)
    multi_plan_per_window: int = Field(default=2, ge=1)


class BotConfig(BaseModel):
    """How the bot is addressed in comments."""

    mention_names: list[str] = Field(default_factory=lambda: ["uwularpy", "l"])
    short_mention: str = Field(default="l", description="Mention shown in instructions, e.g. `@l plan`")

    @model_validator(mode="after")
    def validate_mentions(self) -> BotConfig:
        """Require at least one mention name."""
        if not self.mention_names:
            raise ValueError("mention_names must not be empty")
        return self


class PlannerSettings(BaseSettings):
    """Main planning bot settings.

    Combines all configuration sections and provides loading from YAML files
    with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    bot: BotConfig = Field(default_factory=BotConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # PLANNER_ variables win over YAML values; nested sections are merged key by key
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, config_path: str) -> PlannerSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            PlannerSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
