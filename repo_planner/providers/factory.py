"""Factory for creating provider instances based on configuration."""

import structlog

from repo_planner.config.settings import PlannerSettings
from repo_planner.exceptions import ConfigurationError
from repo_planner.providers.github_rest import GitHubRestProvider
from repo_planner.providers.openai_compatible import OpenAICompatibleProvider

log = structlog.get_logger(__name__)


def create_git_provider(settings: PlannerSettings) -> GitHubRestProvider:
    """Create the GitHub provider.

    Raises:
        ConfigurationError: If no API token is configured

    Example:
        >>> settings = PlannerSettings.from_yaml("planner_config.yaml")
        >>> provider = create_git_provider(settings)
        >>> await provider.connect()
    """
    if not settings.github.api_token:
        raise ConfigurationError("GitHub API token is not configured (github.api_token)")

    log.info("creating_github_provider", base_url=settings.github.base_url)
    return GitHubRestProvider(
        token=settings.github.api_token,
        base_url=settings.github.base_url,
        web_url=settings.github.web_url,
        max_attempts=settings.limits.retry_attempts,
        base_delay=settings.limits.retry_base_delay,
    )


def create_completion_provider(settings: PlannerSettings) -> OpenAICompatibleProvider:
    """Create the AI completion provider."""
    log.info("creating_completion_provider", base_url=settings.ai.base_url, model=settings.ai.analysis_model)
    return OpenAICompatibleProvider(
        base_url=settings.ai.base_url,
        model=settings.ai.analysis_model,
        api_key=settings.ai.api_key,
        timeout=settings.limits.ai_timeout,
    )
