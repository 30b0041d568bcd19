"""CLI entry point for the planning bot."""

import asyncio
import sys
from pathlib import Path

import click
import structlog

from repo_planner.config.settings import PlannerSettings
from repo_planner.engine.pipeline import PlanningPipeline
from repo_planner.exceptions import ConfigurationError, RepoPlannerError
from repo_planner.models.domain import StageOutcome, TriggerPayload
from repo_planner.providers.factory import create_completion_provider, create_git_provider
from repo_planner.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

DEFAULT_CONFIG = "repo_planner/config/planner_config.yaml"


@click.group()
@click.option(
    "--config",
    default=DEFAULT_CONFIG,
    help="Path to configuration file",
)
@click.option("--log-level", default="INFO", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str) -> None:
    """repo-planner: comment-triggered repository planning bot."""
    configure_logging(log_level)

    config_path = Path(config)
    if not config_path.exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = PlannerSettings.from_yaml(str(config_path))
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings, "config_path": str(config_path), "log_level": log_level}


@cli.command("process-comment")
@click.option("--owner", required=True, help="Repository owner")
@click.option("--repo", required=True, help="Repository name")
@click.option("--issue", type=int, required=True, help="Issue number the comment was posted on")
@click.option("--comment", required=True, help="Comment text, including the bot mention")
@click.option("--author", default="", help="Login of the comment author")
@click.option(
    "--repository",
    "repositories",
    multiple=True,
    help="Repository for a multi-repository plan (owner/repo); repeatable",
)
@click.pass_context
def process_comment(
    ctx: click.Context,
    owner: str,
    repo: str,
    issue: int,
    comment: str,
    author: str,
    repositories: tuple[str, ...],
) -> None:
    """Process a single comment as if it had been delivered by the webhook."""
    payload = TriggerPayload(
        owner=owner,
        repo=repo,
        issue_number=issue,
        requester=author,
        message=comment,
        repositories=list(repositories),
        is_multi_repo=bool(repositories),
    )
    try:
        outcome = asyncio.run(_process_comment(ctx.obj["settings"], payload))
    except RepoPlannerError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("process_comment_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    click.echo(f"{outcome.status}: {outcome.task or '-'} {outcome.message}".rstrip())
    if outcome.status == "failed":
        sys.exit(1)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", type=int, default=8000, help="Port to listen on")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the webhook server."""
    import uvicorn

    from repo_planner import webhook_server

    webhook_server.settings = ctx.obj["settings"]
    log.info("webhook_server_starting", host=host, port=port)
    uvicorn.run(webhook_server.app, host=host, port=port, log_level=ctx.obj["log_level"].lower())


async def create_pipeline(settings: PlannerSettings) -> PlanningPipeline:
    """Create providers and the pipeline.

    Args:
        settings: Planner settings

    Returns:
        Pipeline with connected providers
    """
    git = create_git_provider(settings)
    completion = create_completion_provider(settings)
    await git.connect()
    return PlanningPipeline(settings, git, completion)


async def close_pipeline(pipeline: PlanningPipeline) -> None:
    """Release provider connections."""
    if hasattr(pipeline.completion, "close"):
        await pipeline.completion.close()
    if hasattr(pipeline.git, "disconnect"):
        await pipeline.git.disconnect()


async def _process_comment(settings: PlannerSettings, payload: TriggerPayload) -> StageOutcome:
    log.info("processing_comment", owner=payload.owner, repo=payload.repo, issue=payload.issue_number)
    pipeline = await create_pipeline(settings)
    try:
        return await pipeline.handle(payload)
    finally:
        await close_pipeline(pipeline)


if __name__ == "__main__":
    cli()
