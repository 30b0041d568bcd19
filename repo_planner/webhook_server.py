"""Webhook server that accepts comment triggers and runs the planning pipeline."""

import os

import structlog
from fastapi import FastAPI, HTTPException, Request, Response

from repo_planner.config.settings import PlannerSettings
from repo_planner.engine.pipeline import PlanningPipeline
from repo_planner.exceptions import ConfigurationError, RepoPlannerError
from repo_planner.models.domain import StageOutcome, TriggerPayload
from repo_planner.monitoring import CONTENT_TYPE_LATEST, MetricsCollector

log = structlog.get_logger(__name__)

app = FastAPI(title="Repository Planner Webhook Server")

# Global state
settings: PlannerSettings | None = None
pipeline: PlanningPipeline | None = None


@app.on_event("startup")
async def startup():
    """Load settings and connect providers."""
    global settings, pipeline
    from repo_planner.main import DEFAULT_CONFIG, create_pipeline

    try:
        if settings is None:
            settings = PlannerSettings.from_yaml(os.environ.get("PLANNER_CONFIG", DEFAULT_CONFIG))
        if pipeline is None:
            pipeline = await create_pipeline(settings)
        log.info("webhook_server_started")
    except ConfigurationError as e:
        log.error("webhook_startup_failed", error=e.message, exc_info=True)
        raise ConfigurationError(e.message) from e
    except Exception as e:
        log.error("webhook_startup_unexpected", error=str(e), exc_info=True)
        raise RuntimeError(f"Webhook startup failed: {e}") from e


@app.on_event("shutdown")
async def shutdown():
    """Release provider connections."""
    global pipeline
    from repo_planner.main import close_pipeline

    if pipeline is not None:
        await close_pipeline(pipeline)
        pipeline = None
    log.info("webhook_server_stopped")


@app.post("/trigger")
async def trigger(request: Request):
    """Run the pipeline for one comment trigger."""
    try:
        body = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from e
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    payload = TriggerPayload.from_dict(body)
    log.info("trigger_webhook_received", owner=payload.owner, repo=payload.repo, issue=payload.issue_number)

    try:
        outcome = await pipeline.handle(payload)
    except RepoPlannerError as e:
        log.error("trigger_processing_failed", error=e.message, exc_info=True)
        raise HTTPException(status_code=422, detail=e.message) from e
    except Exception as e:
        log.error("trigger_processing_unexpected", error=str(e), exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e

    return outcome_to_dict(outcome)


def outcome_to_dict(outcome: StageOutcome) -> dict:
    """JSON-friendly view of a pipeline outcome."""
    data: dict = {
        "status": outcome.status,
        "task": str(outcome.task) if outcome.task else None,
        "message": outcome.message,
    }
    if outcome.milestone is not None:
        data["milestone"] = {
            "number": outcome.milestone.number,
            "title": outcome.milestone.title,
            "url": outcome.milestone.url,
        }
    if outcome.report is not None:
        data["issues_created"] = len(outcome.report.created)
        data["issues_failed"] = len(outcome.report.creation_failures)
        data["attachments_unresolved"] = len(outcome.report.unresolved)
    return data


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "repo-planner-webhook"}


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=MetricsCollector.get_metrics(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)  # nosec B104
