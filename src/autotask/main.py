"""FastAPI application entry point for AutoTask.

This module provides the HTTP surface of the service:
- POST /webhooks/github: verified GitHub deliveries drive the pipeline
- GET /health: tracker probe plus LLM configuration
- GET /config: configuration report without secret values
- GET /metrics: Prometheus metrics

Services are built once in the lifespan and shared through app.state.
Each delivery is processed to completion before the response is sent.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from json import JSONDecodeError
from typing import AsyncIterator, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from src.autotask import __version__
from src.autotask.analysis.generator import AnalysisError, SuggestionGenerator
from src.autotask.config import (
    AutoTaskSettings,
    build_configuration_report,
    get_settings,
    redact_secret,
)
from src.autotask.events.emitter import create_event_emitter, parse_sink_types
from src.autotask.events.metrics import generate_metrics_output
from src.autotask.orchestrator import TaskOrchestrator
from src.autotask.tracker.client import LinearClient
from src.autotask.tracker.mapper import TaskMapper
from src.autotask.webhook.normalizer import EventNormalizer, MalformedPayloadError
from src.autotask.webhook.signature import SIGNATURE_HEADER, verify_signature

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

EVENT_HEADER = "X-GitHub-Event"


def _log_configuration(settings: AutoTaskSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("AutoTask configuration:")
    logger.info(f"  GitHub Webhook Secret: {redact_secret(settings.github_webhook_secret)}")
    logger.info(f"  Linear API URL: {settings.linear_api_url}")
    logger.info(f"  Linear API Key: {redact_secret(settings.linear_api_key)}")
    logger.info(f"  Linear Team ID: {settings.linear_team_id or '(not set)'}")
    logger.info(f"  Linear Default Priority: {settings.linear_default_priority}")
    logger.info(f"  LLM Provider: {settings.llm_provider}")
    logger.info(f"  LLM Model: {settings.llm_model}")
    logger.info(f"  LLM Base URL: {settings.llm_base_url or '(provider default)'}")
    logger.info(f"  LLM API Key: {redact_secret(settings.llm_api_key) or '(not set)'}")
    logger.info(f"  Event Sinks: {', '.join(settings.event_sink_names)}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")

    if not settings.linear_team_id:
        logger.warning("AUTOTASK_LINEAR_TEAM_ID is not set; issues will not be scoped to a team")
    if not settings.llm_configured:
        logger.warning("AUTOTASK_LLM_API_KEY is not set; analysis requests will fail")


def build_orchestrator(
    settings: AutoTaskSettings,
    tracker_client: LinearClient,
) -> TaskOrchestrator:
    """Wire all pipeline dependencies into a TaskOrchestrator."""
    generator = SuggestionGenerator(
        api_key=settings.llm_api_key,
        model_name=settings.llm_model,
        base_url=settings.llm_base_url,
        provider=settings.llm_provider,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )

    mapper = TaskMapper(
        client=tracker_client,
        team_id=settings.linear_team_id,
        default_priority=settings.linear_default_priority,
        default_assignee_id=settings.linear_default_assignee_id,
        default_label_ids=settings.default_label_ids,
    )

    event_emitter = create_event_emitter(parse_sink_types(settings.event_sink_names))

    return TaskOrchestrator(
        normalizer=EventNormalizer(),
        generator=generator,
        tracker_client=tracker_client,
        mapper=mapper,
        event_emitter=event_emitter,
        team_id=settings.linear_team_id,
        project_info=settings.project_description,
    )


router = APIRouter()


@router.post("/webhooks/github")
async def github_webhook(request: Request) -> JSONResponse:
    """GitHub webhook receiver endpoint.

    Verifies the X-Hub-Signature-256 header, then runs the delivery
    through the pipeline before answering.

    Returns:
        200 for processed and ignored deliveries, 400 for a missing event
        header or malformed payload, 401 for a missing or invalid
        signature, 500 for fatal pipeline errors.
    """
    settings: AutoTaskSettings = request.app.state.settings
    orchestrator: TaskOrchestrator = request.app.state.orchestrator

    event_name = request.headers.get(EVENT_HEADER)
    signature = request.headers.get(SIGNATURE_HEADER)

    logger.info(
        "Webhook request received",
        extra={
            "github_event": event_name,
            "has_signature": signature is not None,
            "user_agent": request.headers.get("user-agent"),
        },
    )

    if not event_name:
        logger.warning("Missing GitHub event header")
        return JSONResponse(
            status_code=400,
            content={"error": f"Missing {EVENT_HEADER} header"},
        )

    if not signature:
        logger.warning("Missing GitHub signature header")
        return JSONResponse(
            status_code=401,
            content={"error": f"Missing {SIGNATURE_HEADER} header"},
        )

    body = await request.body()
    if not verify_signature(settings.github_webhook_secret, body, signature):
        logger.warning("Webhook signature verification failed", extra={"github_event": event_name})
        return JSONResponse(
            status_code=401,
            content={
                "error": "Webhook signature verification failed",
                "message": "Please check your GitHub webhook secret configuration",
            },
        )

    try:
        payload = await request.json()
    except (JSONDecodeError, UnicodeDecodeError) as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid JSON payload", "message": str(e)},
        )

    try:
        outcome = await orchestrator.process_delivery(event_name, payload)
    except MalformedPayloadError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Malformed payload", "message": e.message},
        )
    except AnalysisError as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": e.code, "message": e.message},
        )
    except Exception as e:
        logger.exception("Webhook handler error", extra={"github_event": event_name})
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(e)},
        )

    content = {"success": True, "processed": outcome is not None}
    if outcome is not None:
        content.update(
            {
                "created": [issue.identifier for issue in outcome.created],
                "updated": [issue.identifier for issue in outcome.updated],
                "errors": outcome.errors,
            }
        )
    logger.info("Webhook processed successfully", extra={"github_event": event_name})
    return JSONResponse(status_code=200, content=content)


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Health endpoint: 200 when healthy, 503 otherwise."""
    orchestrator: TaskOrchestrator = request.app.state.orchestrator
    timestamp = datetime.now(timezone.utc).isoformat()

    try:
        report = await orchestrator.health_check()
    except Exception as e:
        logger.exception("Health check failed")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": str(e), "timestamp": timestamp},
        )

    status_code = 200 if report.status == "healthy" else 503
    logger.info(
        "Health check completed",
        extra={"status": report.status, "status_code": status_code},
    )
    return JSONResponse(
        status_code=status_code,
        content={
            **report.model_dump(),
            "timestamp": timestamp,
            "version": __version__,
        },
    )


@router.get("/config")
async def config(request: Request) -> dict:
    """Configuration report with presence flags only."""
    return build_configuration_report(request.app.state.settings)


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)


def create_app(
    settings: Optional[AutoTaskSettings] = None,
    orchestrator: Optional[TaskOrchestrator] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment at startup
            when omitted.
        orchestrator: Pre-built orchestrator; built from settings at
            startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("AutoTask starting up...")

        app_settings = settings or get_settings()
        logging.getLogger().setLevel(app_settings.log_level.upper())
        _log_configuration(app_settings)

        tracker_client: Optional[LinearClient] = None
        app_orchestrator = orchestrator
        if app_orchestrator is None:
            tracker_client = LinearClient(
                api_key=app_settings.linear_api_key,
                api_url=app_settings.linear_api_url,
            )
            app_orchestrator = build_orchestrator(app_settings, tracker_client)

        app.state.settings = app_settings
        app.state.orchestrator = app_orchestrator

        logger.info("AutoTask started successfully")

        yield

        logger.info("AutoTask shutting down...")
        await app_orchestrator.event_emitter.close()
        if tracker_client is not None:
            await tracker_client.close()
        logger.info("AutoTask shutdown complete")

    app = FastAPI(
        title="AutoTask",
        description="Turns GitHub changes into Linear tasks using an LLM",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.autotask.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
