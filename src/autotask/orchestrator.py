"""Task orchestrator connecting all stages of the AutoTask pipeline.

Drives one webhook delivery through the full pipeline:
normalize → existing tasks → prompt → LLM analysis → task mapping.

The existing-task lookup is best-effort: when it fails the analysis runs
without historical context. Every other failure is fatal for the delivery;
it is logged, emitted as an error event and re-raised for the HTTP layer
to turn into a structured error response.

Source:
- src/autotask/webhook/normalizer.py (EventNormalizer)
- src/autotask/analysis/generator.py (SuggestionGenerator)
- src/autotask/tracker/client.py (LinearClient)
- src/autotask/tracker/mapper.py (TaskMapper)
- src/autotask/events/emitter.py (EventEmitter)
"""

import logging
import random
import string
import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

from src.autotask.analysis.generator import SuggestionGenerator
from src.autotask.analysis.models import ExistingTaskSummary
from src.autotask.events.emitter import EventEmitter, NullEventEmitter
from src.autotask.events.models import EventType, PipelineEvent
from src.autotask.tracker.client import LinearClient
from src.autotask.tracker.mapper import TaskMapper
from src.autotask.tracker.models import OperationOutcome
from src.autotask.webhook.models import NormalizedEvent
from src.autotask.webhook.normalizer import EventNormalizer

logger = logging.getLogger(__name__)


EXISTING_TASKS_LIMIT = 50
HEALTH_PROBE_SEARCH = "test"

ServiceStatus = Literal["healthy", "not_configured", "error"]


class HealthReport(BaseModel):
    """Result of a health check.

    Attributes:
        status: "healthy" when every service is healthy, else "degraded".
        services: Per-service status for "llm" and "linear".
    """

    status: Literal["healthy", "degraded", "error"]
    services: Dict[str, ServiceStatus]


def generate_delivery_id() -> str:
    """Create a correlation id in the form orch_<epoch ms>_<6 random chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"orch_{int(time.time() * 1000)}_{suffix}"


class TaskOrchestrator:
    """Orchestrates the change-to-task pipeline.

    Accepts all dependencies via constructor injection. One instance is
    shared by every request; it holds no per-delivery state.

    Attributes:
        normalizer: Converts raw payloads into NormalizedEvent.
        generator: LLM suggestion generator.
        tracker_client: Linear client, used for context and health.
        mapper: Applies suggestions to Linear.
        event_emitter: Emits pipeline events for observability.
        team_id: Linear team used to scope the existing-task lookup.
        project_info: Project context added to every prompt; when unset
            the repository description is used.
    """

    def __init__(
        self,
        normalizer: EventNormalizer,
        generator: SuggestionGenerator,
        tracker_client: LinearClient,
        mapper: TaskMapper,
        event_emitter: Optional[EventEmitter] = None,
        team_id: Optional[str] = None,
        project_info: Optional[str] = None,
    ):
        self.normalizer = normalizer
        self.generator = generator
        self.tracker_client = tracker_client
        self.mapper = mapper
        self.event_emitter = event_emitter or NullEventEmitter()
        self.team_id = team_id
        self.project_info = project_info

    async def process_delivery(
        self,
        event_name: str,
        payload: Any,
    ) -> Optional[OperationOutcome]:
        """Normalize a raw delivery and run it through the pipeline.

        Args:
            event_name: Value of the X-GitHub-Event header.
            payload: Decoded JSON body.

        Returns:
            The OperationOutcome, or None when the delivery was ignored.

        Raises:
            MalformedPayloadError: If a supported delivery lacks structure.
            AnalysisError: If LLM analysis fails.
        """
        delivery_id = generate_delivery_id()

        try:
            event = self.normalizer.normalize(event_name, payload)
        except Exception as exc:
            await self._fail(delivery_id, _payload_repository(payload), "normalize", exc)
            raise

        if event is None:
            logger.info(
                "Delivery ignored",
                extra={"event_name": event_name, "delivery_id": delivery_id},
            )
            await self._safe_emit(
                EventType.SKIPPED,
                delivery_id,
                _payload_repository(payload),
                {"reason": "unsupported_event", "event_name": event_name},
            )
            return None

        return await self.process_event(event, delivery_id=delivery_id)

    async def process_event(
        self,
        event: NormalizedEvent,
        delivery_id: Optional[str] = None,
    ) -> OperationOutcome:
        """Run a normalized event through analysis and task mapping.

        Returns:
            OperationOutcome; empty when the LLM decided no tasks are needed
            or returned no suggestions.
        """
        delivery_id = delivery_id or generate_delivery_id()
        repository = event.full_repository
        started = time.monotonic()

        logger.info(
            "Processing GitHub event",
            extra={
                "delivery_id": delivery_id,
                "repository": repository,
                "event_kind": event.kind.value,
                "commits_count": len(event.commits),
                "has_pull_request": event.pull_request is not None,
            },
        )
        await self._safe_emit(
            EventType.RECEIVED,
            delivery_id,
            repository,
            {"event_kind": event.kind.value, "commits": len(event.commits)},
        )

        existing_tasks = await self.fetch_existing_tasks(repository, delivery_id)

        stage = "analysis"
        try:
            analysis = await self.generator.analyze(
                event,
                existing_tasks,
                self.project_info or event.repository.description or None,
            )
            await self._safe_emit(
                EventType.ANALYSIS_COMPLETED,
                delivery_id,
                repository,
                {
                    "suggestions": len(analysis.suggestions),
                    "should_create_tasks": analysis.should_create_tasks,
                    "tokens_used": analysis.metadata.tokens_used,
                    "model": analysis.metadata.model,
                },
            )

            if not analysis.should_create_tasks:
                logger.info(
                    "LLM determined no tasks should be created",
                    extra={
                        "delivery_id": delivery_id,
                        "repository": repository,
                        "summary": analysis.summary,
                    },
                )
                await self._safe_emit(
                    EventType.SKIPPED, delivery_id, repository, {"reason": "llm_decision"}
                )
                return OperationOutcome()

            if not analysis.suggestions:
                logger.warning(
                    "No task suggestions received from LLM",
                    extra={"delivery_id": delivery_id, "repository": repository},
                )
                await self._safe_emit(
                    EventType.SKIPPED, delivery_id, repository, {"reason": "no_suggestions"}
                )
                return OperationOutcome()

            stage = "mapping"
            outcome = await self.mapper.process_suggestions(
                analysis.actionable_suggestions,
                repository,
            )
        except Exception as exc:
            await self._fail(delivery_id, repository, stage, exc)
            raise

        for issue in outcome.created:
            await self._safe_emit(
                EventType.TASK_CREATED,
                delivery_id,
                repository,
                {"identifier": issue.identifier, "url": issue.url},
            )
        for issue in outcome.updated:
            await self._safe_emit(
                EventType.TASK_UPDATED,
                delivery_id,
                repository,
                {"identifier": issue.identifier, "url": issue.url},
            )

        duration = time.monotonic() - started
        logger.info(
            "Task processing completed",
            extra={
                "delivery_id": delivery_id,
                "repository": repository,
                "created_count": len(outcome.created),
                "updated_count": len(outcome.updated),
                "error_count": len(outcome.errors),
                "created_tasks": [issue.identifier for issue in outcome.created],
                "tokens_used": analysis.metadata.tokens_used,
            },
        )
        await self._safe_emit(
            EventType.COMPLETION,
            delivery_id,
            repository,
            {
                "created_count": len(outcome.created),
                "updated_count": len(outcome.updated),
                "error_count": len(outcome.errors),
                "duration_seconds": duration,
            },
        )
        return outcome

    async def fetch_existing_tasks(
        self,
        repository: str,
        delivery_id: Optional[str] = None,
    ) -> List[ExistingTaskSummary]:
        """Fetch tracker tasks mentioning the repository.

        Failure degrades to an empty list so that analysis still runs.
        """
        try:
            issues = await self.tracker_client.list_issues(
                repository,
                team_id=self.team_id,
                first=EXISTING_TASKS_LIMIT,
            )
        except Exception as exc:
            logger.warning(
                "Failed to fetch existing tasks, continuing without context",
                extra={
                    "delivery_id": delivery_id,
                    "repository": repository,
                    "error": str(exc),
                },
            )
            return []

        logger.debug(
            "Existing tasks fetched",
            extra={"delivery_id": delivery_id, "task_count": len(issues)},
        )
        return [
            ExistingTaskSummary(
                id=issue.id,
                identifier=issue.identifier,
                title=issue.title,
                description=issue.description,
                state=issue.state,
                url=issue.url,
            )
            for issue in issues
        ]

    async def health_check(self) -> HealthReport:
        """Probe the tracker and report LLM configuration.

        The tracker is healthy when a one-item issue listing succeeds. The
        LLM is never called; it is healthy when an API key is configured.
        """
        services: Dict[str, ServiceStatus] = {}

        try:
            await self.tracker_client.list_issues(
                HEALTH_PROBE_SEARCH,
                team_id=self.team_id,
                first=1,
            )
            services["linear"] = "healthy"
        except Exception as exc:
            logger.warning("Linear health probe failed", extra={"error": str(exc)})
            services["linear"] = "error"

        services["llm"] = "healthy" if self.generator.is_configured else "not_configured"

        status = "healthy" if all(s == "healthy" for s in services.values()) else "degraded"
        return HealthReport(status=status, services=services)

    async def _fail(
        self,
        delivery_id: str,
        repository: str,
        stage: str,
        exc: Exception,
    ) -> None:
        logger.exception(
            "Error processing GitHub event",
            extra={"delivery_id": delivery_id, "repository": repository, "stage": stage},
        )
        details = {
            "error_message": str(exc),
            "error_type": type(exc).__name__,
            "stage": stage,
        }
        code = getattr(exc, "code", None)
        if code:
            details["error_code"] = code
        await self._safe_emit(EventType.ERROR, delivery_id, repository, details)

    async def _safe_emit(
        self,
        event_type: EventType,
        delivery_id: str,
        repository: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Emit an event; emission failures are logged, never raised."""
        try:
            event = PipelineEvent(
                event_type=event_type,
                delivery_id=delivery_id,
                repository=repository or "unknown",
                details=details or {},
            )
            await self.event_emitter.emit(event)
        except Exception:
            logger.warning(
                "Failed to emit %s event",
                event_type.value,
                extra={"delivery_id": delivery_id},
                exc_info=True,
            )


def _payload_repository(payload: Any) -> str:
    if isinstance(payload, dict):
        repository = payload.get("repository")
        if isinstance(repository, dict) and repository.get("full_name"):
            return str(repository["full_name"])
    return "unknown"
