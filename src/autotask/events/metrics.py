"""Prometheus series describing delivery throughput and outcomes.

Metrics are exposed at the `/metrics` endpoint in Prometheus text format.

Metrics Defined:
- autotask_deliveries_total: Counter of deliveries by outcome
- autotask_tasks_total: Counter of tracker issues created or updated
- autotask_failures_total: Counter of fatal errors by stage
- autotask_llm_tokens_total: Counter of LLM tokens consumed
- autotask_processing_duration_seconds: Histogram of processing time

The MetricsEventEmitter updates these from pipeline events.

Source:
- src/autotask/events/models.py (PipelineEvent, EventType)
"""

import logging
from typing import Callable, Dict, Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.autotask.events.emitter import EventEmitter
from src.autotask.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# One delivery is one LLM call plus a handful of tracker calls
DEFAULT_DURATION_BUCKETS = (
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    20.0,
    30.0,
    60.0,
    120.0,
)


class PipelineMetrics:
    """The Prometheus series the service exports.

    Metrics:
        deliveries_total: Labels repository, result (received, skipped,
            completed, failed).
        tasks_total: Labels repository, action (created, updated).
        failures_total: Labels repository, stage.
        llm_tokens_total: Labels repository.
        processing_duration_seconds: Labels repository.

    Attributes:
        registry: Registry the series are registered in.

    Example:
        >>> metrics = PipelineMetrics(registry=CollectorRegistry())
        >>> metrics.record_task("org/repo", "created")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Register the series; tests pass an isolated CollectorRegistry."""
        self.registry = registry or REGISTRY

        self.deliveries_total = Counter(
            "autotask_deliveries_total",
            "Total number of webhook deliveries by outcome",
            labelnames=["repository", "result"],
            registry=self.registry,
        )

        self.tasks_total = Counter(
            "autotask_tasks_total",
            "Total number of tracker issues created or updated",
            labelnames=["repository", "action"],
            registry=self.registry,
        )

        self.failures_total = Counter(
            "autotask_failures_total",
            "Total number of deliveries aborted by a fatal error",
            labelnames=["repository", "stage"],
            registry=self.registry,
        )

        self.llm_tokens_total = Counter(
            "autotask_llm_tokens_total",
            "Total number of LLM tokens consumed by analyses",
            labelnames=["repository"],
            registry=self.registry,
        )

        self.processing_duration_seconds = Histogram(
            "autotask_processing_duration_seconds",
            "Time spent processing a delivery in seconds",
            labelnames=["repository"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_delivery(self, repository: str, result: str) -> None:
        self.deliveries_total.labels(repository=repository, result=result).inc()

    def record_task(self, repository: str, action: str) -> None:
        self.tasks_total.labels(repository=repository, action=action).inc()

    def record_failure(self, repository: str, stage: str) -> None:
        self.failures_total.labels(repository=repository, stage=stage).inc()

    def record_tokens(self, repository: str, tokens: int) -> None:
        if tokens > 0:
            self.llm_tokens_total.labels(repository=repository).inc(tokens)

    def record_processing_duration(self, repository: str, duration_seconds: float) -> None:
        self.processing_duration_seconds.labels(repository=repository).observe(duration_seconds)


# Shared by every MetricsEventEmitter bound to the process registry
_default_metrics: Optional[PipelineMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> PipelineMetrics:
    """Return the metrics bound to a registry.

    Args:
        registry: Registry to bind. When omitted the process-wide
            instance on REGISTRY is reused; a given registry always
            gets a fresh instance.
    """
    global _default_metrics

    if registry is not None:
        return PipelineMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = PipelineMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Sink that turns pipeline events into Prometheus updates.

    Each event type maps onto one handler; event types without a handler
    leave the metrics untouched.
    """

    def __init__(
        self,
        metrics: Optional[PipelineMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)
        self._handlers: Dict[EventType, Callable[[PipelineEvent], None]] = {
            EventType.RECEIVED: lambda e: self._metrics.record_delivery(e.repository, "received"),
            EventType.SKIPPED: lambda e: self._metrics.record_delivery(e.repository, "skipped"),
            EventType.ANALYSIS_COMPLETED: self._on_analysis,
            EventType.TASK_CREATED: lambda e: self._metrics.record_task(e.repository, "created"),
            EventType.TASK_UPDATED: lambda e: self._metrics.record_task(e.repository, "updated"),
            EventType.COMPLETION: self._on_completion,
            EventType.ERROR: self._on_error,
        }

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        handler = self._handlers.get(event.event_type)
        if handler is None:
            return
        try:
            handler(event)
        except (TypeError, ValueError):
            logger.warning(
                "Could not record metrics for %s event",
                event.event_type.value,
                extra={"delivery_id": event.delivery_id},
                exc_info=True,
            )

    def _on_analysis(self, event: PipelineEvent) -> None:
        tokens = event.details.get("tokens_used")
        if tokens is not None:
            self._metrics.record_tokens(event.repository, int(tokens))

    def _on_completion(self, event: PipelineEvent) -> None:
        self._metrics.record_delivery(event.repository, "completed")
        duration = event.details.get("duration_seconds")
        if duration is not None:
            self._metrics.record_processing_duration(event.repository, float(duration))

    def _on_error(self, event: PipelineEvent) -> None:
        self._metrics.record_delivery(event.repository, "failed")
        self._metrics.record_failure(event.repository, event.details.get("stage", "unknown"))
