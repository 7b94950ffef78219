"""Pipeline event emission for observability.

Events are emitted at each step of a delivery and routed to the configured
sinks (structured logs, Prometheus metrics).
"""

from src.autotask.events.emitter import (
    CompositeEventEmitter,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
    parse_sink_types,
)
from src.autotask.events.metrics import (
    MetricsEventEmitter,
    PipelineMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.autotask.events.models import EventType, PipelineEvent

__all__ = [
    "CompositeEventEmitter",
    "EventEmitter",
    "EventSinkType",
    "EventType",
    "LoggingEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "PipelineEvent",
    "PipelineMetrics",
    "create_event_emitter",
    "generate_metrics_output",
    "get_metrics",
    "parse_sink_types",
]
