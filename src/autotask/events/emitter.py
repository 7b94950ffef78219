"""Sinks for pipeline events.

Every delivery reports its progress as PipelineEvent objects. Where those
events end up is decided by the configured sinks:

- LoggingEventEmitter writes one log record per event
- MetricsEventEmitter (metrics.py) updates Prometheus series
- CompositeEventEmitter fans an event out to several sinks
- NullEventEmitter drops everything, for tests and wiring defaults

Source:
- src/autotask/events/models.py (PipelineEvent, EventType)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

from src.autotask.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# Event types not listed here are logged at INFO.
EVENT_LOG_LEVELS: Dict[EventType, int] = {
    EventType.ERROR: logging.ERROR,
    EventType.SKIPPED: logging.DEBUG,
}


class EventSinkType(str, Enum):
    """Sink names accepted by AUTOTASK_EVENT_SINKS."""

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Destination for pipeline events.

    A sink may fail; callers treat emission as best-effort and never let a
    sink failure abort a delivery.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Deliver one event to the sink."""

    async def close(self) -> None:
        """Release sink resources. Most sinks hold none."""


class LoggingEventEmitter(EventEmitter):
    """Writes each event as a log record with the event fields in extra.

    Example:
        >>> sink = LoggingEventEmitter()
        >>> await sink.emit(PipelineEvent(
        ...     event_type=EventType.TASK_CREATED,
        ...     delivery_id="orch_1700000000000_ab12cd",
        ...     repository="acme/widgets",
        ...     details={"identifier": "ENG-12"},
        ... ))
        # INFO - Pipeline event: task_created for acme/widgets
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: PipelineEvent) -> None:
        self._logger.log(
            EVENT_LOG_LEVELS.get(event.event_type, logging.INFO),
            "Pipeline event: %s for %s",
            event.event_type.value,
            event.repository,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Forwards every event to each child sink in turn.

    A child that raises is logged and skipped; the remaining children
    still receive the event.
    """

    def __init__(self, emitters: Optional[Sequence[EventEmitter]] = None):
        self._children: List[EventEmitter] = list(emitters or ())

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._children.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Snapshot of the child sinks."""
        return list(self._children)

    async def emit(self, event: PipelineEvent) -> None:
        for child in self._children:
            try:
                await child.emit(event)
            except Exception:
                logger.exception(
                    "Event sink %s rejected %s event",
                    type(child).__name__,
                    event.event_type.value,
                    extra={"sink": type(child).__name__, "delivery_id": event.delivery_id},
                )

    async def close(self) -> None:
        for child in self._children:
            try:
                await child.close()
            except Exception:
                logger.exception("Event sink %s failed to close", type(child).__name__)


class NullEventEmitter(EventEmitter):
    """Sink that ignores every event."""

    async def emit(self, event: PipelineEvent) -> None:
        return None


def parse_sink_types(names: Sequence[str]) -> List[EventSinkType]:
    """Map configured sink names onto EventSinkType; unknown names are logged and dropped."""
    parsed: List[EventSinkType] = []
    for name in names:
        try:
            parsed.append(EventSinkType(name.strip().lower()))
        except ValueError:
            logger.warning("Ignoring unknown event sink %r", name)
    return parsed


def create_event_emitter(
    sink_types: Optional[Sequence[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Build the emitter for the configured sinks.

    With no sinks the service still logs its events, so the result falls
    back to a LoggingEventEmitter. A single sink is returned as is; more
    than one is wrapped in a CompositeEventEmitter.
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    sinks: List[EventEmitter] = []
    for sink_type in sink_types:
        if sink_type is EventSinkType.LOGGING:
            sinks.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type is EventSinkType.METRICS:
            # metrics.py depends on this module
            from src.autotask.events.metrics import MetricsEventEmitter

            sinks.append(MetricsEventEmitter())

    return sinks[0] if len(sinks) == 1 else CompositeEventEmitter(sinks)
