"""Unit tests for pipeline event emitters and Prometheus metrics."""

import asyncio
import logging
from unittest.mock import AsyncMock

from prometheus_client import CollectorRegistry

from src.autotask.events import (
    CompositeEventEmitter,
    EventSinkType,
    EventType,
    LoggingEventEmitter,
    MetricsEventEmitter,
    NullEventEmitter,
    PipelineEvent,
    PipelineMetrics,
    create_event_emitter,
    generate_metrics_output,
    parse_sink_types,
)


def run_async(coro):
    return asyncio.run(coro)


def _make_event(event_type=EventType.TASK_CREATED, **details) -> PipelineEvent:
    return PipelineEvent(
        event_type=event_type,
        delivery_id="orch_1700000000000_ab12cd",
        repository="acme/widgets",
        details=details,
    )


class TestPipelineEvent:
    def test_to_log_dict_flattens_details(self):
        log_dict = _make_event(identifier="ENG-1").to_log_dict()

        assert log_dict["event_type"] == "task_created"
        assert log_dict["delivery_id"] == "orch_1700000000000_ab12cd"
        assert log_dict["repository"] == "acme/widgets"
        assert log_dict["identifier"] == "ENG-1"
        assert "timestamp" in log_dict


class TestLoggingEventEmitter:
    def test_error_logged_at_error_level(self, caplog):
        emitter = LoggingEventEmitter(logger_name="autotask.test.events")

        with caplog.at_level(logging.DEBUG, logger="autotask.test.events"):
            run_async(emitter.emit(_make_event(EventType.ERROR, stage="analysis")))

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.stage == "analysis"
        assert "error for acme/widgets" in record.getMessage()

    def test_task_created_logged_at_info(self, caplog):
        emitter = LoggingEventEmitter(logger_name="autotask.test.events")

        with caplog.at_level(logging.DEBUG, logger="autotask.test.events"):
            run_async(emitter.emit(_make_event()))

        assert caplog.records[-1].levelno == logging.INFO


class TestCompositeEventEmitter:
    def test_failing_child_does_not_block_others(self):
        failing = AsyncMock()
        failing.emit.side_effect = RuntimeError("sink down")
        healthy = AsyncMock()
        composite = CompositeEventEmitter([failing, healthy])

        run_async(composite.emit(_make_event()))

        healthy.emit.assert_awaited_once()

    def test_close_closes_children(self):
        child = AsyncMock()
        composite = CompositeEventEmitter()
        composite.add_emitter(child)

        run_async(composite.close())

        child.close.assert_awaited_once()


class TestFactory:
    def test_default_is_logging(self):
        assert isinstance(create_event_emitter(), LoggingEventEmitter)

    def test_logging_and_metrics_is_composite(self):
        emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])

        assert isinstance(emitter, CompositeEventEmitter)
        assert [type(e) for e in emitter.emitters] == [LoggingEventEmitter, MetricsEventEmitter]

    def test_parse_sink_types_skips_unknown(self):
        assert parse_sink_types(["logging", "kafka", "METRICS"]) == [
            EventSinkType.LOGGING,
            EventSinkType.METRICS,
        ]

    def test_null_emitter_accepts_events(self):
        run_async(NullEventEmitter().emit(_make_event()))


class TestMetricsEventEmitter:
    def _emitter(self):
        registry = CollectorRegistry()
        return MetricsEventEmitter(metrics=PipelineMetrics(registry=registry)), registry

    def test_task_events_counted(self):
        emitter, registry = self._emitter()

        run_async(emitter.emit(_make_event(EventType.TASK_CREATED)))
        run_async(emitter.emit(_make_event(EventType.TASK_CREATED)))
        run_async(emitter.emit(_make_event(EventType.TASK_UPDATED)))

        labels = {"repository": "acme/widgets"}
        assert registry.get_sample_value(
            "autotask_tasks_total", {**labels, "action": "created"}
        ) == 2.0
        assert registry.get_sample_value(
            "autotask_tasks_total", {**labels, "action": "updated"}
        ) == 1.0

    def test_error_counted_by_stage(self):
        emitter, registry = self._emitter()

        run_async(emitter.emit(_make_event(EventType.ERROR, stage="analysis")))

        assert registry.get_sample_value(
            "autotask_failures_total",
            {"repository": "acme/widgets", "stage": "analysis"},
        ) == 1.0
        assert registry.get_sample_value(
            "autotask_deliveries_total",
            {"repository": "acme/widgets", "result": "failed"},
        ) == 1.0

    def test_completion_records_duration(self):
        emitter, registry = self._emitter()

        run_async(emitter.emit(_make_event(EventType.COMPLETION, duration_seconds=3.2)))

        assert registry.get_sample_value(
            "autotask_processing_duration_seconds_count",
            {"repository": "acme/widgets"},
        ) == 1.0

    def test_tokens_accumulated(self):
        emitter, registry = self._emitter()

        run_async(emitter.emit(_make_event(EventType.ANALYSIS_COMPLETED, tokens_used=120)))
        run_async(emitter.emit(_make_event(EventType.ANALYSIS_COMPLETED, tokens_used=None)))

        assert registry.get_sample_value(
            "autotask_llm_tokens_total", {"repository": "acme/widgets"}
        ) == 120.0

    def test_generate_metrics_output(self):
        emitter, registry = self._emitter()
        run_async(emitter.emit(_make_event(EventType.TASK_CREATED)))

        output = generate_metrics_output(registry)

        assert b"autotask_tasks_total" in output
