"""Unit tests for the SuggestionGenerator.

The ChatOpenAI client is replaced with an AsyncMock so that the tests
exercise response handling without network access.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.autotask.analysis import (
    LLMInvalidJSONError,
    LLMNoResponseError,
    LLMRequestError,
    SuggestionGenerator,
    TaskAction,
)
from src.autotask.analysis.generator import _parse_llm_response
from src.autotask.webhook.models import Commit, EventKind, NormalizedEvent, Repository


def run_async(coro):
    return asyncio.run(coro)


def _make_generator(content=None, side_effect=None, usage=None):
    generator = SuggestionGenerator(api_key="sk-test", model_name="gpt-4o-mini")
    llm = AsyncMock()
    if side_effect is not None:
        llm.ainvoke.side_effect = side_effect
    else:
        message = AIMessage(content=content)
        if usage is not None:
            message = AIMessage(content=content, usage_metadata=usage)
        llm.ainvoke.return_value = message
    generator._llm = llm
    return generator


def _response(**body):
    return json.dumps(body)


class TestGenerate:
    def test_valid_response(self):
        content = _response(
            summary="Fixes login",
            shouldCreateTasks=True,
            suggestions=[
                {
                    "action": "create",
                    "task": {
                        "title": "Fix X",
                        "description": "Details",
                        "priority": 2,
                        "labels": ["bug"],
                        "assignee": "Jane",
                        "estimateHours": 3,
                    },
                    "reasoning": "Commit mentions a bug",
                    "confidence": 0.9,
                }
            ],
        )
        generator = _make_generator(
            content,
            usage={"input_tokens": 100, "output_tokens": 20, "total_tokens": 120},
        )

        result = run_async(generator.generate("prompt"))

        assert result.summary == "Fixes login"
        assert result.should_create_tasks is True
        suggestion = result.suggestions[0]
        assert suggestion.action == TaskAction.CREATE
        assert suggestion.title == "Fix X"
        assert suggestion.priority == 2
        assert suggestion.labels == ["bug"]
        assert suggestion.assignee_name == "Jane"
        assert suggestion.estimate_hours == 3
        assert suggestion.confidence == 0.9
        assert result.metadata.tokens_used == 120
        assert result.metadata.model == "gpt-4o-mini"
        assert result.metadata.provider == "openai"

    def test_sends_system_and_user_messages_in_json_mode(self):
        generator = _make_generator(_response(shouldCreateTasks=False))

        run_async(generator.generate("the prompt"))

        args, kwargs = generator._llm.ainvoke.call_args
        messages = args[0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == "the prompt"
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_missing_fields_are_defaulted(self):
        generator = _make_generator("{}")

        result = run_async(generator.generate("prompt"))

        assert result.summary == "Analysis completed"
        assert result.should_create_tasks is False
        assert result.suggestions == []
        assert result.metadata.tokens_used is None

    def test_code_fenced_json_accepted(self):
        generator = _make_generator('```json\n{"summary": "ok"}\n```')

        result = run_async(generator.generate("prompt"))

        assert result.summary == "ok"

    def test_invalid_json_raises_with_raw_text(self):
        generator = _make_generator("not json")

        with pytest.raises(LLMInvalidJSONError) as exc_info:
            run_async(generator.generate("prompt"))

        assert exc_info.value.code == "LLMInvalidJSON"
        assert exc_info.value.raw_text == "not json"

    def test_json_array_rejected(self):
        generator = _make_generator("[1, 2, 3]")

        with pytest.raises(LLMInvalidJSONError):
            run_async(generator.generate("prompt"))

    @pytest.mark.parametrize("content", ["", "   "])
    def test_empty_content_raises_no_response(self, content):
        generator = _make_generator(content)

        with pytest.raises(LLMNoResponseError) as exc_info:
            run_async(generator.generate("prompt"))

        assert exc_info.value.code == "LLMNoResponse"

    def test_transport_error_wrapped(self):
        cause = ConnectionError("connection refused")
        generator = _make_generator(side_effect=cause)

        with pytest.raises(LLMRequestError) as exc_info:
            run_async(generator.generate("prompt"))

        assert exc_info.value.cause is cause
        assert exc_info.value.code == "LLMRequestFailed"

    def test_token_usage_from_response_metadata(self):
        generator = SuggestionGenerator(api_key="sk-test", model_name="m")
        generator._llm = AsyncMock()
        generator._llm.ainvoke.return_value = AIMessage(
            content="{}",
            response_metadata={"token_usage": {"total_tokens": 42}},
        )

        result = run_async(generator.generate("prompt"))

        assert result.metadata.tokens_used == 42


class TestSuggestionCoercion:
    def _generate(self, suggestions):
        generator = _make_generator(
            _response(shouldCreateTasks=True, suggestions=suggestions)
        )
        return run_async(generator.generate("prompt")).suggestions

    def test_priority_and_confidence_clamped(self):
        suggestions = self._generate(
            [
                {"action": "create", "task": {"title": "A", "priority": 9}, "confidence": 1.5},
                {"action": "create", "task": {"title": "B", "priority": 0}, "confidence": -1},
            ]
        )

        assert [s.priority for s in suggestions] == [4, 1]
        assert [s.confidence for s in suggestions] == [1.0, 0.0]

    def test_infinite_priority_defaulted(self):
        content = (
            '{"shouldCreateTasks": true, "suggestions": [{"action": "create", '
            '"task": {"title": "Fix X", "priority": 1e999}, "confidence": 0.9}]}'
        )
        generator = _make_generator(content)

        suggestions = run_async(generator.generate("prompt")).suggestions

        assert suggestions[0].priority == 3
        assert suggestions[0].confidence == 0.9

    def test_non_string_labels_dropped(self):
        suggestions = self._generate(
            [
                {
                    "action": "create",
                    "task": {"title": "A", "labels": [None, {"a": 1}, 7, " bug ", ""]},
                }
            ]
        )

        assert suggestions[0].labels == ["bug"]

    def test_missing_priority_and_confidence_defaulted(self):
        suggestions = self._generate([{"action": "create", "task": {"title": "A"}}])

        assert suggestions[0].priority == 3
        assert suggestions[0].confidence == 0.0

    def test_invalid_action_dropped(self):
        suggestions = self._generate(
            [
                {"action": "delete", "task": {"title": "A"}},
                {"action": "create", "task": {"title": "B"}},
            ]
        )

        assert [s.title for s in suggestions] == ["B"]

    def test_missing_title_dropped(self):
        suggestions = self._generate([{"action": "create", "task": {"description": "x"}}])

        assert suggestions == []

    def test_flat_shape_accepted(self):
        suggestions = self._generate(
            [{"action": "update", "title": "Flat", "existingTaskId": "uuid-1", "confidence": 0.8}]
        )

        assert suggestions[0].title == "Flat"
        assert suggestions[0].action == TaskAction.UPDATE
        assert suggestions[0].existing_task_id == "uuid-1"

    def test_non_list_suggestions_defaulted(self):
        generator = _make_generator(_response(shouldCreateTasks=True, suggestions="none"))

        result = run_async(generator.generate("prompt"))

        assert result.suggestions == []


class TestAnalyze:
    def test_builds_prompt_from_event(self):
        generator = _make_generator(_response(shouldCreateTasks=False))
        event = NormalizedEvent(
            kind=EventKind.PUSH,
            repository=Repository(full_name="acme/widgets"),
            commits=[Commit(id="a", message="Fix login redirect")],
        )

        run_async(generator.analyze(event, [], "Payments"))

        messages = generator._llm.ainvoke.call_args[0][0]
        assert "Repository: acme/widgets" in messages[1].content
        assert "1. Fix login redirect" in messages[1].content
        assert "Project Context:\nPayments" in messages[1].content


class TestConfiguration:
    def test_is_configured(self):
        assert SuggestionGenerator(api_key="sk", model_name="m").is_configured is True
        assert SuggestionGenerator(api_key="", model_name="m").is_configured is False

    def test_generate_without_key_fails_before_calling_llm(self):
        generator = SuggestionGenerator(api_key=None, model_name="m")
        generator._llm = AsyncMock()

        with pytest.raises(LLMRequestError, match="not configured"):
            run_async(generator.generate("prompt"))

        generator._llm.ainvoke.assert_not_called()

    def test_llm_client_created_lazily_without_retries(self):
        generator = SuggestionGenerator(
            api_key="sk-test",
            model_name="gpt-4o-mini",
            base_url="https://openrouter.ai/api/v1",
        )

        assert generator._llm is None
        llm = generator.llm
        assert llm is generator.llm
        assert llm.max_retries == 0


def test_parse_llm_response_strips_plain_fence():
    assert _parse_llm_response('```\n{"a": 1}\n```') == {"a": 1}
