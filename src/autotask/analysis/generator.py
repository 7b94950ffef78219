"""LLM-based task suggestion generator.

This module implements the SuggestionGenerator that sends an analysis
prompt to an OpenAI-compatible chat-completion endpoint and turns the JSON
response into a validated AnalysisResult.

The contract with the LLM is best-effort:
- No response content is fatal (LLMNoResponse)
- Content that is not a JSON object is fatal (LLMInvalidJSON)
- Missing top-level fields are defaulted rather than failing
- Individual suggestions that cannot be coerced are dropped

Every call is a single attempt; the client is built with retries disabled.

Source:
- src/autotask/analysis/models.py (AnalysisResult, TaskSuggestion)
- src/autotask/analysis/prompt.py (SYSTEM_PROMPT, build_analysis_prompt)
- src/autotask/config.py (llm_* settings)
"""

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.autotask.analysis.models import (
    AnalysisMetadata,
    AnalysisResult,
    ExistingTaskSummary,
    TaskAction,
    TaskSuggestion,
)
from src.autotask.analysis.prompt import SYSTEM_PROMPT, build_analysis_prompt
from src.autotask.webhook.models import NormalizedEvent


logger = logging.getLogger(__name__)


DEFAULT_SUMMARY = "Analysis completed"
DEFAULT_PRIORITY = 3


class AnalysisError(Exception):
    """Raised when LLM analysis fails for an event.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the failure.
        code: Stable error tag reported at the webhook boundary.
    """

    code = "LLMAnalysisFailed"

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class LLMRequestError(AnalysisError):
    """The chat-completion request itself failed."""

    code = "LLMRequestFailed"


class LLMNoResponseError(AnalysisError):
    """The chat-completion response carried no content."""

    code = "LLMNoResponse"


class LLMInvalidJSONError(AnalysisError):
    """The response content was not a JSON object.

    Attributes:
        raw_text: The unparsed response, kept for diagnostics.
    """

    code = "LLMInvalidJSON"

    def __init__(
        self,
        message: str,
        raw_text: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, cause=cause)
        self.raw_text = raw_text


def _parse_llm_response(response_text: str) -> Any:
    """Parse the LLM response text as JSON.

    Handles markdown code blocks some providers wrap around JSON mode
    output.

    Raises:
        json.JSONDecodeError: If the response is not valid JSON.
    """
    text = response_text.strip()

    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]

    if text.endswith("```"):
        text = text[:-3]

    return json.loads(text.strip())


def _coerce_priority(value: Any) -> int:
    try:
        priority = int(value)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_PRIORITY
    return max(1, min(4, priority))


def _coerce_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(confidence):
        return 0.0
    return max(0.0, min(1.0, confidence))


def _coerce_estimate(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        estimate = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(estimate) or estimate < 0:
        return None
    return estimate


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_suggestion(raw: Any) -> Optional[TaskSuggestion]:
    """Coerce one raw suggestion into a TaskSuggestion.

    Accepts the nested shape requested in SYSTEM_PROMPT
    (``{"action", "task": {...}, "reasoning", "confidence"}``) and a flat
    shape with the task fields at the top level.

    Returns:
        TaskSuggestion, or None when the suggestion has no usable action
        or title.
    """
    if not isinstance(raw, dict):
        return None

    task = raw.get("task")
    if not isinstance(task, dict):
        task = raw

    action_str = str(raw.get("action", "")).strip().lower()
    try:
        action = TaskAction(action_str)
    except ValueError:
        logger.warning(
            "Dropping suggestion with invalid action",
            extra={"received_action": action_str},
        )
        return None

    title = _optional_str(task.get("title"))
    if title is None:
        logger.warning("Dropping suggestion without a title")
        return None

    labels = task.get("labels", [])
    if not isinstance(labels, list):
        labels = []

    description = task.get("description")

    return TaskSuggestion(
        action=action,
        title=title,
        description=str(description) if description is not None else "",
        priority=_coerce_priority(task.get("priority", DEFAULT_PRIORITY)),
        labels=[label.strip() for label in labels if isinstance(label, str) and label.strip()],
        assignee_name=_optional_str(task.get("assignee")),
        estimate_hours=_coerce_estimate(task.get("estimateHours")),
        existing_task_id=_optional_str(raw.get("existingTaskId")),
        reasoning=str(raw.get("reasoning") or ""),
        confidence=_coerce_confidence(raw.get("confidence")),
    )


def _normalize_analysis(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply defaulting rules to a parsed analysis object.

    Missing ``summary``, ``shouldCreateTasks`` and ``suggestions`` fields
    default to "Analysis completed", False and [] respectively.

    Returns:
        dict with summary, should_create_tasks and suggestions keys.
    """
    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = DEFAULT_SUMMARY

    should_create = data.get("shouldCreateTasks", False)
    if not isinstance(should_create, bool):
        should_create = str(should_create).strip().lower() == "true"

    raw_suggestions = data.get("suggestions", [])
    if not isinstance(raw_suggestions, list):
        raw_suggestions = []

    suggestions: List[TaskSuggestion] = []
    for raw in raw_suggestions:
        suggestion = _normalize_suggestion(raw)
        if suggestion is not None:
            suggestions.append(suggestion)

    return {
        "summary": summary,
        "should_create_tasks": should_create,
        "suggestions": suggestions,
    }


def _extract_total_tokens(response: Any) -> Optional[int]:
    usage = getattr(response, "usage_metadata", None)
    if usage and usage.get("total_tokens") is not None:
        return int(usage["total_tokens"])

    metadata = getattr(response, "response_metadata", None) or {}
    token_usage = metadata.get("token_usage") or {}
    total = token_usage.get("total_tokens")
    return int(total) if total is not None else None


class SuggestionGenerator:
    """LLM-backed generator of task suggestions.

    Connects to any OpenAI-compatible chat-completion endpoint through
    LangChain's ChatOpenAI client and requests JSON object output.

    Attributes:
        api_key: API key for the endpoint.
        model_name: Model to use for inference.
        base_url: Optional endpoint override (OpenRouter, vLLM, ...).
        provider: Provider name recorded in the result metadata.
        max_tokens: Completion token limit.
        temperature: Sampling temperature.

    Example:
        >>> generator = SuggestionGenerator(
        ...     api_key="sk-...",
        ...     model_name="gpt-4o-mini",
        ... )
        >>> result = await generator.analyze(event, existing_tasks=[])
        >>> result.should_create_tasks
        True
    """

    def __init__(
        self,
        api_key: str,
        model_name: str,
        base_url: Optional[str] = None,
        provider: str = "openai",
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.base_url = base_url
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        """Get the LLM client, creating it if necessary."""
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=self.model_name,
                api_key=self.api_key,
                base_url=self.base_url,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                max_retries=0,
            )
        return self._llm

    @property
    def is_configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self.api_key and self.api_key.strip())

    async def analyze(
        self,
        event: NormalizedEvent,
        existing_tasks: Sequence[ExistingTaskSummary] = (),
        project_info: Optional[str] = None,
    ) -> AnalysisResult:
        """Build the prompt for an event and generate suggestions for it."""
        logger.debug(
            "Building analysis prompt",
            extra={
                "repository": event.full_repository,
                "event_kind": event.kind.value,
                "commits_count": len(event.commits),
                "existing_tasks_count": len(existing_tasks),
            },
        )
        prompt = build_analysis_prompt(event, existing_tasks, project_info)
        return await self.generate(prompt)

    async def generate(self, prompt: str) -> AnalysisResult:
        """Send a prompt to the LLM and validate the response.

        Args:
            prompt: The user prompt built by build_analysis_prompt.

        Returns:
            AnalysisResult with metadata populated.

        Raises:
            LLMRequestError: If the request fails.
            LLMNoResponseError: If the response has no content.
            LLMInvalidJSONError: If the content is not a JSON object.
        """
        logger.info(
            "Sending analysis request to LLM",
            extra={
                "model": self.model_name,
                "provider": self.provider,
                "prompt_length": len(prompt),
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
        )

        if not self.is_configured:
            raise LLMRequestError("LLM API key is not configured")

        messages = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]

        try:
            response = await self.llm.ainvoke(
                messages,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise LLMRequestError(f"LLM invocation failed: {e}", cause=e)

        response_text = getattr(response, "content", None)
        if not isinstance(response_text, str) or not response_text.strip():
            logger.error("No response received from LLM", extra={"model": self.model_name})
            raise LLMNoResponseError("No response from LLM")

        tokens_used = _extract_total_tokens(response)

        try:
            parsed = _parse_llm_response(response_text)
        except json.JSONDecodeError as e:
            logger.warning(
                "Failed to parse LLM response as JSON",
                extra={
                    "response_preview": response_text[:200],
                    "error": str(e),
                },
            )
            raise LLMInvalidJSONError(
                f"Invalid JSON response: {e}",
                raw_text=response_text,
                cause=e,
            )

        if not isinstance(parsed, dict):
            raise LLMInvalidJSONError(
                f"Expected a JSON object, got {type(parsed).__name__}",
                raw_text=response_text,
            )

        normalized = _normalize_analysis(parsed)

        result = AnalysisResult(
            summary=normalized["summary"],
            suggestions=normalized["suggestions"],
            should_create_tasks=normalized["should_create_tasks"],
            metadata=AnalysisMetadata(
                analysis_date=datetime.now(timezone.utc),
                model=self.model_name,
                provider=self.provider,
                tokens_used=tokens_used,
            ),
        )

        logger.info(
            "LLM analysis completed",
            extra={
                "should_create_tasks": result.should_create_tasks,
                "suggestions_count": len(result.suggestions),
                "tokens_used": tokens_used,
            },
        )
        return result
