"""LLM-based change analysis.

This module turns a normalized GitHub event into task suggestions:
- Prompt building from commits, pull requests and existing tasks
- Chat-completion call with JSON output
- Best-effort validation and defaulting of the model's response
"""

from src.autotask.analysis.generator import (
    AnalysisError,
    LLMInvalidJSONError,
    LLMNoResponseError,
    LLMRequestError,
    SuggestionGenerator,
)
from src.autotask.analysis.models import (
    AnalysisMetadata,
    AnalysisResult,
    ExistingTaskSummary,
    TaskAction,
    TaskSuggestion,
)
from src.autotask.analysis.prompt import SYSTEM_PROMPT, build_analysis_prompt

__all__ = [
    "AnalysisError",
    "AnalysisMetadata",
    "AnalysisResult",
    "ExistingTaskSummary",
    "LLMInvalidJSONError",
    "LLMNoResponseError",
    "LLMRequestError",
    "SYSTEM_PROMPT",
    "SuggestionGenerator",
    "TaskAction",
    "TaskSuggestion",
    "build_analysis_prompt",
]
