"""Analysis models for LLM-based task suggestion.

This module defines the data exchanged with the Suggestion Generator:
the read-only existing task context, the validated task suggestions, and
the analysis result with its metadata.

The models use Pydantic for validation, consistent with the webhook and
tracker models. LLM output is never loaded into these models directly;
generator.py coerces it first so that a sloppy response degrades to
defaults instead of failing validation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskAction(str, Enum):
    """What a suggestion asks the tracker to do.

    Attributes:
        CREATE: Create a new task.
        UPDATE: Update the task identified by existing_task_id.
    """

    CREATE = "create"
    UPDATE = "update"


class ExistingTaskSummary(BaseModel):
    """Snapshot of a tracker task, used only as LLM context."""

    model_config = ConfigDict(frozen=True)

    id: str
    identifier: str
    title: str
    description: Optional[str] = None
    state: str = "Unknown"
    url: str = ""


class TaskSuggestion(BaseModel):
    """A validated LLM suggestion to create or update a tracker task.

    Attributes:
        action: Create or update.
        title: Task title.
        description: Task body (markdown).
        priority: Linear priority, 1 = urgent through 4 = low.
        labels: Label names; resolved to ids by the Task Mapper.
        assignee_name: Display name to look up, if the LLM proposed one.
        estimate_hours: Optional effort estimate.
        existing_task_id: Tracker id of the task to update.
        reasoning: The LLM's explanation for the suggestion.
        confidence: The LLM's confidence (0.0-1.0).
    """

    action: TaskAction
    title: str = Field(..., min_length=1)
    description: str = ""
    priority: int = Field(default=3, ge=1, le=4)
    labels: list[str] = Field(default_factory=list)
    assignee_name: Optional[str] = None
    estimate_hours: Optional[float] = Field(default=None, ge=0)
    existing_task_id: Optional[str] = None
    reasoning: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class AnalysisMetadata(BaseModel):
    """Bookkeeping attached to every analysis result."""

    analysis_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    model: str
    provider: str
    tokens_used: Optional[int] = None


class AnalysisResult(BaseModel):
    """Result of one LLM analysis.

    When should_create_tasks is False the suggestions must not be acted
    upon, whatever they contain; use actionable_suggestions to honour that.
    """

    summary: str = "Analysis completed"
    suggestions: list[TaskSuggestion] = Field(default_factory=list)
    should_create_tasks: bool = False
    metadata: AnalysisMetadata

    @property
    def actionable_suggestions(self) -> list[TaskSuggestion]:
        """Suggestions to act on, empty unless should_create_tasks is set."""
        if not self.should_create_tasks:
            return []
        return list(self.suggestions)
