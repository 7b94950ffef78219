"""Events describing the progress of one webhook delivery.

This module defines the data models for pipeline events:
- EventType: What happened
- PipelineEvent: Structured event with delivery and repository context

Events are emitted at the key points of one webhook delivery so that logs
and metrics can follow it from receipt to the last tracker call.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted while processing a delivery.

    Attributes:
        RECEIVED: A delivery was normalized and entered the pipeline.
        SKIPPED: A delivery was ignored (unsupported event or action) or
            analysis produced nothing to act on.
        ANALYSIS_COMPLETED: The LLM returned a valid analysis.
        TASK_CREATED: A tracker issue was created.
        TASK_UPDATED: A tracker issue was updated.
        COMPLETION: The pipeline finished a delivery.
        ERROR: A fatal error aborted the delivery.
    """

    RECEIVED = "received"
    SKIPPED = "skipped"
    ANALYSIS_COMPLETED = "analysis_completed"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    COMPLETION = "completion"
    ERROR = "error"


class PipelineEvent(BaseModel):
    """Structured event emitted by the pipeline.

    Attributes:
        event_type: The category of event.
        delivery_id: Correlation id of the pipeline run (orch_<ms>_<rand>).
        repository: Full repository path in format "{owner}/{repo}", or
            "unknown" before normalization.
        timestamp: Emission time in UTC.
        details: Event-specific context, see below.

    Keys carried in details:
        For SKIPPED events:
            - reason: Why the delivery was not processed

        For ANALYSIS_COMPLETED events:
            - suggestions: Number of suggestions
            - should_create_tasks: The LLM's decision
            - tokens_used: Total tokens, when reported

        For TASK_CREATED / TASK_UPDATED events:
            - identifier: Linear issue key
            - url: Linear issue URL

        For COMPLETION events:
            - created_count, updated_count, error_count: Outcome counts
            - duration_seconds: Wall-clock time from receipt to completion

        For ERROR events:
            - error_message: str() of the exception
            - error_type: Exception class name
            - error_code: Stable error tag, when the error has one
            - stage: Pipeline stage where the error occurred
    """

    event_type: EventType = Field(
        ...,
        description="What happened",
    )

    delivery_id: str = Field(
        ...,
        min_length=1,
        description="Correlation id of the pipeline run",
    )

    repository: str = Field(
        default="unknown",
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Emission time in UTC",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific context",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary for structured logging.

        Returns:
            Dict[str, Any]: Event fields with an ISO timestamp, details
            merged in at the top level.
        """
        return {
            "event_type": self.event_type.value,
            "delivery_id": self.delivery_id,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
