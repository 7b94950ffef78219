"""Linear task tracker integration.

This module applies task suggestions to Linear:
- LinearClient - async GraphQL client
- TaskMapper - confidence gate, enrichment, assignee/label resolution
"""

from .client import LinearClient, TrackerAPIError
from .mapper import (
    CONFIDENCE_THRESHOLD,
    LABEL_COLORS,
    MappingError,
    TaskMapper,
    enrich_description,
    pick_label_color,
)
from .models import (
    IssueInput,
    OperationOutcome,
    TrackerIssue,
    TrackerLabel,
    TrackerUser,
)

__all__ = [
    "CONFIDENCE_THRESHOLD",
    "IssueInput",
    "LABEL_COLORS",
    "LinearClient",
    "MappingError",
    "OperationOutcome",
    "TaskMapper",
    "TrackerAPIError",
    "TrackerIssue",
    "TrackerLabel",
    "TrackerUser",
    "enrich_description",
    "pick_label_color",
]
