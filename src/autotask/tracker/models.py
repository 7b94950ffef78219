"""Tracker models for Linear issue operations.

This module defines the records returned by the Linear client and the
aggregate outcome of applying a batch of suggestions.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class TrackerIssue(BaseModel):
    """Reference to an issue created, updated or listed in Linear.

    Attributes:
        id: Linear's internal issue id (UUID).
        identifier: Human-readable key, e.g. "ENG-123".
        title: Issue title.
        description: Markdown body, if any.
        url: Browser URL of the issue.
        priority: Linear priority (0 = none, 1 = urgent .. 4 = low).
        state: Workflow state name, e.g. "In Progress".
    """

    id: str
    identifier: str = ""
    title: str = ""
    description: Optional[str] = None
    url: str = ""
    priority: Optional[int] = None
    state: str = "Unknown"


class TrackerLabel(BaseModel):
    """A Linear issue label."""

    id: str
    name: str
    color: Optional[str] = None


class TrackerUser(BaseModel):
    """A Linear workspace member."""

    id: str
    name: str = ""
    display_name: str = ""
    email: Optional[str] = None


class IssueInput(BaseModel):
    """Field values for an issueCreate or issueUpdate mutation.

    Unset fields are omitted from the mutation input, which is what makes
    updates partial.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    team_id: Optional[str] = None
    priority: Optional[int] = None
    assignee_id: Optional[str] = None
    label_ids: Optional[List[str]] = None

    def to_graphql_input(self) -> dict:
        """Render the set fields with Linear's camelCase names."""
        names = {
            "title": "title",
            "description": "description",
            "team_id": "teamId",
            "priority": "priority",
            "assignee_id": "assigneeId",
            "label_ids": "labelIds",
        }
        data = self.model_dump(exclude_none=True)
        return {names[key]: value for key, value in data.items()}


class OperationOutcome(BaseModel):
    """Aggregate result of applying suggestions to the tracker.

    Attributes:
        created: Issues created, in processing order.
        updated: Issues updated, in processing order.
        errors: One human-readable message per failed suggestion.
    """

    created: List[TrackerIssue] = Field(default_factory=list)
    updated: List[TrackerIssue] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def total_processed(self) -> int:
        """Number of suggestions that produced a tracker change."""
        return len(self.created) + len(self.updated)

