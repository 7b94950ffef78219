"""Normalized GitHub event models.

This module defines the internal representation of a GitHub webhook
delivery after normalization. Only push and pull_request deliveries are
represented; everything else is filtered out before a model is built.

The models are frozen: a NormalizedEvent is created once per delivery,
handed to the analysis stage, and discarded after processing.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Kinds of normalized events.

    The kind is inferred from the payload shape rather than taken from the
    transport header: a payload with commits is a push, a payload carrying a
    pull request object is a pull request.

    Attributes:
        PUSH: One or more commits were pushed.
        PULL_REQUEST: A pull request changed state.
    """

    PUSH = "push"
    PULL_REQUEST = "pull_request"


class PullRequestAction(str, Enum):
    """Pull request actions that are analyzed.

    Other actions (labeled, assigned, edited, ...) are ignored.
    """

    OPENED = "opened"
    CLOSED = "closed"
    REOPENED = "reopened"
    SYNCHRONIZE = "synchronize"
    READY_FOR_REVIEW = "ready_for_review"


class Repository(BaseModel):
    """Repository identity extracted from the payload."""

    model_config = ConfigDict(frozen=True)

    full_name: str = Field(
        ...,
        min_length=1,
        description='Repository path in format "{owner}/{repo}"',
    )
    name: str = Field(default="", description="Repository name without owner")
    description: Optional[str] = Field(
        default=None,
        description="Repository description, if any",
    )
    url: Optional[str] = Field(default=None, description="Repository HTML URL")


class Commit(BaseModel):
    """A single pushed commit."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    message: str = ""
    author_name: str = ""
    author_email: Optional[str] = None
    timestamp: Optional[str] = None
    url: Optional[str] = None
    files_added: list[str] = Field(default_factory=list)
    files_removed: list[str] = Field(default_factory=list)
    files_modified: list[str] = Field(default_factory=list)


class PullRequest(BaseModel):
    """The pull request carried by a pull_request delivery."""

    model_config = ConfigDict(frozen=True)

    number: int
    title: str = ""
    body: Optional[str] = None
    author_login: str = ""
    head_ref: str = ""
    base_ref: str = ""
    state: str = ""
    url: Optional[str] = None


class NormalizedEvent(BaseModel):
    """Normalized GitHub event consumed by the analysis pipeline.

    Attributes:
        kind: Push or pull request, inferred from the payload shape.
        repository: The repository the event belongs to.
        commits: Pushed commits (empty for pull request events).
        pull_request: The pull request (None for push events).
        action: The pull request action, when applicable.
        sender: Login of the user that triggered the delivery.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    repository: Repository
    commits: list[Commit] = Field(default_factory=list)
    pull_request: Optional[PullRequest] = None
    action: Optional[str] = None
    sender: Optional[str] = None

    @property
    def full_repository(self) -> str:
        """Repository path in format "{owner}/{repo}"."""
        return self.repository.full_name
