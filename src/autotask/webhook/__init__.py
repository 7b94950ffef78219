"""GitHub webhook handling for AutoTask.

This module verifies and normalizes GitHub webhook deliveries:
- push - commits pushed to a branch
- pull_request - opened, closed, reopened, synchronize, ready_for_review

Other events and pull request actions are ignored without error.
"""

from .models import (
    Commit,
    EventKind,
    NormalizedEvent,
    PullRequest,
    PullRequestAction,
    Repository,
)
from .normalizer import (
    EventNormalizer,
    MalformedPayloadError,
    determine_event_kind,
)
from .signature import SIGNATURE_HEADER, compute_signature, verify_signature

__all__ = [
    "Commit",
    "EventKind",
    "EventNormalizer",
    "MalformedPayloadError",
    "NormalizedEvent",
    "PullRequest",
    "PullRequestAction",
    "Repository",
    "SIGNATURE_HEADER",
    "compute_signature",
    "determine_event_kind",
    "verify_signature",
]
