"""GitHub webhook payload normalization.

This module converts raw GitHub webhook payloads into NormalizedEvent
objects. Signature validation happens before payloads reach the normalizer
(see signature.py), so payloads are trusted to come from GitHub but not to
be well formed.

Filtering rules:
- Only ``push`` and ``pull_request`` deliveries are normalized
- pull_request deliveries are limited to PullRequestAction values
- A push without commits carries nothing to analyze and is dropped

A payload that passes the filters but lacks a repository object is
malformed and raises MalformedPayloadError.

GitHub Webhook Payload Structure (push event, abridged):
{
  "ref": "refs/heads/main",
  "repository": {"name": "repo", "full_name": "owner/repo", "description": "..."},
  "commits": [
    {
      "id": "abc123",
      "message": "Fix login bug",
      "author": {"name": "Jane", "email": "jane@example.com"},
      "added": [], "removed": [], "modified": ["src/login.py"]
    }
  ],
  "sender": {"login": "jane"}
}
"""

import logging
from typing import Any, Dict, List, Optional

from src.autotask.webhook.models import (
    Commit,
    EventKind,
    NormalizedEvent,
    PullRequest,
    PullRequestAction,
    Repository,
)

logger = logging.getLogger(__name__)


SUPPORTED_EVENTS = frozenset({"push", "pull_request"})


class MalformedPayloadError(Exception):
    """Raised when a supported delivery lacks required structure.

    Attributes:
        message: Human-readable error description.
        event_name: The X-GitHub-Event value of the delivery.
    """

    def __init__(self, message: str, event_name: Optional[str] = None):
        self.message = message
        self.event_name = event_name
        super().__init__(message)


def determine_event_kind(
    commits: List[Commit],
    pull_request: Optional[PullRequest],
) -> Optional[EventKind]:
    """Infer the event kind from the normalized payload contents.

    Args:
        commits: Commits extracted from the payload.
        pull_request: Pull request extracted from the payload, if any.

    Returns:
        EventKind.PUSH when there are commits, EventKind.PULL_REQUEST when a
        pull request is present, otherwise None.
    """
    if commits:
        return EventKind.PUSH
    if pull_request is not None:
        return EventKind.PULL_REQUEST
    return None


def is_processed_pr_action(action: Any) -> bool:
    """Check whether a pull request action is one the pipeline analyzes."""
    if not isinstance(action, str):
        return False
    try:
        PullRequestAction(action)
    except ValueError:
        return False
    return True


class EventNormalizer:
    """Converts raw GitHub webhook payloads into NormalizedEvent objects."""

    def normalize(
        self,
        event_name: str,
        payload: Dict[str, Any],
    ) -> Optional[NormalizedEvent]:
        """Normalize a webhook delivery.

        Args:
            event_name: Value of the X-GitHub-Event header.
            payload: The raw webhook payload as a dictionary.

        Returns:
            NormalizedEvent, or None when the delivery is filtered out
            (unsupported event, ignored pull request action, or no
            commits and no pull request).

        Raises:
            MalformedPayloadError: If the payload is not an object or its
                repository information is missing.
        """
        if event_name not in SUPPORTED_EVENTS:
            logger.debug("Ignoring unsupported event type: %s", event_name)
            return None

        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                f"Invalid payload: expected object, got {type(payload).__name__}",
                event_name=event_name,
            )

        action = payload.get("action")
        if event_name == "pull_request" and not is_processed_pr_action(action):
            logger.debug("Ignoring pull request action: %s", action)
            return None

        repository = self._extract_repository(payload.get("repository"), event_name)

        commits: List[Commit] = []
        pull_request: Optional[PullRequest] = None
        if event_name == "push":
            commits = self._extract_commits(payload.get("commits"))
        else:
            pull_request = self._extract_pull_request(
                payload.get("pull_request"), event_name
            )

        kind = determine_event_kind(commits, pull_request)
        if kind is None:
            logger.info(
                "Dropping event without commits or pull request",
                extra={"event_name": event_name, "repository": repository.full_name},
            )
            return None

        event = NormalizedEvent(
            kind=kind,
            repository=repository,
            commits=commits,
            pull_request=pull_request,
            action=action if isinstance(action, str) else None,
            sender=self._extract_login(payload.get("sender")),
        )

        logger.info(
            "Normalized event: kind=%s, repository=%s",
            kind.value,
            repository.full_name,
            extra={"commits_count": len(commits)},
        )
        return event

    def _extract_repository(self, repo_data: Any, event_name: str) -> Repository:
        if not isinstance(repo_data, dict):
            raise MalformedPayloadError(
                "Missing or invalid 'repository' field in payload",
                event_name=event_name,
            )

        full_name = repo_data.get("full_name")
        if not isinstance(full_name, str) or not full_name.strip():
            raise MalformedPayloadError(
                "Missing or invalid 'repository.full_name' field in payload",
                event_name=event_name,
            )

        name = repo_data.get("name")
        description = repo_data.get("description")
        url = repo_data.get("html_url")

        return Repository(
            full_name=full_name.strip(),
            name=name if isinstance(name, str) else full_name.split("/")[-1],
            description=description if isinstance(description, str) else None,
            url=url if isinstance(url, str) else None,
        )

    def _extract_commits(self, commits_data: Any) -> List[Commit]:
        """Map raw commits, defaulting missing file arrays to empty lists."""
        if not isinstance(commits_data, list):
            return []

        commits = []
        for raw in commits_data:
            if not isinstance(raw, dict):
                logger.debug("Skipping non-object commit entry: %s", type(raw))
                continue

            author = raw.get("author") if isinstance(raw.get("author"), dict) else {}
            commits.append(
                Commit(
                    id=_as_str(raw.get("id")),
                    message=_as_str(raw.get("message")),
                    author_name=_as_str(author.get("name")),
                    author_email=author.get("email") if isinstance(author.get("email"), str) else None,
                    timestamp=raw.get("timestamp") if isinstance(raw.get("timestamp"), str) else None,
                    url=raw.get("url") if isinstance(raw.get("url"), str) else None,
                    files_added=_as_paths(raw.get("added")),
                    files_removed=_as_paths(raw.get("removed")),
                    files_modified=_as_paths(raw.get("modified")),
                )
            )
        return commits

    def _extract_pull_request(
        self, pr_data: Any, event_name: str
    ) -> Optional[PullRequest]:
        if pr_data is None:
            return None
        if not isinstance(pr_data, dict):
            raise MalformedPayloadError(
                "Invalid 'pull_request' field in payload",
                event_name=event_name,
            )

        number = pr_data.get("number")
        if not isinstance(number, int):
            raise MalformedPayloadError(
                f"Invalid pull request number: {number!r}",
                event_name=event_name,
            )

        head = pr_data.get("head") if isinstance(pr_data.get("head"), dict) else {}
        base = pr_data.get("base") if isinstance(pr_data.get("base"), dict) else {}
        body = pr_data.get("body")

        return PullRequest(
            number=number,
            title=_as_str(pr_data.get("title")),
            body=body if isinstance(body, str) else None,
            author_login=self._extract_login(pr_data.get("user")) or "",
            head_ref=_as_str(head.get("ref")),
            base_ref=_as_str(base.get("ref")),
            state=_as_str(pr_data.get("state")),
            url=pr_data.get("html_url") if isinstance(pr_data.get("html_url"), str) else None,
        )

    def _extract_login(self, user_data: Any) -> Optional[str]:
        if not isinstance(user_data, dict):
            return None
        login = user_data.get("login")
        if not isinstance(login, str) or not login.strip():
            return None
        return login.strip()


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_paths(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [path for path in value if isinstance(path, str)]
