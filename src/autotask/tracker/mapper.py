"""Mapping of task suggestions onto Linear operations.

This module implements the TaskMapper that applies validated suggestions
to the tracker, one suggestion at a time:

1. Confidence gate: suggestions below CONFIDENCE_THRESHOLD are skipped
2. Description enrichment with a traceability trailer
3. Assignee resolution by display name
4. Label resolution, creating missing labels
5. Dispatch to create or update

Suggestions are processed sequentially so that two suggestions naming the
same new label never race to create it. Each suggestion succeeds or fails
on its own; failures are collected in OperationOutcome.errors.

Source:
- src/autotask/tracker/client.py (LinearClient, TrackerAPIError)
- src/autotask/analysis/models.py (TaskSuggestion, TaskAction)
"""

import logging
import random
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from src.autotask.analysis.models import TaskAction, TaskSuggestion
from src.autotask.tracker.client import LinearClient, TrackerAPIError
from src.autotask.tracker.models import (
    IssueInput,
    OperationOutcome,
    TrackerIssue,
    TrackerLabel,
)


logger = logging.getLogger(__name__)


CONFIDENCE_THRESHOLD = 0.7

LABEL_COLORS = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FFEAA7",
    "#DDA0DD",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E9",
)

DEFAULT_PRIORITY = 3


class MappingError(Exception):
    """Raised when a suggestion cannot be turned into a tracker operation.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


def pick_label_color(choice: Callable[[Sequence[str]], str] = random.choice) -> str:
    """Pick a display color for a new label from LABEL_COLORS."""
    return choice(LABEL_COLORS)


def _format_hours(hours: float) -> str:
    return f"{hours:g}"


def enrich_description(
    suggestion: TaskSuggestion,
    repository: str,
    generated_at: Optional[datetime] = None,
) -> str:
    """Append the traceability trailer to a suggestion's description.

    The output depends only on the inputs, so enriching the same
    suggestion twice differs at most in the Generated line.

    Args:
        suggestion: The suggestion being applied.
        repository: Full repository name, e.g. "org/repo".
        generated_at: Timestamp for the Generated line; defaults to now.

    Returns:
        The enriched markdown description.
    """
    generated_at = generated_at or datetime.now(timezone.utc)

    lines = [
        f"**Auto-generated from repository:** `{repository}`",
        f"**AI Reasoning:** {suggestion.reasoning}",
        f"**Confidence:** {round(suggestion.confidence * 100)}%",
    ]
    if suggestion.estimate_hours:
        lines.append(f"**Estimated Hours:** {_format_hours(suggestion.estimate_hours)}h")
    lines.append(f"**Generated:** {generated_at.isoformat()}")

    return f"{suggestion.description}\n\n---\n" + "\n".join(lines)


class TaskMapper:
    """Applies task suggestions to Linear.

    Attributes:
        client: Linear GraphQL client.
        team_id: Team new issues and labels belong to.
        default_priority: Priority used when a suggestion carries none.
        default_assignee_id: Assignee used for new issues with no resolved
            assignee.
        default_label_ids: Labels used for new issues that name no labels.

    Example:
        >>> mapper = TaskMapper(client, team_id="team-1")
        >>> outcome = await mapper.process_suggestions(suggestions, "org/repo")
        >>> outcome.total_processed
        1
    """

    def __init__(
        self,
        client: LinearClient,
        team_id: Optional[str] = None,
        default_priority: Optional[int] = DEFAULT_PRIORITY,
        default_assignee_id: Optional[str] = None,
        default_label_ids: Sequence[str] = (),
        color_choice: Callable[[Sequence[str]], str] = random.choice,
    ):
        self.client = client
        self.team_id = team_id
        self.default_priority = default_priority
        self.default_assignee_id = default_assignee_id
        self.default_label_ids = list(default_label_ids)
        self._color_choice = color_choice

    async def process_suggestions(
        self,
        suggestions: Sequence[TaskSuggestion],
        repository: str,
    ) -> OperationOutcome:
        """Apply suggestions in order and aggregate the results.

        Args:
            suggestions: Validated suggestions from the generator.
            repository: Full repository name, used in the trailer.

        Returns:
            OperationOutcome with created and updated issues and one error
            message per failed suggestion.
        """
        outcome = OperationOutcome()

        for suggestion in suggestions:
            if suggestion.confidence < CONFIDENCE_THRESHOLD:
                logger.info(
                    "Skipping low confidence suggestion",
                    extra={
                        "title": suggestion.title,
                        "confidence": suggestion.confidence,
                    },
                )
                continue

            try:
                issue = await self.apply_suggestion(suggestion, repository)
            except (MappingError, TrackerAPIError) as e:
                message = f'Failed to {suggestion.action.value} task "{suggestion.title}": {e}'
                logger.error(message, extra={"action": suggestion.action.value})
                outcome.errors.append(message)
                continue

            if suggestion.action == TaskAction.CREATE:
                outcome.created.append(issue)
            else:
                outcome.updated.append(issue)

        logger.info(
            "Processed task suggestions",
            extra={
                "repository": repository,
                "created_count": len(outcome.created),
                "updated_count": len(outcome.updated),
                "error_count": len(outcome.errors),
            },
        )
        return outcome

    async def apply_suggestion(
        self,
        suggestion: TaskSuggestion,
        repository: str,
    ) -> TrackerIssue:
        """Create or update the issue for one suggestion.

        The confidence gate is not applied here; process_suggestions owns
        it.

        Raises:
            MappingError: For an update without an existing task id.
            TrackerAPIError: If the create or update call fails.
        """
        if suggestion.action == TaskAction.UPDATE and not suggestion.existing_task_id:
            raise MappingError("update suggestion has no existing task id")

        description = enrich_description(suggestion, repository)

        assignee_id = None
        if suggestion.assignee_name:
            assignee_id = await self.resolve_assignee(suggestion.assignee_name)

        label_ids: List[str] = []
        if suggestion.labels:
            label_ids = await self.resolve_labels(suggestion.labels)

        if suggestion.action == TaskAction.CREATE:
            issue = await self.client.create_issue(
                IssueInput(
                    title=suggestion.title,
                    description=description,
                    team_id=self.team_id,
                    priority=suggestion.priority or self.default_priority or DEFAULT_PRIORITY,
                    assignee_id=assignee_id or self.default_assignee_id,
                    label_ids=label_ids if suggestion.labels else (self.default_label_ids or None),
                )
            )
            logger.info(
                "Created Linear task",
                extra={"identifier": issue.identifier, "title": issue.title},
            )
            return issue

        issue = await self.client.update_issue(
            suggestion.existing_task_id,
            IssueInput(
                title=suggestion.title,
                description=description,
                priority=suggestion.priority,
                assignee_id=assignee_id,
                label_ids=label_ids or None,
            ),
        )
        logger.info(
            "Updated Linear task",
            extra={"identifier": issue.identifier, "title": issue.title},
        )
        return issue

    async def resolve_assignee(self, display_name: str) -> Optional[str]:
        """Find the id of the first member whose display name matches.

        Returns:
            The user id, or None when nobody matches or the lookup fails.
        """
        try:
            users = await self.client.find_users(display_name)
        except TrackerAPIError as e:
            logger.warning(
                "Could not look up assignee",
                extra={"assignee": display_name, "error": str(e)},
            )
            return None

        if not users:
            logger.info("No user matches assignee", extra={"assignee": display_name})
            return None
        return users[0].id

    async def resolve_labels(self, names: Sequence[str]) -> List[str]:
        """Resolve label names to ids, creating missing labels.

        Matching against existing labels is case-insensitive and exact.
        A label that cannot be resolved is dropped from the result.
        """
        try:
            existing = await self.client.list_labels(self.team_id)
        except TrackerAPIError as e:
            logger.warning("Could not list labels", extra={"error": str(e)})
            return []

        by_name = {label.name.lower(): label.id for label in existing}
        label_ids: List[str] = []

        for name in names:
            label_id = by_name.get(name.lower())
            if label_id is None:
                label_id = await self._create_label(name)
                if label_id is None:
                    continue
                by_name[name.lower()] = label_id
            if label_id not in label_ids:
                label_ids.append(label_id)

        return label_ids

    async def _create_label(self, name: str) -> Optional[str]:
        color = pick_label_color(self._color_choice)
        try:
            label = await self.client.create_label(name, color, team_id=self.team_id)
            return label.id
        except TrackerAPIError as e:
            if e.is_duplicate:
                return await self._find_similar_label(name)
            logger.warning(
                "Could not create label",
                extra={"label": name, "error": str(e)},
            )
            return None

    async def _find_similar_label(self, name: str) -> Optional[str]:
        """Loose match used after Linear reports a duplicate label."""
        try:
            labels = await self.client.list_labels(self.team_id)
        except TrackerAPIError as e:
            logger.warning(
                "Could not re-list labels after duplicate",
                extra={"label": name, "error": str(e)},
            )
            return None

        wanted = name.lower()
        match = _loose_match(labels, wanted)
        if match is None:
            logger.warning("Duplicate label not found on re-list", extra={"label": name})
            return None
        return match.id


def _loose_match(labels: Sequence[TrackerLabel], wanted: str) -> Optional[TrackerLabel]:
    for label in labels:
        if label.name.lower() == wanted:
            return label
    for label in labels:
        candidate = label.name.lower()
        if wanted in candidate or candidate in wanted:
            return label
    return None
