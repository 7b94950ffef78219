"""Linear GraphQL client for issue and label interactions.

This module provides an async wrapper around the Linear GraphQL API for:
- Creating and partially updating issues
- Listing issues related to a repository
- Listing and creating issue labels
- Looking up workspace members by display name

Every operation is a single attempt. Callers decide whether a failure is
fatal (the Task Mapper records it per suggestion, the orchestrator treats
an existing-task lookup failure as "no context").

Source:
- src/autotask/tracker/models.py (TrackerIssue, TrackerLabel, TrackerUser)
- src/autotask/config.py (linear_api_key, linear_api_url)
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from src.autotask.config import DEFAULT_LINEAR_API_URL
from src.autotask.tracker.models import (
    IssueInput,
    TrackerIssue,
    TrackerLabel,
    TrackerUser,
)


logger = logging.getLogger(__name__)


ISSUE_FIELDS = """
    id
    identifier
    title
    description
    url
    priority
    state { name }
"""

CREATE_ISSUE_MUTATION = f"""
mutation IssueCreate($input: IssueCreateInput!) {{
  issueCreate(input: $input) {{
    success
    issue {{ {ISSUE_FIELDS} }}
  }}
}}
"""

UPDATE_ISSUE_MUTATION = f"""
mutation IssueUpdate($id: String!, $input: IssueUpdateInput!) {{
  issueUpdate(id: $id, input: $input) {{
    success
    issue {{ {ISSUE_FIELDS} }}
  }}
}}
"""

LIST_ISSUES_QUERY = f"""
query Issues($first: Int!, $filter: IssueFilter) {{
  issues(first: $first, filter: $filter) {{
    nodes {{ {ISSUE_FIELDS} }}
  }}
}}
"""

LIST_LABELS_QUERY = """
query IssueLabels($filter: IssueLabelFilter) {
  issueLabels(filter: $filter) {
    nodes { id name color }
  }
}
"""

CREATE_LABEL_MUTATION = """
mutation IssueLabelCreate($input: IssueLabelCreateInput!) {
  issueLabelCreate(input: $input) {
    success
    issueLabel { id name color }
  }
}
"""

FIND_USERS_QUERY = """
query Users($filter: UserFilter) {
  users(filter: $filter) {
    nodes { id name displayName email }
  }
}
"""


class TrackerAPIError(Exception):
    """Raised when a Linear API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code, if the failure was an HTTP error.
        errors: GraphQL error objects returned by Linear, if any.
        cause: The underlying transport exception, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.errors = errors or []
        self.cause = cause
        super().__init__(message)

    @property
    def is_duplicate(self) -> bool:
        """Whether Linear rejected the request because the entity exists."""
        text = " ".join(
            [self.message] + [str(error.get("message", "")) for error in self.errors]
        ).lower()
        return "duplicate" in text or "already exists" in text


def _to_issue(node: Dict[str, Any]) -> TrackerIssue:
    state = node.get("state") or {}
    return TrackerIssue(
        id=node["id"],
        identifier=node.get("identifier") or "",
        title=node.get("title") or "",
        description=node.get("description"),
        url=node.get("url") or "",
        priority=node.get("priority"),
        state=state.get("name") or "Unknown",
    )


class LinearClient:
    """Async Linear GraphQL client.

    Attributes:
        api_key: Linear personal API key, sent verbatim as Authorization.
        api_url: GraphQL endpoint URL.
        timeout: Request timeout in seconds.

    Example:
        >>> client = LinearClient(api_key="lin_api_xxx")
        >>> async with client:
        ...     issue = await client.create_issue(
        ...         IssueInput(title="Fix login", team_id="team-1")
        ...     )
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_LINEAR_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Linear client.

        Args:
            api_key: Linear API key for authentication.
            api_url: GraphQL endpoint URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "Authorization": self.api_key,
                    "Content-Type": "application/json",
                    "User-Agent": "AutoTask/1.0",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LinearClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _execute(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Execute a GraphQL operation and return its data object.

        Raises:
            TrackerAPIError: On transport failure, HTTP error status, or
                a response carrying GraphQL errors.
        """
        try:
            response = await self.client.post(
                self.api_url,
                json={"query": query, "variables": variables or {}},
            )
        except httpx.RequestError as e:
            logger.error(
                "Linear API request failed",
                extra={"error": str(e), "url": self.api_url},
            )
            raise TrackerAPIError(f"Linear API request failed: {e}", cause=e)

        try:
            body = response.json()
        except ValueError:
            body = {}

        errors = body.get("errors") if isinstance(body, dict) else None

        if response.status_code >= 400 or errors:
            messages = [str(error.get("message", "")) for error in errors or []]
            detail = "; ".join(m for m in messages if m) or response.text[:500]
            logger.error(
                "Linear API error",
                extra={
                    "status_code": response.status_code,
                    "response_body": detail,
                },
            )
            raise TrackerAPIError(
                f"Linear API error ({response.status_code}): {detail}",
                status_code=response.status_code,
                errors=errors,
            )

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise TrackerAPIError(
                "Linear API returned no data",
                status_code=response.status_code,
            )
        return data

    @staticmethod
    def _payload(data: Dict[str, Any], operation: str, entity: str) -> Dict[str, Any]:
        result = data.get(operation) or {}
        if not result.get("success"):
            raise TrackerAPIError(f"Linear {operation} was not successful")
        node = result.get(entity)
        if not node:
            raise TrackerAPIError(f"Linear {operation} returned no {entity}")
        return node

    async def create_issue(self, issue: IssueInput) -> TrackerIssue:
        """Create an issue.

        Args:
            issue: Field values; unset fields are omitted.

        Returns:
            The created issue.

        Raises:
            TrackerAPIError: If the mutation fails or reports no success.
        """
        data = await self._execute(
            CREATE_ISSUE_MUTATION,
            {"input": issue.to_graphql_input()},
        )
        created = _to_issue(self._payload(data, "issueCreate", "issue"))
        logger.info(
            "Created Linear issue",
            extra={"identifier": created.identifier, "issue_id": created.id},
        )
        return created

    async def update_issue(self, issue_id: str, changes: IssueInput) -> TrackerIssue:
        """Partially update an issue; only the set fields change."""
        data = await self._execute(
            UPDATE_ISSUE_MUTATION,
            {"id": issue_id, "input": changes.to_graphql_input()},
        )
        updated = _to_issue(self._payload(data, "issueUpdate", "issue"))
        logger.info(
            "Updated Linear issue",
            extra={"identifier": updated.identifier, "issue_id": updated.id},
        )
        return updated

    async def list_issues(
        self,
        search: str,
        team_id: Optional[str] = None,
        first: int = 50,
    ) -> List[TrackerIssue]:
        """List issues whose title or description mentions a search term.

        Args:
            search: Text matched case-insensitively against title and
                description, typically the repository's full name.
            team_id: Restrict to one team when set.
            first: Maximum number of issues to return.
        """
        issue_filter: Dict[str, Any] = {
            "or": [
                {"title": {"containsIgnoreCase": search}},
                {"description": {"containsIgnoreCase": search}},
            ],
        }
        if team_id:
            issue_filter["team"] = {"id": {"eq": team_id}}

        data = await self._execute(
            LIST_ISSUES_QUERY,
            {"first": first, "filter": issue_filter},
        )
        nodes = (data.get("issues") or {}).get("nodes") or []
        return [_to_issue(node) for node in nodes]

    async def list_labels(self, team_id: Optional[str] = None) -> List[TrackerLabel]:
        """List issue labels, restricted to a team when one is given."""
        variables: Dict[str, Any] = {}
        if team_id:
            variables["filter"] = {"team": {"id": {"eq": team_id}}}

        data = await self._execute(LIST_LABELS_QUERY, variables)
        nodes = (data.get("issueLabels") or {}).get("nodes") or []
        return [
            TrackerLabel(id=node["id"], name=node.get("name") or "", color=node.get("color"))
            for node in nodes
        ]

    async def create_label(
        self,
        name: str,
        color: str,
        team_id: Optional[str] = None,
    ) -> TrackerLabel:
        """Create an issue label.

        Raises:
            TrackerAPIError: If creation fails; check is_duplicate for a
                label that already exists.
        """
        label_input: Dict[str, Any] = {"name": name, "color": color}
        if team_id:
            label_input["teamId"] = team_id

        data = await self._execute(CREATE_LABEL_MUTATION, {"input": label_input})
        node = self._payload(data, "issueLabelCreate", "issueLabel")
        logger.info("Created Linear label", extra={"label": name, "color": color})
        return TrackerLabel(id=node["id"], name=node.get("name") or name, color=node.get("color"))

    async def find_users(self, display_name: str) -> List[TrackerUser]:
        """Find members whose display name contains the given text."""
        data = await self._execute(
            FIND_USERS_QUERY,
            {"filter": {"displayName": {"containsIgnoreCase": display_name}}},
        )
        nodes = (data.get("users") or {}).get("nodes") or []
        return [
            TrackerUser(
                id=node["id"],
                name=node.get("name") or "",
                display_name=node.get("displayName") or "",
                email=node.get("email"),
            )
            for node in nodes
        ]
