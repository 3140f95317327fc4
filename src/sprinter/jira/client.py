"""Async Jira client for sprint triage.

Talks to Jira Server / Data Center: REST API v2 for issues and search,
Agile API 1.0 for boards and sprints. The client does no retries; every
failure surfaces as UpstreamError.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from rich.console import Console

from ..exceptions import MissingTokenError, UpstreamError, UpstreamUnavailable
from ..output import console as default_console
from .models import FieldMap, Issue, IssueUpdate, JiraConfig, Sprint

logger = logging.getLogger(__name__)

API = "/rest/api/2"
AGILE = "/rest/agile/1.0"

# Jira's agile endpoints cap a page at this; there is no pagination beyond it
MAX_RESULTS = 500


class JiraClient:
    """Client for the Jira endpoints the triage workflow needs.

    In dry-run mode every mutating call prints what it would do and sends
    nothing.
    """

    def __init__(
        self,
        config: JiraConfig,
        fields: FieldMap | None = None,
        *,
        dry_run: bool = False,
        console: Console | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not config.token:
            raise MissingTokenError()

        self.config = config
        self.fields = fields or FieldMap()
        self.dry_run = dry_run
        self.console = console or default_console

        self._client = httpx.AsyncClient(
            base_url=config.server.rstrip("/"),
            headers={
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    async def __aenter__(self) -> JiraClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # --- Server ---

    async def get_server_version(self) -> str:
        """Return the Jira server version string.

        GET /rest/api/2/serverInfo

        Raises:
            UpstreamUnavailable: If the response carries no version.
        """
        response = await self._request("GET", f"{API}/serverInfo")
        version = response.get("version")
        if not version:
            raise UpstreamUnavailable("Jira server info did not include a version")
        return version

    # --- Boards and sprints ---

    async def list_sprints(self, board_id: int) -> list[Sprint]:
        """List active and future sprints of a board, in Jira's order.

        GET /rest/agile/1.0/board/{board_id}/sprint?state=active,future
        """
        response = await self._request(
            "GET",
            f"{AGILE}/board/{board_id}/sprint",
            params={"state": "active,future"},
        )
        return [Sprint.from_api_response(s) for s in response.get("values", [])]

    @property
    def issues_without_tasks_jql(self) -> str:
        """JQL matching issues that have no DEV/QE task linked yet."""
        summaries = " OR ".join(f"summary ~ '{name}'" for name in self.config.tracked_task_names)
        return (
            f'issueFunction not in linkedIssuesOf("type = Task AND ({summaries})") '
            f'AND type not in (Task, Epic) AND project = "{self.config.project}"'
        )

    def _issue_fields(self) -> list[str]:
        return [
            "id",
            "issuetype",
            "status",
            "summary",
            "assignee",
            "priority",
            "components",
            self.fields.story_points,
            self.fields.severity,
        ]

    async def list_sprint_issues(
        self,
        sprint_id: int,
        assignee: str | None = None,
        exclude_with_tasks: bool = True,
    ) -> list[Issue]:
        """List issues of a sprint, optionally for one assignee.

        GET /rest/agile/1.0/sprint/{sprint_id}/issue

        By default issues that already have DEV/QE tasks linked are left
        out. At most MAX_RESULTS issues are returned.
        """
        clauses = []
        if assignee:
            clauses.append(_equals("assignee", assignee))
        if exclude_with_tasks:
            clauses.append(self.issues_without_tasks_jql)

        return await self._agile_issues(f"{AGILE}/sprint/{sprint_id}/issue", " AND ".join(clauses))

    async def list_backlog_issues(self, board_id: int, assignee: str | None = None) -> list[Issue]:
        """List backlog issues of a board, optionally for one assignee.

        GET /rest/agile/1.0/board/{board_id}/backlog
        """
        jql = _equals("assignee", assignee) if assignee else ""
        return await self._agile_issues(f"{AGILE}/board/{board_id}/backlog", jql)

    async def _agile_issues(self, url: str, jql: str) -> list[Issue]:
        params: dict[str, Any] = {
            "maxResults": MAX_RESULTS,
            "fields": ",".join(self._issue_fields()),
        }
        if jql:
            params["jql"] = jql

        response = await self._request("GET", url, params=params)
        issues = response.get("issues", [])
        if len(issues) >= MAX_RESULTS:
            logger.warning("Result capped at %d issues, the rest are not shown", MAX_RESULTS)
        return [Issue.from_api_response(i, self.fields) for i in issues]

    # --- Linked tasks ---

    @staticmethod
    def compose_linked_task_query(kind_names: Sequence[str]) -> str:
        """Build JQL matching task summaries that start with "[<kind name>]: ".

        The brackets are escaped for Lucene, and the escaping backslash is
        itself escaped for the JQL string literal. An empty list gives a
        clause that matches no real task.
        """
        names = list(kind_names) or [""]
        return " OR ".join(f'summary ~ "\\\\[{_escape(name)}\\\\]: "' for name in names)

    async def find_linked_tasks(self, issue_key: str, kind_names: Sequence[str]) -> list[Issue]:
        """Find new Task issues linked to issue_key whose summary names one of the kinds.

        POST /rest/api/2/search

        Returns an empty list when the automation has not created them yet.
        """
        jql = (
            f'issue in linkedIssues("{_escape(issue_key)}") AND type = Task AND status = New '
            f"AND ({self.compose_linked_task_query(kind_names)})"
        )
        response = await self._request(
            "POST",
            f"{API}/search",
            json={
                "jql": jql,
                "fields": [
                    "id",
                    "issuetype",
                    "status",
                    "components",
                    "summary",
                    "assignee",
                    self.fields.story_points,
                ],
            },
        )
        return [Issue.from_api_response(i, self.fields) for i in response.get("issues") or []]

    # --- Mutations ---

    async def create_sub_tasks(self, issue_key: str, kind_ids: Sequence[int]) -> None:
        """Ask the Jira automation to spawn the given task kinds for issue_key.

        Writes the automation field on the parent issue. The tasks appear
        asynchronously; use find_linked_tasks() to pick them up.
        """
        ids = ", ".join(str(kind_id) for kind_id in kind_ids)
        if self.dry_run:
            self.console.print(f"Would create tasks: {ids} for issue: {issue_key}", markup=False)
            return

        self.console.print(f"Creating tasks: {ids} for issue: {issue_key}", markup=False)
        await self._edit_issue(
            issue_key,
            {self.fields.automation: [{"id": str(kind_id)} for kind_id in kind_ids]},
        )

    async def update_issue(self, issue_key: str, update: IssueUpdate) -> None:
        """Apply a partial field update to an issue.

        PUT /rest/api/2/issue/{issue_key}
        """
        fields = update.to_fields(self.fields)
        if self.dry_run:
            self.console.print(f"Would update {issue_key}: {fields}", markup=False)
            return

        await self._edit_issue(issue_key, fields)

    async def _edit_issue(self, issue_key: str, fields: dict[str, Any]) -> None:
        logger.info("Editing %s: %s", issue_key, fields)
        await self._request("PUT", f"{API}/issue/{issue_key}", json={"fields": fields})

    def issue_url(self, issue_key: str) -> str:
        """Return the browse URL of an issue."""
        return f"{self.config.server.rstrip('/')}/browse/{issue_key}"

    # --- Internal ---

    async def _request(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to Jira.

        Raises:
            UpstreamError: On HTTP errors or connection failures.
        """
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = await self._client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Request timed out: {method} {url}", detail=str(e)) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Cannot connect to Jira: {e}", detail=str(e)) from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            raise UpstreamError(
                f"{method} {url} returned {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        # Edit issue answers 204 No Content
        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{method} {url} returned a body that is not JSON",
                status_code=response.status_code,
                detail=response.text[:200],
            ) from e


def _escape(value: str) -> str:
    """Escape a value for use inside a double-quoted JQL string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _equals(field_name: str, value: str) -> str:
    return f'{field_name} = "{_escape(value)}"'


def _error_detail(response: httpx.Response) -> str:
    """Extract a readable message from a Jira error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase

    if not isinstance(body, dict):
        return str(body)[:200]

    messages = body.get("errorMessages") or []
    field_errors = body.get("errors") or {}
    if messages:
        return "; ".join(messages)
    if field_errors:
        return "; ".join(f"{k}: {v}" for k, v in field_errors.items())
    return body.get("message") or str(body)[:200]
