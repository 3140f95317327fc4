"""Data models for the Jira integration.

Issues and sprints are read snapshots of what Jira returned. Field ids for
custom fields differ between Jira deployments, so they live in FieldMap and
are passed in wherever a payload is read or written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


# Story point scale accepted by the board
SIZES: tuple[int, ...] = (0, 1, 2, 3, 5, 8, 13)
DEFAULT_SIZE = 3


def parse_size(value: Any) -> int:
    """Return value as a story point size, or raise ValueError."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and value in SIZES:
        return value
    raise ValueError(f"Invalid size: {value!r} (expected one of {', '.join(map(str, SIZES))})")


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


# Marker for "leave this field untouched". None means "clear the field".
UNSET = _Unset.UNSET


@dataclass
class JiraConfig:
    """Jira Server connection settings.

    The token is a personal access token sent as a Bearer credential.
    """

    server: str = "https://issues.redhat.com"
    token: str = ""
    project: str = "RHEL"
    # Issues already linked to tasks with these summaries are hidden from sprint listings
    tracked_task_names: tuple[str, ...] = ("DEV Task", "QE Task")


@dataclass(frozen=True)
class FieldMap:
    """Jira field ids for the logical fields sprinter reads and writes."""

    automation: str = "customfield_12316240"
    assignee: str = "assignee"
    priority: str = "priority"
    severity: str = "customfield_12316142"
    sprint: str = "customfield_12310940"
    story_points: str = "customfield_12310243"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldMap:
        """Build a FieldMap, keeping defaults for keys not in data."""
        known = {name for name in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown field names: {', '.join(sorted(unknown))}")
        return cls(**{key: str(value) for key, value in data.items()})


@dataclass(frozen=True)
class TaskKind:
    """A sub-task template the Jira automation can spawn from an issue.

    The id is what gets written to the automation field; the name is the
    bracketed prefix the automation puts in the created task's summary.
    """

    id: int
    name: str
    checked: bool = False
    follow_up: bool = True
    style: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskKind:
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            checked=bool(data.get("checked", False)),
            follow_up=bool(data.get("follow_up", True)),
            style=str(data.get("style", "")),
        )


DEFAULT_TASK_KINDS: tuple[TaskKind, ...] = (
    TaskKind(39396, "DEV Task", checked=True, style="green"),
    TaskKind(39400, "QE Task", checked=True, follow_up=False, style="yellow"),
    TaskKind(39395, "Upstream", style="green"),
    TaskKind(40950, "Root Cause Analysis Task", style="green"),
    TaskKind(39398, "Preliminary Testing Task", style="blue"),
    TaskKind(48270, "Integration Testing", style="blue"),
)


@dataclass
class Assignee:
    """Jira user as returned in the assignee field (API v2)."""

    name: str = ""
    display_name: str = ""
    email_address: str = ""

    @classmethod
    def from_api_response(cls, data: dict[str, Any] | None) -> Assignee | None:
        if not isinstance(data, dict):
            return None
        return cls(
            name=data.get("name", "") or "",
            display_name=data.get("displayName", "") or "",
            email_address=data.get("emailAddress", "") or "",
        )


@dataclass
class Sprint:
    """Represents a sprint on an agile board."""

    id: int
    name: str = ""
    state: str = ""

    @property
    def is_active(self) -> bool:
        return self.state == "active"

    @property
    def is_future(self) -> bool:
        return self.state == "future"

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Sprint:
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            state=data.get("state", ""),
        )


@dataclass
class Issue:
    """Represents a Jira issue."""

    key: str = ""  # e.g., "RHEL-1234"
    id: str = ""
    issue_type: str = ""
    status: str = ""
    summary: str = ""
    assignee: Assignee | None = None
    components: list[str] = field(default_factory=list)
    size: float | None = None
    priority: str | None = None
    severity: str | None = None

    @property
    def assignee_email(self) -> str | None:
        if self.assignee and self.assignee.email_address:
            return self.assignee.email_address
        return None

    @classmethod
    def from_api_response(cls, data: dict[str, Any], fields: FieldMap | None = None) -> Issue:
        """Create an Issue from a search/agile API payload."""
        fields = fields or FieldMap()
        values = data.get("fields") or {}

        issue_type = values.get("issuetype") or {}
        status = values.get("status") or {}
        priority = values.get(fields.priority)
        severity = values.get(fields.severity)

        return cls(
            key=data.get("key", ""),
            id=str(data.get("id", "")),
            issue_type=issue_type.get("name", "") if isinstance(issue_type, dict) else "",
            status=status.get("name", "") if isinstance(status, dict) else "",
            summary=values.get("summary", "") or "",
            assignee=Assignee.from_api_response(values.get(fields.assignee)),
            components=[
                c.get("name", "") for c in values.get("components") or [] if isinstance(c, dict)
            ],
            size=values.get(fields.story_points),
            priority=_option_name(priority),
            severity=_option_name(severity),
        )


def _option_name(value: Any) -> str | None:
    """Jira returns select fields as objects with a name or value key."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("name") or value.get("value")
    return str(value)


SizeUpdate = Union[int, None, _Unset]
SprintUpdate = Union[int, None, _Unset]
AssigneeUpdate = Union[str, None, _Unset]


@dataclass(frozen=True)
class IssueUpdate:
    """Partial field update for an issue.

    Each field is UNSET (left alone), None (cleared) or a value. The
    distinction between UNSET and None is what lets an update drop an
    issue from its sprint.
    """

    assignee: AssigneeUpdate = UNSET
    size: SizeUpdate = UNSET
    sprint: SprintUpdate = UNSET

    def __post_init__(self) -> None:
        if self.size is not UNSET and self.size is not None:
            parse_size(self.size)

    def to_fields(self, fields: FieldMap | None = None) -> dict[str, Any]:
        """Build the `fields` object of an edit-issue request."""
        fields = fields or FieldMap()
        payload: dict[str, Any] = {}

        # Jira Server identifies users by name; there is no "clear" here
        if self.assignee is not UNSET and self.assignee:
            payload[fields.assignee] = {"name": self.assignee}

        if self.size is not UNSET:
            payload[fields.story_points] = self.size

        if self.sprint is not UNSET:
            payload[fields.sprint] = self.sprint

        return payload
