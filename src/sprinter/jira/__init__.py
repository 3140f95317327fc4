"""Jira integration for sprint triage."""

from .client import JiraClient
from .models import (
    DEFAULT_TASK_KINDS,
    SIZES,
    UNSET,
    Assignee,
    FieldMap,
    Issue,
    IssueUpdate,
    JiraConfig,
    Sprint,
    TaskKind,
)

__all__ = [
    "JiraClient",
    "JiraConfig",
    "FieldMap",
    "Issue",
    "IssueUpdate",
    "Assignee",
    "Sprint",
    "TaskKind",
    "DEFAULT_TASK_KINDS",
    "SIZES",
    "UNSET",
]
