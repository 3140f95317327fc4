"""Rich markup for issues, statuses, sizes and task kinds."""

from __future__ import annotations

from rich.markup import escape

from .jira.models import Issue, Sprint, TaskKind

ISSUE_TYPE_GLYPHS: dict[str, str] = {
    "Task": "☑️",
    "Bug": "🐛",
    "Story": "🎁",
    "Epic": "⚡",
}

STATUS_STYLES: dict[str, str] = {
    "New": "cyan",
    "Planning": "cyan",
    "In Progress": "blue",
    "Integration": "green",
    "Release Pending": "green",
}

SIZE_STYLES: dict[int, str] = {
    0: "bright_black",
    1: "green",
    2: "green",
    3: "yellow",
    5: "bold yellow",
    8: "red",
    13: "bold red",
}

SPRINT_STATE_STYLES: dict[str, str] = {
    "active": "green",
}


def _styled(text: str, style: str) -> str:
    if not style:
        return escape(text)
    return f"[{style}]{escape(text)}[/{style}]"


def format_issue_type(issue_type: str) -> str:
    """Glyph for known issue types, the raw type name otherwise."""
    return ISSUE_TYPE_GLYPHS.get(issue_type, escape(issue_type))


def format_status(status: str) -> str:
    return _styled(status, STATUS_STYLES.get(status, ""))


def format_size(size: int) -> str:
    return _styled(str(size), SIZE_STYLES.get(size, ""))


def format_task_kind(kind: TaskKind) -> str:
    return _styled(kind.name, kind.style)


def format_sprint(sprint: Sprint) -> str:
    state = _styled(sprint.state, SPRINT_STATE_STYLES.get(sprint.state, "yellow"))
    return f"{escape(sprint.name)} ({state})"


def format_issue(issue: Issue, url: str) -> str:
    """Three-line summary of an issue: header, components/summary, link."""
    assignee = issue.assignee.display_name if issue.assignee else ""
    components = ", ".join(issue.components) or "NO COMPONENT"

    return "\n".join(
        [
            f"{format_issue_type(issue.issue_type)} {escape(issue.key)} - "
            f"[bold]{format_status(issue.status)}[/bold] - [italic]{escape(assignee)}[/italic]",
            f"[underline]{escape(components)}[/underline] - [italic]{escape(issue.summary)}[/italic]",
            f"See more: [italic underline]{escape(url)}[/italic underline]",
        ]
    )
