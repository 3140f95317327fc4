"""Interactive sprint triage.

TriageSession walks the issues of one sprint (or the backlog) and, for each
issue, lets the user spawn linked tasks through the Jira automation, waits
until Jira has created them, sets size, assignee and sprint on each task,
and finally drops the parent issue from the sprint.

Task creation is asynchronous on the Jira side: the edit that triggers it
returns before the tasks exist, so the session polls for them a bounded
number of times.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from rich.console import Console
from rich.markup import escape

from .exceptions import UserAbort
from .formatter import format_issue, format_size, format_sprint, format_task_kind
from .jira.models import (
    DEFAULT_SIZE,
    DEFAULT_TASK_KINDS,
    SIZES,
    UNSET,
    Issue,
    IssueUpdate,
    Sprint,
    TaskKind,
    parse_size,
)
from .output import console as default_console
from .output import print_success, print_warning
from .prompts import Choice, Prompter, Separator

logger = logging.getLogger(__name__)

# Source value meaning "the board backlog" rather than a sprint id
BACKLOG = -1

# Control values next to the task kinds in the split prompt
SKIP = -1
EXIT = -2

POLL_ATTEMPTS = 10
POLL_INTERVAL = 5.0


class IssueTracker(Protocol):
    """The part of JiraClient the session uses."""

    async def list_sprints(self, board_id: int) -> list[Sprint]: ...

    async def list_sprint_issues(
        self, sprint_id: int, assignee: str | None = None, exclude_with_tasks: bool = True
    ) -> list[Issue]: ...

    async def list_backlog_issues(self, board_id: int, assignee: str | None = None) -> list[Issue]: ...

    async def find_linked_tasks(self, issue_key: str, kind_names: Sequence[str]) -> list[Issue]: ...

    async def create_sub_tasks(self, issue_key: str, kind_ids: Sequence[int]) -> None: ...

    async def update_issue(self, issue_key: str, update: IssueUpdate) -> None: ...

    def issue_url(self, issue_key: str) -> str: ...


class TriageSession:
    """One interactive triage run over a board."""

    def __init__(
        self,
        client: IssueTracker,
        prompter: Prompter,
        *,
        board_id: int,
        assignee: str | None = None,
        task_kinds: Sequence[TaskKind] = DEFAULT_TASK_KINDS,
        console: Console | None = None,
        poll_attempts: int = POLL_ATTEMPTS,
        poll_interval: float = POLL_INTERVAL,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        allow_backlog: bool = False,
    ):
        if not task_kinds:
            raise ValueError("At least one task kind is required")
        if poll_attempts < 1:
            raise ValueError("poll_attempts must be at least 1")

        self.client = client
        self.prompter = prompter
        self.board_id = board_id
        self.assignee = assignee
        self.task_kinds = tuple(task_kinds)
        self.console = console or default_console
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._sleep = sleep
        self.allow_backlog = allow_backlog

    async def run(self) -> int:
        """Run the whole workflow and return the process exit code."""
        try:
            source = await self.select_source()
            if source is None:
                return 0

            issues = await self.fetch_issues(source)
            if not issues:
                print_success("No issues found.", out=self.console)
                return 0

            logger.info("Triaging %d issues from %s", len(issues), _source_name(source))
            for issue in issues:
                await self.triage_issue(issue, source)
        except UserAbort:
            logger.info("Run stopped by user")
            return 0

        return 0

    # --- Source and issues ---

    async def select_source(self) -> int | None:
        """Ask for the sprint to work on, or BACKLOG.

        Returns None without asking when the board has no open sprint and
        the backlog may not be picked.
        """
        sprints = await self.client.list_sprints(self.board_id)
        if not sprints and not self.allow_backlog:
            print_warning(
                f"No active or future sprints on board {self.board_id}", out=self.console
            )
            return None

        default = next((s.id for s in sprints if s.is_future), None)

        choices = [Choice(format_sprint(s), s.id) for s in sprints]
        choices += [
            Separator(),
            Choice("[bold]Backlog[/bold]", BACKLOG, disabled=not self.allow_backlog),
        ]

        return await self.prompter.select(
            "Pick issues to process from sprint or backlog",
            choices,
            default=default,
            loop=False,
            page_size=5,
        )

    async def fetch_issues(self, source: int) -> list[Issue]:
        if source == BACKLOG:
            return await self.client.list_backlog_issues(self.board_id, self.assignee)
        return await self.client.list_sprint_issues(source, self.assignee)

    # --- Per issue ---

    async def triage_issue(self, issue: Issue, source: int) -> None:
        """Split one issue into tasks and hand its size and sprint over to them.

        Raises:
            UserAbort: If the user picks EXIT.
        """
        self.console.print()
        self.console.print(format_issue(issue, self.client.issue_url(issue.key)))
        self.console.print()

        kinds = await self.select_task_kinds(issue)
        if not kinds:
            logger.info("Skipping %s", issue.key)
            return

        await self.client.create_sub_tasks(issue.key, [k.id for k in kinds])
        tasks = await self.wait_for_tasks(issue.key, kinds)

        for task in tasks:
            if self._skips_follow_up(task):
                logger.debug("Not asking about %s (%s)", task.key, task.summary)
                continue
            await self.update_task(task, issue, source)

        self.console.print(
            f"Dropping [bold]{escape(issue.key)}[/bold] from sprint and setting "
            f"story points to [bold]0[/bold]..."
        )
        await self.client.update_issue(issue.key, IssueUpdate(size=0, sprint=None))

    async def select_task_kinds(self, issue: Issue) -> list[TaskKind]:
        """Ask which task kinds to spawn. Empty means skip the issue.

        Raises:
            UserAbort: If EXIT was ticked, whatever else was ticked with it.
        """
        by_id = {kind.id: kind for kind in self.task_kinds}
        choices: list[Choice | Separator] = [
            Choice(format_task_kind(kind), kind.id, checked=kind.checked)
            for kind in self.task_kinds
        ]
        choices += [Separator(), Choice("SKIP", SKIP), Choice("EXIT", EXIT)]

        answer = await self.prompter.checkbox(
            f"Split [bold]{escape(issue.key)}[/bold] into following tasks:",
            choices,
            loop=False,
            page_size=10,
        )

        if EXIT in answer:
            raise UserAbort()
        if SKIP in answer:
            return []
        return [by_id[value] for value in answer if value in by_id]

    async def wait_for_tasks(self, issue_key: str, kinds: Sequence[TaskKind]) -> list[Issue]:
        """Poll Jira until the tasks for all kinds show up, or give up.

        Gives up after poll_attempts queries and returns whatever the last
        one found; the caller carries on with those.
        """
        names = [kind.name for kind in kinds]
        tasks: list[Issue] = []

        for attempt in range(1, self.poll_attempts + 1):
            tasks = await self.client.find_linked_tasks(issue_key, names)
            if len(tasks) >= len(kinds):
                logger.info("Found %d tasks for %s on attempt %d", len(tasks), issue_key, attempt)
                return tasks

            if attempt < self.poll_attempts:
                self.console.print("Waiting for tasks to be created...")
                await self._sleep(self.poll_interval)

        print_warning(
            f"only {len(tasks)} of {len(kinds)} tasks for {issue_key} showed up after "
            f"{self.poll_attempts} attempts, continuing with those",
            out=self.console,
        )
        return tasks

    def _skips_follow_up(self, task: Issue) -> bool:
        return any(kind.name in task.summary for kind in self.task_kinds if not kind.follow_up)

    async def update_task(self, task: Issue, parent: Issue, source: int) -> None:
        """Ask for size and sprint of a task and write them with the parent's assignee."""
        self.console.print(f"[italic]{escape(task.summary)}[/italic]")

        size = await self.prompter.select(
            "Story Points",
            [Choice(format_size(s), s) for s in SIZES],
            default=_default_size(parent),
            loop=False,
            page_size=6,
        )
        add_to_sprint = await self.prompter.select(
            "Add to sprint",
            [Choice("[green]Yes[/green]", True), Choice("[red]No[/red]", False)],
            default=True,
            loop=False,
            page_size=2,
        )

        await self.client.update_issue(
            task.key,
            IssueUpdate(
                assignee=parent.assignee_email or UNSET,
                size=parse_size(size),
                sprint=source if add_to_sprint and source != BACKLOG else UNSET,
            ),
        )


def _default_size(issue: Issue) -> int:
    try:
        return parse_size(issue.size)
    except ValueError:
        return DEFAULT_SIZE


def _source_name(source: int) -> str:
    return "backlog" if source == BACKLOG else f"sprint {source}"
