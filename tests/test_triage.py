"""Tests for the interactive triage workflow."""

from __future__ import annotations

import io
from collections.abc import Sequence
from typing import Any
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from rich.console import Console

from sprinter.exceptions import UpstreamError
from sprinter.jira.models import UNSET, Assignee, Issue, IssueUpdate, Sprint, TaskKind
from sprinter.prompts import Choice, Separator
from sprinter.triage import BACKLOG, EXIT, SKIP, TriageSession

DEV = 39396
QE = 39400
UPSTREAM = 39395


class ScriptedPrompter:
    """Answers prompts from a fixed list and records what was asked."""

    def __init__(self, answers: Sequence[Any]):
        self.answers = list(answers)
        self.questions: list[dict[str, Any]] = []

    async def select(self, message, choices, *, default=None, loop=False, page_size=None):
        self.questions.append(
            {"kind": "select", "message": message, "choices": list(choices), "default": default}
        )
        return self.answers.pop(0)

    async def checkbox(self, message, choices, *, loop=False, page_size=None):
        self.questions.append({"kind": "checkbox", "message": message, "choices": list(choices)})
        return self.answers.pop(0)


def _issue(key: str, summary: str = "Broken thing", size=None, email="owner@redhat.com") -> Issue:
    assignee = Assignee(name="owner", display_name="Owner", email_address=email) if email else None
    return Issue(
        key=key,
        issue_type="Bug",
        status="New",
        summary=summary,
        assignee=assignee,
        components=["kernel"],
        size=size,
    )


PARENT = _issue("RHEL-1234")
DEV_TASK = _issue("RHEL-2000", "[DEV Task]: Broken thing")
QE_TASK = _issue("RHEL-2001", "[QE Task]: Broken thing")


@pytest.fixture
def jira():
    client = AsyncMock()
    client.list_sprints.return_value = [
        Sprint(1, "Sprint 1", "active"),
        Sprint(2, "Sprint 2", "future"),
    ]
    client.list_sprint_issues.return_value = [PARENT]
    client.list_backlog_issues.return_value = [PARENT]
    client.find_linked_tasks.return_value = [DEV_TASK, QE_TASK]
    client.issue_url = MagicMock(side_effect=lambda key: f"https://jira.test/browse/{key}")
    return client


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def make_session(jira, output, sleep):
    def _create(answers: Sequence[Any], **kwargs) -> tuple[TriageSession, ScriptedPrompter]:
        prompter = ScriptedPrompter(answers)
        session = TriageSession(
            jira,
            prompter,
            board_id=42,
            assignee="owner@redhat.com",
            console=Console(file=output, width=200, color_system=None),
            sleep=sleep,
            **kwargs,
        )
        return session, prompter

    return _create


def _workflow_calls(client) -> list:
    names = {"create_sub_tasks", "find_linked_tasks", "update_issue"}
    return [c for c in client.mock_calls if c[0] in names]


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_split_issue_into_dev_and_qe_tasks(self, jira, make_session, output):
        session, prompter = make_session([1, [DEV, QE], 5, True])

        assert await session.run() == 0

        assert _workflow_calls(jira) == [
            call.create_sub_tasks("RHEL-1234", [DEV, QE]),
            call.find_linked_tasks("RHEL-1234", ["DEV Task", "QE Task"]),
            call.update_issue(
                "RHEL-2000", IssueUpdate(assignee="owner@redhat.com", size=5, sprint=1)
            ),
            call.update_issue("RHEL-1234", IssueUpdate(size=0, sprint=None)),
        ]
        jira.list_sprint_issues.assert_awaited_once_with(1, "owner@redhat.com")
        # QE task gets no size/sprint questions
        assert [q["message"] for q in prompter.questions if q["kind"] == "select"] == [
            "Pick issues to process from sprint or backlog",
            "Story Points",
            "Add to sprint",
        ]
        assert "Dropping RHEL-1234 from sprint and setting story points to 0..." in output.getvalue()

    @pytest.mark.asyncio
    async def test_issues_processed_in_fetch_order(self, jira, make_session):
        jira.list_sprint_issues.return_value = [_issue("RHEL-1"), _issue("RHEL-2")]
        jira.find_linked_tasks.return_value = [QE_TASK]
        session, _ = make_session([1, [QE], [QE]])

        await session.run()

        finalized = [c.args[0] for c in jira.update_issue.await_args_list]
        assert finalized == ["RHEL-1", "RHEL-2"]

    @pytest.mark.asyncio
    async def test_upstream_error_propagates(self, jira, make_session):
        jira.create_sub_tasks.side_effect = UpstreamError("boom", status_code=500)
        session, _ = make_session([1, [DEV]])

        with pytest.raises(UpstreamError):
            await session.run()

        jira.update_issue.assert_not_awaited()


class TestSourceSelection:
    @pytest.mark.asyncio
    async def test_defaults_to_first_future_sprint(self, make_session):
        session, prompter = make_session([2])

        assert await session.select_source() == 2

        question = prompter.questions[0]
        assert question["default"] == 2
        values = [c.value for c in question["choices"] if isinstance(c, Choice)]
        assert values == [1, 2, BACKLOG]
        assert isinstance(question["choices"][2], Separator)

    @pytest.mark.asyncio
    async def test_no_future_sprint_means_no_default(self, jira, make_session):
        jira.list_sprints.return_value = [Sprint(1, "Sprint 1", "active")]
        session, prompter = make_session([1])

        await session.select_source()

        assert prompter.questions[0]["default"] is None

    @pytest.mark.asyncio
    async def test_backlog_disabled_unless_allowed(self, make_session):
        session, prompter = make_session([1])
        await session.select_source()
        backlog = prompter.questions[0]["choices"][-1]
        assert backlog.value == BACKLOG
        assert backlog.disabled

        session, prompter = make_session([1], allow_backlog=True)
        await session.select_source()
        assert not prompter.questions[0]["choices"][-1].disabled

    @pytest.mark.asyncio
    async def test_no_issues_ends_run_without_changes(self, jira, make_session, output):
        jira.list_sprint_issues.return_value = []
        session, _ = make_session([1])

        assert await session.run() == 0

        assert _workflow_calls(jira) == []
        assert "No issues found" in output.getvalue()

    @pytest.mark.asyncio
    async def test_board_without_sprints_ends_run(self, jira, make_session, output):
        jira.list_sprints.return_value = []
        session, prompter = make_session([])

        assert await session.run() == 0

        assert prompter.questions == []
        jira.list_sprint_issues.assert_not_awaited()
        jira.list_backlog_issues.assert_not_awaited()
        assert _workflow_calls(jira) == []
        assert "Warning: No active or future sprints on board 42" in output.getvalue()

    @pytest.mark.asyncio
    async def test_board_without_sprints_offers_backlog_when_allowed(self, jira, make_session):
        jira.list_sprints.return_value = []
        jira.list_backlog_issues.return_value = []
        session, prompter = make_session([BACKLOG], allow_backlog=True)

        assert await session.run() == 0

        backlog = prompter.questions[0]["choices"][-1]
        assert backlog.value == BACKLOG
        assert not backlog.disabled
        jira.list_backlog_issues.assert_awaited_once_with(42, "owner@redhat.com")


class TestBacklog:
    @pytest.mark.asyncio
    async def test_backlog_tasks_are_not_put_in_a_sprint(self, jira, make_session):
        jira.find_linked_tasks.return_value = [DEV_TASK]
        session, _ = make_session([BACKLOG, [DEV], 3, True], allow_backlog=True)

        assert await session.run() == 0

        jira.list_backlog_issues.assert_awaited_once_with(42, "owner@redhat.com")
        jira.list_sprint_issues.assert_not_awaited()
        task_update = jira.update_issue.await_args_list[0]
        assert task_update == call(
            "RHEL-2000", IssueUpdate(assignee="owner@redhat.com", size=3, sprint=UNSET)
        )


class TestTaskKindSelection:
    @pytest.mark.asyncio
    async def test_catalog_is_offered_with_defaults(self, make_session):
        session, prompter = make_session([[DEV]])

        kinds = await session.select_task_kinds(PARENT)

        assert [k.id for k in kinds] == [DEV]
        choices = [c for c in prompter.questions[0]["choices"] if isinstance(c, Choice)]
        checked = {c.value for c in choices if c.checked}
        assert checked == {DEV, QE}
        assert [c.value for c in choices][-2:] == [SKIP, EXIT]

    @pytest.mark.asyncio
    async def test_skip_moves_to_next_issue(self, jira, make_session):
        jira.list_sprint_issues.return_value = [_issue("RHEL-1"), _issue("RHEL-2")]
        jira.find_linked_tasks.return_value = [QE_TASK]
        session, _ = make_session([1, [DEV, QE, SKIP], [QE]])

        assert await session.run() == 0

        jira.create_sub_tasks.assert_awaited_once_with("RHEL-2", [QE])
        assert [c.args[0] for c in jira.update_issue.await_args_list] == ["RHEL-2"]

    @pytest.mark.asyncio
    async def test_exit_stops_run_even_with_kinds_ticked(self, jira, make_session):
        jira.list_sprint_issues.return_value = [_issue("RHEL-1"), _issue("RHEL-2")]
        session, prompter = make_session([1, [DEV, SKIP, EXIT]])

        assert await session.run() == 0

        assert _workflow_calls(jira) == []
        assert len(prompter.questions) == 2

    @pytest.mark.asyncio
    async def test_empty_answer_skips_issue(self, jira, make_session):
        session, _ = make_session([1, []])

        assert await session.run() == 0

        assert _workflow_calls(jira) == []

    @pytest.mark.asyncio
    async def test_alternate_catalog(self, jira, make_session):
        catalog = (TaskKind(1, "Docs Task", checked=True), TaskKind(2, "Review", follow_up=False))
        jira.find_linked_tasks.return_value = [
            _issue("RHEL-3000", "[Docs Task]: x"),
            _issue("RHEL-3001", "[Review]: x"),
        ]
        session, _ = make_session([1, [1, 2], 2, False], task_kinds=catalog)

        await session.run()

        assert _workflow_calls(jira) == [
            call.create_sub_tasks("RHEL-1234", [1, 2]),
            call.find_linked_tasks("RHEL-1234", ["Docs Task", "Review"]),
            call.update_issue(
                "RHEL-3000", IssueUpdate(assignee="owner@redhat.com", size=2, sprint=UNSET)
            ),
            call.update_issue("RHEL-1234", IssueUpdate(size=0, sprint=None)),
        ]


class TestPolling:
    @pytest.mark.asyncio
    async def test_succeeds_on_tenth_attempt(self, jira, make_session, sleep, output):
        jira.find_linked_tasks.side_effect = [[]] * 9 + [[DEV_TASK, QE_TASK]]
        session, _ = make_session([])
        kinds = [session.task_kinds[0], session.task_kinds[1]]

        tasks = await session.wait_for_tasks("RHEL-1234", kinds)

        assert tasks == [DEV_TASK, QE_TASK]
        assert jira.find_linked_tasks.await_count == 10
        assert sleep.await_count == 9
        sleep.assert_awaited_with(5.0)
        assert output.getvalue().count("Waiting for tasks to be created...") == 9
        assert "Warning" not in output.getvalue()

    @pytest.mark.asyncio
    async def test_gives_up_with_partial_result(self, jira, make_session, sleep, output):
        jira.find_linked_tasks.return_value = [DEV_TASK]
        session, _ = make_session([])
        kinds = [session.task_kinds[0], session.task_kinds[1]]

        tasks = await session.wait_for_tasks("RHEL-1234", kinds)

        assert tasks == [DEV_TASK]
        assert jira.find_linked_tasks.await_count == 10
        assert sleep.await_count == 9
        assert "Warning: only 1 of 2 tasks for RHEL-1234" in output.getvalue()

    @pytest.mark.asyncio
    async def test_found_immediately_does_not_wait(self, jira, make_session, sleep):
        session, _ = make_session([])

        await session.wait_for_tasks("RHEL-1234", session.task_kinds[:2])

        assert jira.find_linked_tasks.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_continues_after_giving_up(self, jira, make_session):
        jira.find_linked_tasks.return_value = []
        session, _ = make_session([1, [DEV, QE]])

        assert await session.run() == 0

        jira.update_issue.assert_awaited_once_with(
            "RHEL-1234", IssueUpdate(size=0, sprint=None)
        )


class TestTaskUpdate:
    @pytest.mark.asyncio
    async def test_default_size_comes_from_parent(self, make_session):
        session, prompter = make_session([8, True])
        parent = _issue("RHEL-1", size=8.0)

        await session.update_task(DEV_TASK, parent, 1)

        assert prompter.questions[0]["default"] == 8
        assert [c.value for c in prompter.questions[0]["choices"]] == [0, 1, 2, 3, 5, 8, 13]
        assert prompter.questions[1]["default"] is True

    @pytest.mark.asyncio
    async def test_default_size_is_three_without_estimate(self, make_session):
        session, prompter = make_session([3, True])

        await session.update_task(DEV_TASK, _issue("RHEL-1", size=None), 1)

        assert prompter.questions[0]["default"] == 3

    @pytest.mark.asyncio
    async def test_no_sprint_when_declined(self, jira, make_session):
        session, _ = make_session([1, False])

        await session.update_task(DEV_TASK, PARENT, 7)

        jira.update_issue.assert_awaited_once_with(
            "RHEL-2000", IssueUpdate(assignee="owner@redhat.com", size=1, sprint=UNSET)
        )

    @pytest.mark.asyncio
    async def test_unassigned_parent_leaves_assignee_alone(self, jira, make_session):
        session, _ = make_session([13, True])

        await session.update_task(DEV_TASK, _issue("RHEL-1", email=None), 7)

        jira.update_issue.assert_awaited_once_with(
            "RHEL-2000", IssueUpdate(assignee=UNSET, size=13, sprint=7)
        )
