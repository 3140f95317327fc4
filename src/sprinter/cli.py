"""Command line entry point."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Optional

import typer

from . import __version__
from .config import SprinterConfig
from .exceptions import SprinterError
from .jira.client import JiraClient
from .output import console, print_error, print_info, set_color
from .prompts import Prompter, TerminalPrompter
from .triage import TriageSession

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="sprinter",
    help="🏃 Small CLI tool to manage sprints in JIRA Board",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"sprinter {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    log_format = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=log_format)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.INFO if verbose else logging.WARNING)


async def run_triage(config: SprinterConfig, prompter: Prompter) -> int:
    """Connect to Jira and run one triage session."""
    config.require_token()
    board = config.require_board()

    async with JiraClient(config.jira(), config.fields, dry_run=config.dry) as jira:
        version = await jira.get_server_version()
        print_info(f"JIRA Version: {version}")
        if config.dry:
            print_info("Dry run: nothing will be changed in Jira")

        session = TriageSession(
            jira,
            prompter,
            board_id=board,
            assignee=config.assignee,
            task_kinds=config.task_kinds,
            allow_backlog=config.allow_backlog,
        )
        return await session.run()


@app.command()
def main(
    board: Annotated[
        Optional[int],
        typer.Option("--board", "-b", help="Jira Board ID"),
    ] = None,
    assignee: Annotated[
        Optional[str],
        typer.Option("--assignee", "-a", help="Jira Assignee (default: <login>@<email domain>)"),
    ] = None,
    nocolor: Annotated[
        bool,
        typer.Option("--nocolor", "-n", help="Disable color output"),
    ] = False,
    dry: Annotated[
        bool,
        typer.Option("--dry", "-x", help="dry run"),
    ] = False,
    backlog: Annotated[
        bool,
        typer.Option("--backlog", help="Allow picking the board backlog as source"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output"),
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show the version and exit",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
):
    """🏃 Small CLI tool to manage sprints in JIRA Board.

    Pick a sprint, then split each of its issues into DEV/QE/... tasks,
    size them and move them into the sprint.
    """
    _configure_logging(verbose)

    try:
        config = SprinterConfig.load()
    except SprinterError as e:
        print_error(str(e))
        raise typer.Exit(code=1)

    # Flags win over config file and environment
    if board is not None:
        config.board = board
    if assignee:
        config.assignee = assignee
    config.nocolor = config.nocolor or nocolor
    config.dry = config.dry or dry
    config.allow_backlog = config.allow_backlog or backlog

    set_color(not config.nocolor)

    try:
        code = asyncio.run(run_triage(config, TerminalPrompter(color=not config.nocolor)))
    except SprinterError as e:
        logger.debug("Run failed", exc_info=True)
        print_error(str(e))
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted.[/dim]")
        raise typer.Exit(code=130)

    raise typer.Exit(code=code)
