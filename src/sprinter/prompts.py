"""Interactive list prompts.

The triage workflow asks two kinds of questions: pick one entry of a list,
or tick any number of entries. Both go through the Prompter protocol so the
workflow can be driven by a scripted prompter in tests. TerminalPrompter
renders the lists inline with prompt_toolkit.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, Union

from prompt_toolkit.application import Application
from prompt_toolkit.formatted_text import ANSI, FormattedText, to_formatted_text
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style
from rich.console import Console
from rich.text import Text


@dataclass
class Choice:
    """A selectable row. Labels are rich markup."""

    label: str
    value: Any
    disabled: bool = False
    checked: bool = False


@dataclass
class Separator:
    """A row that cannot be selected."""

    label: str = "──────────────"


Entry = Union[Choice, Separator]


class Prompter(Protocol):
    """What the triage workflow needs from the terminal."""

    async def select(
        self,
        message: str,
        choices: Sequence[Entry],
        *,
        default: Any = None,
        loop: bool = False,
        page_size: int | None = None,
    ) -> Any: ...

    async def checkbox(
        self,
        message: str,
        choices: Sequence[Entry],
        *,
        loop: bool = False,
        page_size: int | None = None,
    ) -> list[Any]: ...


PROMPT_STYLE = Style.from_dict(
    {
        "question": "bold",
        "pointer": "ansicyan bold",
        "disabled": "ansigray italic",
        "separator": "ansigray",
        "hint": "ansigray",
    }
)


def _markup_to_ansi(markup: str, color: bool) -> ANSI:
    """Render rich markup to an ANSI string prompt_toolkit can display."""
    buffer = io.StringIO()
    renderer = Console(
        file=buffer,
        force_terminal=True,
        no_color=not color,
        color_system="truecolor" if color else None,
        width=10_000,
        highlight=False,
    )
    renderer.print(markup, end="", soft_wrap=True)
    return ANSI(buffer.getvalue())


class _ListState:
    """Cursor, ticks and scroll window of one list prompt."""

    def __init__(self, entries: Sequence[Entry], loop: bool, page_size: int | None):
        self.entries = list(entries)
        self.loop = loop
        self.page_size = page_size or len(self.entries) or 1
        self.selectable = [
            i for i, e in enumerate(self.entries) if isinstance(e, Choice) and not e.disabled
        ]
        if not self.selectable:
            raise ValueError("Prompt needs at least one selectable choice")
        self.cursor = self.selectable[0]
        self.ticked = {
            i for i, e in enumerate(self.entries) if isinstance(e, Choice) and e.checked
        } & set(self.selectable)
        self.top = 0

    def place(self, value: Any) -> None:
        for i in self.selectable:
            if self.entries[i].value == value:
                self.cursor = i
                break
        self._scroll()

    def move(self, step: int) -> None:
        position = self.selectable.index(self.cursor) + step
        if self.loop:
            position %= len(self.selectable)
        else:
            position = max(0, min(position, len(self.selectable) - 1))
        self.cursor = self.selectable[position]
        self._scroll()

    def toggle(self) -> None:
        self.ticked ^= {self.cursor}

    def _scroll(self) -> None:
        if self.cursor < self.top:
            self.top = self.cursor
        elif self.cursor >= self.top + self.page_size:
            self.top = self.cursor - self.page_size + 1

    def visible(self) -> range:
        return range(self.top, min(self.top + self.page_size, len(self.entries)))


class TerminalPrompter:
    """Prompter that draws the list below the cursor and waits for keys.

    Up/down (or k/j) move, space ticks in checkbox mode, enter answers,
    Ctrl-C raises KeyboardInterrupt.
    """

    def __init__(self, color: bool = True):
        self.color = color

    async def select(
        self,
        message: str,
        choices: Sequence[Entry],
        *,
        default: Any = None,
        loop: bool = False,
        page_size: int | None = None,
    ) -> Any:
        state = _ListState(choices, loop, page_size)
        if default is not None:
            state.place(default)
        return await self._run(message, state, multi=False)

    async def checkbox(
        self,
        message: str,
        choices: Sequence[Entry],
        *,
        loop: bool = False,
        page_size: int | None = None,
    ) -> list[Any]:
        state = _ListState(choices, loop, page_size)
        return await self._run(message, state, multi=True)

    async def _run(self, message: str, state: _ListState, multi: bool) -> Any:
        labels = {
            i: _markup_to_ansi(e.label, self.color)
            for i, e in enumerate(state.entries)
            if isinstance(e, Choice)
        }
        hint = "(space to toggle, enter to confirm)" if multi else "(use arrow keys)"

        def render() -> FormattedText:
            lines: list[tuple[str, str]] = [
                ("class:question", f"? {_plain(message)} "),
                ("class:hint", hint),
                ("", "\n"),
            ]
            for i in state.visible():
                entry = state.entries[i]
                if isinstance(entry, Separator):
                    lines.append(("class:separator", f"  {entry.label}\n"))
                    continue
                pointer = "❯ " if i == state.cursor else "  "
                lines.append(("class:pointer", pointer))
                if multi:
                    lines.append(("", "◉ " if i in state.ticked else "◯ "))
                if entry.disabled:
                    lines.append(("class:disabled", f"- {_plain(entry.label)} (disabled)"))
                else:
                    lines.extend(to_formatted_text(labels[i]))
                lines.append(("", "\n"))
            return FormattedText(lines)

        bindings = KeyBindings()

        @bindings.add("up")
        @bindings.add("k")
        def _up(event) -> None:
            state.move(-1)

        @bindings.add("down")
        @bindings.add("j")
        def _down(event) -> None:
            state.move(1)

        if multi:

            @bindings.add("space")
            def _toggle(event) -> None:
                state.toggle()

        @bindings.add("enter")
        def _answer(event) -> None:
            if multi:
                event.app.exit(result=[state.entries[i].value for i in sorted(state.ticked)])
            else:
                event.app.exit(result=state.entries[state.cursor].value)

        @bindings.add("c-c")
        def _interrupt(event) -> None:
            event.app.exit(exception=KeyboardInterrupt())

        app: Application[Any] = Application(
            layout=Layout(HSplit([Window(FormattedTextControl(render), always_hide_cursor=True)])),
            key_bindings=bindings,
            style=PROMPT_STYLE,
            full_screen=False,
            erase_when_done=False,
        )
        return await app.run_async()


def _plain(markup: str) -> str:
    """Strip rich markup, for rows drawn with prompt_toolkit styles."""
    return Text.from_markup(markup).plain
