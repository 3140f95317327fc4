"""Rich console output helpers."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

# Shared console instance
console = Console(highlight=False)
error_console = Console(stderr=True, highlight=False)


def set_color(enabled: bool) -> None:
    """Turn colour output on or off for the shared consoles."""
    console.no_color = not enabled
    error_console.no_color = not enabled


def print_error(message: str) -> None:
    """Print an error message."""
    error_console.print(f"[red]Error:[/red] {escape(message)}")


def print_warning(message: str, out: Console | None = None) -> None:
    """Print a warning message."""
    (out or console).print(f"[yellow]Warning:[/yellow] {escape(message)}")


def print_success(message: str, out: Console | None = None) -> None:
    """Print a success message."""
    (out or console).print(f"[green]{escape(message)}[/green]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{escape(message)}[/dim]")
