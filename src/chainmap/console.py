"""Human-facing CLI messages (stderr); machine output goes to stdout."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

_console = Console(stderr=True)


def _emit(message: str, prefix: str, style: str) -> None:
    text = f"[{style}]{prefix}[/{style}] {escape(message)}"
    _console.print(text, soft_wrap=True, highlight=False)


def dim(message: str) -> None:
    _console.print(escape(message), style="dim", soft_wrap=True)


def success(message: str) -> None:
    _emit(message, "ok:", "green")


def warning(message: str) -> None:
    _emit(message, "warning:", "yellow")


def error(message: str) -> None:
    _emit(message, "error:", "bold red")
