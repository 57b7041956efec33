"""Operator-facing build output on a rich Console.

The buildpack log is read by humans in a deploy stream, so headers and
warnings are kept short and indented the way the rest of the platform prints.
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape

from node_builder.types import Diagnostic


class BuildOutput:
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False, soft_wrap=True)
        self.warnings: list[str] = []

    def header(self, text: str) -> None:
        self.console.print()
        self.console.print(f"[bold]-----> {escape(text)}[/bold]")

    def info(self, text: str) -> None:
        self.console.print(f"       {escape(text)}")

    def line(self, text: str) -> None:
        self.console.print(escape(text.rstrip("\n")))

    def warning(self, text: str) -> None:
        self.warnings.append(text)
        self.console.print(f"[yellow] !     {escape(text)}[/yellow]")

    def error(self, text: str) -> None:
        self.console.print(f"[red] !     {escape(text)}[/red]")

    def diagnostics(self, items: Iterable[Diagnostic]) -> None:
        for d in items:
            style = "red" if d.severity == "fatal" else "yellow"
            self.console.print()
            self.console.print(f"[{style}] !     {escape(d.title)}[/{style}]")
            for text in d.message.splitlines():
                self.console.print(f"       {escape(text)}")
