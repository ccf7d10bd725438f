"""Operator input and output."""

import asyncio
from typing import Protocol

from rich.console import Console
from rich.markup import escape


class OperatorIO(Protocol):
    """What a session needs from the person at the keyboard."""

    async def read_line(self) -> str | None:
        """Next line of input, or None at end of input."""
        ...

    def display(self, text: str) -> None: ...

    def info(self, text: str) -> None: ...

    def warn(self, text: str) -> None: ...

    def error(self, text: str) -> None: ...

    def tool_call(self, name: str, parameters: object) -> None: ...

    def tool_result(self, name: str, output: str, is_error: bool) -> None: ...


class ConsoleIO:
    """Terminal implementation backed by a rich console."""

    def __init__(self, console: Console | None = None, prompt: str = "( O)> "):
        self.console = console or Console()
        self.prompt = prompt

    def _read(self) -> str | None:
        try:
            return self.console.input(f"[bold cyan]{escape(self.prompt)}[/]")
        except EOFError:
            return None

    async def read_line(self) -> str | None:
        """Read a line in a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(self._read)

    def display(self, text: str) -> None:
        self.console.print(escape(text))

    def info(self, text: str) -> None:
        self.console.print(escape(text), style="dim")

    def warn(self, text: str) -> None:
        self.console.print(escape(text), style="yellow")

    def error(self, text: str) -> None:
        self.console.print(f"Error: {escape(text)}", style="bold red")

    def tool_call(self, name: str, parameters: object) -> None:
        self.console.print(escape(f"[TOOL] {name}: {parameters}"), style="magenta")

    def tool_result(self, name: str, output: str, is_error: bool) -> None:
        preview = output[:200] + "..." if len(output) > 200 else output
        style = "red" if is_error else "green"
        self.console.print(escape(f"[TOOL RESULT] {name}: {preview}"), style=style)
