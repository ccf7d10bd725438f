"""Process manager tool for background commands."""

import asyncio
import os
import signal
from dataclasses import dataclass, field
from typing import Any

from gander.config import Config, get_config
from gander.logging import get_logger
from gander.tools.registry import Tool, ToolOutput, require_for_command

log = get_logger(__name__)

_COMMAND_RULES: dict[str, list[str]] = {
    "start": ["shell_command"],
    "list": [],
    "view_output": ["process_id"],
    "cancel": ["process_id"],
}


@dataclass
class BackgroundProcess:
    """A shell command running in the background."""

    id: int
    command: str
    process: asyncio.subprocess.Process
    output: str = ""
    reader: asyncio.Task[None] | None = field(default=None, repr=False)
    cancelled: bool = False

    @property
    def status(self) -> str:
        if self.process.returncode is None:
            return "running"
        if self.cancelled:
            return "cancelled"
        return f"exited ({self.process.returncode})"


class ProcessManagerTool(Tool):
    """Start, inspect and cancel background processes."""

    name = "process_manager"
    description = "Manage background processes."
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": (
                    "The command to run.\n"
                    "Allowed options are: `start`, `list`, `view_output`, `cancel`."
                ),
                "enum": list(_COMMAND_RULES),
            },
            "shell_command": {
                "type": "string",
                "description": (
                    "Required parameter for the `start` command, representing "
                    "the shell command to be executed in the background."
                ),
            },
            "process_id": {
                "type": "integer",
                "description": (
                    "Required parameter for `view_output` and `cancel` commands, "
                    "representing the process ID of the background process to manage."
                ),
            },
        },
        "required": ["command"],
    }

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        settings = self.config.tools.process_manager
        self.grace_seconds = float(settings.grace_seconds)
        self.max_buffer_chars = int(settings.max_buffer_chars)
        self._processes: dict[int, BackgroundProcess] = {}
        self._next_id = 1

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        require_for_command(self, arguments, _COMMAND_RULES)

    async def execute(
        self,
        command: str,
        shell_command: str | None = None,
        process_id: int | None = None,
        **kwargs: Any,
    ) -> ToolOutput:
        if command == "start":
            return await self._start(str(shell_command))
        if command == "list":
            return self._list()

        entry = self._processes.get(self._coerce_id(process_id))
        if entry is None:
            return ToolOutput(success=False, error=f"No background process with id {process_id}")
        if command == "view_output":
            return self._view_output(entry)
        return await self._cancel(entry)

    @staticmethod
    def _coerce_id(raw: Any) -> int:
        try:
            return int(raw)
        except (TypeError, ValueError):
            return -1

    async def _pump(self, entry: BackgroundProcess) -> None:
        """Collect merged output until the process closes its stdout."""
        stream = entry.process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            entry.output += chunk.decode("utf-8", errors="replace")
            if len(entry.output) > self.max_buffer_chars:
                entry.output = entry.output[-self.max_buffer_chars:]
        await entry.process.wait()

    async def _start(self, shell_command: str) -> ToolOutput:
        process = await asyncio.create_subprocess_shell(
            shell_command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            stdin=asyncio.subprocess.DEVNULL,
            env=os.environ.copy(),
            start_new_session=True,
        )
        entry = BackgroundProcess(id=self._next_id, command=shell_command, process=process)
        self._next_id += 1
        entry.reader = asyncio.create_task(self._pump(entry))
        self._processes[entry.id] = entry
        log.info("Started background process", process_id=entry.id, pid=process.pid, command=shell_command)
        return ToolOutput(success=True, content=f"Started background process {entry.id}: {shell_command}")

    def _list(self) -> ToolOutput:
        if not self._processes:
            return ToolOutput(success=True, content="No background processes")
        rows = [
            f"{entry.id}\t{entry.status}\t{entry.command}"
            for entry in self._processes.values()
        ]
        return ToolOutput(success=True, content="\n".join(rows))

    def _view_output(self, entry: BackgroundProcess) -> ToolOutput:
        body = entry.output or "[no output yet]"
        return ToolOutput(success=True, content=f"Process {entry.id} status: {entry.status}\n{body}")

    async def _cancel(self, entry: BackgroundProcess) -> ToolOutput:
        if entry.process.returncode is not None:
            return ToolOutput(
                success=True,
                content=f"Process {entry.id} already finished: {entry.status}",
            )
        entry.cancelled = True
        self._signal(entry, signal.SIGTERM)
        try:
            await asyncio.wait_for(entry.process.wait(), timeout=self.grace_seconds)
        except asyncio.TimeoutError:
            self._signal(entry, signal.SIGKILL)
            await entry.process.wait()
        if entry.reader is not None:
            await entry.reader
        log.info("Cancelled background process", process_id=entry.id)
        return ToolOutput(success=True, content=f"Cancelled process {entry.id}")

    @staticmethod
    def _signal(entry: BackgroundProcess, sig: int) -> None:
        """Signal the whole process group started for the command."""
        try:
            os.killpg(entry.process.pid, sig)
        except ProcessLookupError:
            pass

    async def close(self) -> None:
        """Cancel every process still running."""
        for entry in list(self._processes.values()):
            if entry.process.returncode is None:
                await self._cancel(entry)
            elif entry.reader is not None and not entry.reader.done():
                await entry.reader
