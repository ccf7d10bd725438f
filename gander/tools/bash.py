"""Bash tool for running shell commands."""

import asyncio
import os
import shlex
from typing import Any

from gander.config import Config, get_config
from gander.logging import get_logger
from gander.tools.registry import Tool, ToolOutput, require_one_of

log = get_logger(__name__)


def compose_script(
    working_dir: str | None = None,
    source_path: str | None = None,
    command: str | None = None,
) -> str:
    """Build the script that changes directory, sources, then runs, in that order."""
    steps: list[str] = []
    if working_dir:
        steps.append(f"cd {shlex.quote(working_dir)}")
    if source_path:
        steps.append(f"source {shlex.quote(source_path)}")
    if command:
        steps.append(command)
    return " && ".join(steps)


class BashTool(Tool):
    """Run commands in a bash shell."""

    name = "bash"
    description = (
        "Run commands in a bash shell. Perform bash-related operations in a specific order: "
        "1. Change the working directory (if provided) "
        "2. Source a file (if provided) "
        "3. Run a shell command (if provided) "
        "At least one of the parameters must be provided."
    )
    parameters = {
        "type": "object",
        "properties": {
            "working_dir": {
                "type": "string",
                "description": "The directory to change to.",
            },
            "source_path": {
                "type": "string",
                "description": "The file to source before running the command.",
            },
            "command": {
                "type": "string",
                "description": "The bash shell command to run.",
            },
        },
        "required": [],
    }

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self.timeout_seconds = float(self.config.tools.bash.timeout or 60)
        self.max_output_chars = int(self.config.tools.bash.max_output_chars or 10000)

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        require_one_of(self, arguments, ["working_dir", "source_path", "command"])

    def _truncate(self, output: str) -> str:
        if len(output) <= self.max_output_chars:
            return output
        return output[: self.max_output_chars] + f"\n... [truncated, {len(output)} total chars]"

    async def execute(
        self,
        working_dir: str | None = None,
        source_path: str | None = None,
        command: str | None = None,
        **kwargs: Any,
    ) -> ToolOutput:
        """Run the composed script.

        Args:
            working_dir: Directory to cd into first
            source_path: File to source before the command
            command: Command to run

        Returns:
            ToolOutput with merged stdout and stderr
        """
        script = compose_script(working_dir, source_path, command)
        if not script:
            return ToolOutput(success=False, error="Nothing to run")

        log.info("Running bash script", script=script)
        process = await asyncio.create_subprocess_exec(
            "/bin/bash",
            "-c",
            script,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=os.environ.copy(),
        )
        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        output = self._truncate(stdout.decode("utf-8", errors="replace").rstrip())
        if process.returncode != 0:
            log.warning("Bash script failed", script=script, returncode=process.returncode)
            return ToolOutput(
                success=False,
                content=output,
                error=f"Command exited with status {process.returncode}",
            )
        return ToolOutput(success=True, content=output or "[no output]")
