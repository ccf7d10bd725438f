"""Turn model tool calls into executed side effects."""

import asyncio
from typing import Any

from gander.exceptions import ToolError, ToolExecutionError, ToolTimeoutError, UnknownToolError
from gander.logging import get_logger
from gander.message import ToolResult, ToolUse
from gander.tools.registry import ToolOutput, ToolRegistry, validate_parameters

log = get_logger(__name__)


class ToolExecutor:
    """Execute one validated tool invocation and wrap the outcome.

    Every failure mode (unknown tool, bad parameters, timeout, handler
    exception) comes back as an error-flagged ``ToolResult`` so the model can
    react to it. Only cancellation propagates.
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def execute(self, request: ToolUse) -> ToolResult:
        """Run the tool named in request and return its result content."""
        try:
            tool = self.registry.lookup(request.name)
        except UnknownToolError as e:
            log.warning("Model requested unknown tool", tool=request.name, call_id=request.id)
            return self._error(request, str(e))

        try:
            validate_parameters(tool, request.parameters)
        except ToolError as e:
            log.warning("Invalid tool parameters", tool=request.name, error=str(e))
            return self._error(request, str(e))

        arguments: dict[str, Any] = dict(request.parameters)
        timeout = float(tool.timeout_seconds or 0) or None
        try:
            log.info("Executing tool", tool=tool.name, call_id=request.id, args=arguments)
            output = await asyncio.wait_for(tool.execute(**arguments), timeout=timeout)
        except asyncio.TimeoutError:
            error = ToolTimeoutError(tool.name, timeout or 0)
            log.error("Tool timed out", tool=tool.name, timeout=timeout)
            return self._error(request, str(error))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Tool execution failed", tool=tool.name, error=str(e))
            return self._error(request, str(ToolExecutionError(tool.name, str(e))))

        if not isinstance(output, ToolOutput):
            return self._error(request, f"Tool '{tool.name}' returned invalid result payload")

        log.info("Tool executed", tool=tool.name, success=output.success)
        return ToolResult(
            tool_use_id=request.id,
            output=output.render(),
            is_error=not output.success,
        )

    @staticmethod
    def _error(request: ToolUse, text: str) -> ToolResult:
        return ToolResult(tool_use_id=request.id, output=text, is_error=True)
