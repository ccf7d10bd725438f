import asyncio

import pytest

from gander.message import ToolUse
from gander.tools.executor import ToolExecutor
from gander.tools.registry import Tool, ToolOutput, ToolRegistry


class EchoTool(Tool):
    name = "echo"
    description = "Echo the value back"
    parameters = {
        "type": "object",
        "properties": {"value": {"type": "string"}},
        "required": ["value"],
    }

    def __init__(self):
        self.calls: list[dict] = []

    async def execute(self, **kwargs) -> ToolOutput:
        self.calls.append(kwargs)
        return ToolOutput(success=True, content=f"echo: {kwargs['value']}")


class FailingTool(Tool):
    name = "failing"
    description = "Always fails"
    parameters = {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs) -> ToolOutput:
        return ToolOutput(success=False, content="partial output", error="exit 2")


class ExplodingTool(Tool):
    name = "exploding"
    description = "Raises"
    parameters = {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs) -> ToolOutput:
        raise RuntimeError("kaboom")


class SlowTool(Tool):
    name = "slow"
    description = "Sleeps"
    parameters = {"type": "object", "properties": {}, "required": []}
    timeout_seconds = 0.05

    async def execute(self, **kwargs) -> ToolOutput:
        await asyncio.sleep(5)
        return ToolOutput(success=True, content="late")


class BadPayloadTool(Tool):
    name = "bad_payload"
    description = "Returns a plain string"
    parameters = {"type": "object", "properties": {}, "required": []}

    async def execute(self, **kwargs):
        return "not a ToolOutput"


def _executor(*tools: Tool) -> ToolExecutor:
    return ToolExecutor(ToolRegistry(list(tools)))


@pytest.mark.asyncio
async def test_executes_tool_and_wraps_output():
    echo = EchoTool()
    result = await _executor(echo).execute(ToolUse(id="call_1", name="echo", parameters={"value": "hi"}))

    assert result.tool_use_id == "call_1"
    assert result.output == "echo: hi"
    assert result.is_error is False
    assert echo.calls == [{"value": "hi"}]


@pytest.mark.asyncio
async def test_unknown_tool_is_an_error_result():
    result = await _executor(EchoTool()).execute(ToolUse(id="call_1", name="nope", parameters={}))

    assert result.is_error is True
    assert "Unknown tool: nope" in result.output


@pytest.mark.asyncio
async def test_missing_parameter_is_reported_without_running_tool():
    echo = EchoTool()
    result = await _executor(echo).execute(ToolUse(id="call_1", name="echo", parameters={}))

    assert result.is_error is True
    assert "missing required parameter: value" in result.output
    assert echo.calls == []


@pytest.mark.asyncio
async def test_tool_failure_is_error_with_output():
    result = await _executor(FailingTool()).execute(ToolUse(id="call_1", name="failing", parameters={}))

    assert result.is_error is True
    assert result.output == "exit 2\npartial output"


@pytest.mark.asyncio
async def test_tool_exception_becomes_error_result():
    result = await _executor(ExplodingTool()).execute(ToolUse(id="call_1", name="exploding", parameters={}))

    assert result.is_error is True
    assert result.output == "Tool 'exploding' failed: kaboom"


@pytest.mark.asyncio
async def test_tool_timeout_becomes_error_result():
    result = await _executor(SlowTool()).execute(ToolUse(id="call_1", name="slow", parameters={}))

    assert result.is_error is True
    assert "timed out" in result.output


@pytest.mark.asyncio
async def test_non_output_payload_is_rejected():
    result = await _executor(BadPayloadTool()).execute(ToolUse(id="call_1", name="bad_payload", parameters={}))

    assert result.is_error is True
    assert "invalid result payload" in result.output
