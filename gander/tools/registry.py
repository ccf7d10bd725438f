"""Tool registry and base tool class."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, model_validator

from gander.exceptions import MissingParameterError, ToolError, UnknownToolError
from gander.logging import get_logger

log = get_logger(__name__)


class ToolOutput(BaseModel):
    """Data returned by a tool handler."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolOutput":
        """Ensure failed outputs always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    def render(self) -> str:
        """Text shown to the model for this output."""
        if self.success:
            return self.content
        if self.content and self.content.strip() != (self.error or "").strip():
            return f"{self.error}\n{self.content}"
        return self.error or ""


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @property
    def required(self) -> list[str]:
        """Required parameter names, in declaration order."""
        return [str(item) for item in self.parameters.get("required", [])]

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolOutput:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments

        Returns:
            ToolOutput with success status and content
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for the model.

        Returns:
            Function-style definition
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Check tool-specific rules beyond the required keys.

        Raises:
            MissingParameterError or ToolError if invalid
        """
        return None

    async def close(self) -> None:
        """Release resources held across calls."""
        return None


def validate_parameters(tool: Tool, parameters: Any) -> None:
    """Validate a tool call's parameters against the tool contract.

    Raises:
        MissingParameterError for the first absent required key
        ToolError when parameters are not an object or break a tool rule
    """
    if not isinstance(parameters, dict):
        raise ToolError(f"Tool '{tool.name}' parameters must be an object")
    for name in tool.required:
        if name not in parameters:
            raise MissingParameterError(tool.name, name)
    tool.validate_arguments(parameters)


def require_one_of(tool: Tool, parameters: dict[str, Any], names: list[str]) -> None:
    """Fail unless at least one of names is present and not None."""
    if not any(parameters.get(name) is not None for name in names):
        raise MissingParameterError(
            tool.name,
            " | ".join(names),
            "at least one must be provided",
        )


def require_for_command(
    tool: Tool,
    parameters: dict[str, Any],
    rules: dict[str, list[str]],
) -> None:
    """Check the per-command required fields of a multi-command tool."""
    command = parameters.get("command")
    if command not in rules:
        allowed = ", ".join(rules)
        raise ToolError(
            f"Tool '{tool.name}' got unsupported command {command!r} (allowed: {allowed})"
        )
    for name in rules[command]:
        if parameters.get(name) is None:
            raise MissingParameterError(tool.name, name, f"required by `{command}`")


class ToolRegistry:
    """Registry of available tools, keyed by name."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return name in self._tools

    def lookup(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            UnknownToolError if not found
        """
        if name not in self._tools:
            raise UnknownToolError(name)
        return self._tools[name]

    def list_tools(self) -> list[Tool]:
        """All registered tools in registration order."""
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions for the model."""
        return [tool.get_definition() for tool in self._tools.values()]

    async def close(self) -> None:
        """Close every registered tool; failures are logged, not raised."""
        for tool in self._tools.values():
            try:
                await tool.close()
            except Exception as e:
                log.warning("Tool close failed", tool=tool.name, error=str(e))

    def __len__(self) -> int:
        return len(self._tools)

    list = list_tools


# Global registry
_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    """Get the global tool registry, building the default toolkit on first use."""
    global _registry
    if _registry is None:
        from gander.tools.default import build_default_registry

        _registry = build_default_registry()
    return _registry


def set_tool_registry(registry: ToolRegistry | None) -> None:
    """Set the global tool registry."""
    global _registry
    _registry = registry
