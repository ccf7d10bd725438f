"""Custom exceptions for Gander."""


class GanderError(Exception):
    """Base exception for Gander."""

    pass


class ConfigurationError(GanderError):
    """Configuration-related errors."""

    pass


class InvalidMessageError(GanderError):
    """A message violates the role/content rules."""

    def __init__(self, rule: str, message: str):
        super().__init__(message)
        self.rule = rule


class ExchangeError(GanderError):
    """Exchange-related errors."""

    pass


class EmptyHistoryError(ExchangeError):
    """Rewind requested on an empty history."""

    def __init__(self):
        super().__init__("Cannot rewind: history is empty")


class ProviderError(GanderError):
    """Model backend call failed (network, auth, malformed response)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    """Model backend did not answer within the deadline."""

    def __init__(self, timeout: float):
        super().__init__(f"Model backend timed out after {timeout:g}s")
        self.timeout = timeout


class ToolError(GanderError):
    """Tool execution errors."""

    pass


class UnknownToolError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class MissingParameterError(ToolError):
    """A required tool parameter is absent."""

    def __init__(self, tool_name: str, parameter: str, detail: str = ""):
        text = f"Tool '{tool_name}' is missing required parameter: {parameter}"
        if detail:
            text += f" ({detail})"
        super().__init__(text)
        self.tool_name = tool_name
        self.parameter = parameter


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolTimeoutError(ToolError):
    """Tool execution exceeded its deadline."""

    def __init__(self, tool_name: str, timeout: float):
        super().__init__(f"Tool '{tool_name}' timed out after {timeout:g}s")
        self.tool_name = tool_name
        self.timeout = timeout


class PersistenceError(GanderError):
    """Reading or writing the session log failed."""

    pass


class SessionError(GanderError):
    """Session-related errors."""

    pass
