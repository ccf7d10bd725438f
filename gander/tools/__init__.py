"""Tools package for Gander."""

from gander.tools.registry import (
    Tool,
    ToolOutput,
    ToolRegistry,
    get_tool_registry,
    set_tool_registry,
    validate_parameters,
)
from gander.tools.executor import ToolExecutor
from gander.tools.bash import BashTool
from gander.tools.text_editor import TextEditorTool
from gander.tools.process_manager import ProcessManagerTool
from gander.tools.default import build_default_registry

__all__ = [
    "Tool",
    "ToolOutput",
    "ToolRegistry",
    "ToolExecutor",
    "get_tool_registry",
    "set_tool_registry",
    "validate_parameters",
    "BashTool",
    "TextEditorTool",
    "ProcessManagerTool",
    "build_default_registry",
]
