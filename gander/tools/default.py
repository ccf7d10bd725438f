"""Default toolkit: the tools that are always available."""

from gander.config import Config, get_config
from gander.exceptions import ConfigurationError
from gander.tools.bash import BashTool
from gander.tools.process_manager import ProcessManagerTool
from gander.tools.registry import Tool, ToolRegistry
from gander.tools.text_editor import TextEditorTool

DEFAULT_TOOLS: dict[str, type[Tool]] = {
    "bash": BashTool,
    "text_editor": TextEditorTool,
    "process_manager": ProcessManagerTool,
}

TOOLKIT_DESCRIPTION = (
    "Default toolkit providing core functionality for file operations, "
    "command execution, and background process management."
)


def build_default_registry(config: Config | None = None) -> ToolRegistry:
    """Build a registry holding the enabled default tools, in config order."""
    cfg = config or get_config()
    registry = ToolRegistry()
    for name in cfg.tools.enabled:
        tool_cls = DEFAULT_TOOLS.get(name)
        if tool_cls is None:
            raise ConfigurationError(f"Unknown tool in tools.enabled: {name}")
        registry.register(tool_cls(cfg))
    return registry
