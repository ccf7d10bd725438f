import pytest

import gander.config as config_module
from gander.config import Config
from gander.exceptions import ConfigurationError, MissingParameterError, ToolError, UnknownToolError
from gander.tools.bash import BashTool
from gander.tools.default import build_default_registry
from gander.tools.process_manager import ProcessManagerTool
from gander.tools.registry import Tool, ToolOutput, ToolRegistry, validate_parameters
from gander.tools.text_editor import TextEditorTool


class EchoTool(Tool):
    name = "echo"
    description = "Echo the value back"
    parameters = {
        "type": "object",
        "properties": {"value": {"type": "string"}},
        "required": ["value"],
    }

    def __init__(self):
        self.closed = False

    async def execute(self, **kwargs) -> ToolOutput:
        return ToolOutput(success=True, content=str(kwargs["value"]))

    async def close(self) -> None:
        self.closed = True


class BrokenCloseTool(EchoTool):
    name = "broken"

    async def close(self) -> None:
        raise RuntimeError("cannot close")


@pytest.fixture(autouse=True)
def _default_config(monkeypatch):
    monkeypatch.setattr(config_module, "_config", Config())


def test_register_and_lookup():
    registry = ToolRegistry([EchoTool()])

    assert registry.has_tool("echo")
    assert registry.lookup("echo").name == "echo"
    assert registry.names() == ["echo"]
    assert [tool.name for tool in registry.list()] == ["echo"]
    assert len(registry) == 1
    assert registry.get_definitions() == [
        {
            "name": "echo",
            "description": "Echo the value back",
            "parameters": EchoTool.parameters,
        }
    ]


def test_lookup_unknown_tool_raises():
    with pytest.raises(UnknownToolError) as excinfo:
        ToolRegistry().lookup("missing")

    assert excinfo.value.tool_name == "missing"


def test_register_rejects_duplicate_names():
    registry = ToolRegistry([EchoTool()])

    with pytest.raises(ValueError):
        registry.register(EchoTool())


def test_validate_parameters_reports_missing_key():
    with pytest.raises(MissingParameterError) as excinfo:
        validate_parameters(EchoTool(), {})

    assert excinfo.value.parameter == "value"


def test_validate_parameters_rejects_non_object():
    with pytest.raises(ToolError):
        validate_parameters(EchoTool(), ["value"])


def test_bash_requires_at_least_one_parameter():
    tool = BashTool()

    with pytest.raises(MissingParameterError):
        validate_parameters(tool, {})
    validate_parameters(tool, {"command": "ls"})
    validate_parameters(tool, {"working_dir": "/tmp"})
    validate_parameters(tool, {"source_path": "env.sh"})


def test_text_editor_requires_command_and_path():
    tool = TextEditorTool()

    with pytest.raises(MissingParameterError) as missing_command:
        validate_parameters(tool, {"path": "/tmp/x"})
    with pytest.raises(MissingParameterError) as missing_path:
        validate_parameters(tool, {"command": "view"})

    assert missing_command.value.parameter == "command"
    assert missing_path.value.parameter == "path"


def test_text_editor_command_specific_fields():
    tool = TextEditorTool()

    with pytest.raises(MissingParameterError) as create_exc:
        validate_parameters(tool, {"command": "create", "path": "/tmp/x"})
    with pytest.raises(MissingParameterError) as replace_exc:
        validate_parameters(tool, {"command": "str_replace", "path": "/tmp/x"})
    with pytest.raises(MissingParameterError) as insert_exc:
        validate_parameters(tool, {"command": "insert", "path": "/tmp/x", "new_str": "y"})
    with pytest.raises(ToolError):
        validate_parameters(tool, {"command": "delete", "path": "/tmp/x"})
    with pytest.raises(ToolError):
        validate_parameters(tool, {"command": "view", "path": "/tmp/x", "view_range": [1]})

    assert create_exc.value.parameter == "file_text"
    assert replace_exc.value.parameter == "old_str"
    assert insert_exc.value.parameter == "insert_line"
    validate_parameters(tool, {"command": "view", "path": "/tmp/x", "view_range": [1, -1]})
    validate_parameters(tool, {"command": "undo_edit", "path": "/tmp/x"})


def test_process_manager_command_specific_fields():
    tool = ProcessManagerTool()

    with pytest.raises(MissingParameterError) as command_exc:
        validate_parameters(tool, {})
    with pytest.raises(MissingParameterError) as start_exc:
        validate_parameters(tool, {"command": "start"})
    with pytest.raises(MissingParameterError) as view_exc:
        validate_parameters(tool, {"command": "view_output"})
    with pytest.raises(MissingParameterError) as cancel_exc:
        validate_parameters(tool, {"command": "cancel"})

    assert command_exc.value.parameter == "command"
    assert start_exc.value.parameter == "shell_command"
    assert view_exc.value.parameter == "process_id"
    assert cancel_exc.value.parameter == "process_id"
    validate_parameters(tool, {"command": "list"})


def test_default_registry_follows_enabled_order():
    cfg = Config(tools={"enabled": ["text_editor", "bash"]})

    registry = build_default_registry(cfg)

    assert registry.names() == ["text_editor", "bash"]


def test_default_registry_hands_its_config_to_the_tools():
    cfg = Config(tools={"bash": {"timeout": 5}, "text_editor": {"max_view_chars": 40}})

    registry = build_default_registry(cfg)

    assert registry.lookup("bash").timeout_seconds == 5
    assert registry.lookup("text_editor").max_view_chars == 40


def test_default_registry_rejects_unknown_tool():
    with pytest.raises(ConfigurationError):
        build_default_registry(Config(tools={"enabled": ["bash", "browser"]}))


@pytest.mark.asyncio
async def test_close_closes_every_tool_even_when_one_fails():
    echo = EchoTool()
    registry = ToolRegistry([BrokenCloseTool(), echo])

    await registry.close()

    assert echo.closed is True


def test_global_registry_builds_default_toolkit_lazily(monkeypatch):
    import gander.tools.registry as registry_module
    from gander.tools.registry import get_tool_registry, set_tool_registry

    monkeypatch.setattr(registry_module, "_registry", None)

    registry = get_tool_registry()

    assert registry.names() == ["bash", "text_editor", "process_manager"]
    assert get_tool_registry() is registry

    custom = ToolRegistry([EchoTool()])
    set_tool_registry(custom)
    assert get_tool_registry() is custom
