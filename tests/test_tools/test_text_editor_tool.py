import pytest

import gander.config as config_module
from gander.config import Config
from gander.message import ToolUse
from gander.tools.executor import ToolExecutor
from gander.tools.registry import ToolRegistry
from gander.tools.text_editor import TextEditorTool, clamp_view_range


@pytest.fixture(autouse=True)
def _default_config(monkeypatch):
    monkeypatch.setattr(config_module, "_config", Config())


def _ten_line_file(tmp_path):
    target = tmp_path / "notes.txt"
    target.write_text("".join(f"line {n}\n" for n in range(1, 11)), encoding="utf-8")
    return target


def test_clamp_view_range():
    assert clamp_view_range(None, 10) == (1, 10)
    assert clamp_view_range([3, 100], 10) == (3, 10)
    assert clamp_view_range([0, -1], 10) == (1, 10)
    assert clamp_view_range([2, 4], 10) == (2, 4)


@pytest.mark.asyncio
async def test_view_range_past_end_is_clamped(tmp_path):
    target = _ten_line_file(tmp_path)
    executor = ToolExecutor(ToolRegistry([TextEditorTool()]))

    result = await executor.execute(
        ToolUse(
            id="call_1",
            name="text_editor",
            parameters={"command": "view", "path": str(target), "view_range": [3, 100]},
        )
    )

    assert result.is_error is False
    lines = result.output.splitlines()
    assert len(lines) == 8
    assert lines[0] == "     3\tline 3"
    assert lines[-1] == "    10\tline 10"


@pytest.mark.asyncio
async def test_view_whole_file_and_missing_file(tmp_path):
    target = _ten_line_file(tmp_path)
    tool = TextEditorTool()

    whole = await tool.execute(command="view", path=str(target))
    missing = await tool.execute(command="view", path=str(tmp_path / "nope.txt"))

    assert len(whole.content.splitlines()) == 10
    assert missing.success is False
    assert "File not found" in missing.error


@pytest.mark.asyncio
async def test_view_directory_lists_two_levels_without_hidden(tmp_path):
    (tmp_path / "pkg" / "sub" / "deep").mkdir(parents=True)
    (tmp_path / "pkg" / "mod.py").write_text("", encoding="utf-8")
    (tmp_path / ".git" / "objects").mkdir(parents=True)
    (tmp_path / "pkg" / ".cache").mkdir()

    result = await TextEditorTool().execute(command="view", path=str(tmp_path))

    assert result.success is True
    assert "pkg" in result.content
    assert "pkg/mod.py" in result.content
    assert "pkg/sub" in result.content
    assert "pkg/sub/deep" not in result.content
    assert ".git" not in result.content
    assert "objects" not in result.content
    assert ".cache" not in result.content
    assert result.content.splitlines()[1:] == ["pkg", "pkg/mod.py", "pkg/sub"]


@pytest.mark.asyncio
async def test_create_then_undo_removes_file(tmp_path):
    target = tmp_path / "new" / "file.txt"
    tool = TextEditorTool()

    created = await tool.execute(command="create", path=str(target), file_text="hello\n")
    assert created.success is True
    assert target.read_text(encoding="utf-8") == "hello\n"

    undone = await tool.execute(command="undo_edit", path=str(target))
    assert undone.success is True
    assert not target.exists()


@pytest.mark.asyncio
async def test_str_replace_requires_unique_match(tmp_path):
    target = tmp_path / "code.py"
    target.write_text("a = 1\nb = 1\n", encoding="utf-8")
    tool = TextEditorTool()

    ambiguous = await tool.execute(command="str_replace", path=str(target), old_str="= 1", new_str="= 2")
    absent = await tool.execute(command="str_replace", path=str(target), old_str="c =", new_str="d =")
    replaced = await tool.execute(command="str_replace", path=str(target), old_str="b = 1", new_str="b = 2")

    assert ambiguous.success is False
    assert "must be unique" in ambiguous.error
    assert absent.success is False
    assert replaced.success is True
    assert target.read_text(encoding="utf-8") == "a = 1\nb = 2\n"

    await tool.execute(command="undo_edit", path=str(target))
    assert target.read_text(encoding="utf-8") == "a = 1\nb = 1\n"


@pytest.mark.asyncio
async def test_insert_after_line(tmp_path):
    target = tmp_path / "list.txt"
    target.write_text("one\nthree\n", encoding="utf-8")
    tool = TextEditorTool()

    inserted = await tool.execute(command="insert", path=str(target), insert_line=1, new_str="two")
    at_top = await tool.execute(command="insert", path=str(target), insert_line=0, new_str="zero")
    out_of_range = await tool.execute(command="insert", path=str(target), insert_line=9, new_str="x")

    assert inserted.success is True
    assert at_top.success is True
    assert target.read_text(encoding="utf-8") == "zero\none\ntwo\nthree\n"
    assert out_of_range.success is False


@pytest.mark.asyncio
async def test_undo_without_history_is_an_error(tmp_path):
    result = await TextEditorTool().execute(command="undo_edit", path=str(tmp_path / "x.txt"))

    assert result.success is False
    assert "No edit history" in result.error


@pytest.mark.asyncio
async def test_empty_file_view(tmp_path):
    target = tmp_path / "empty.txt"
    target.write_text("", encoding="utf-8")

    result = await TextEditorTool().execute(command="view", path=str(target))

    assert result.content == "[empty file]"
