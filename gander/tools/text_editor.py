"""Text editor tool for viewing and changing files."""

from pathlib import Path
from typing import Any

from gander.config import Config, get_config
from gander.exceptions import ToolError
from gander.logging import get_logger
from gander.tools.registry import Tool, ToolOutput, require_for_command

log = get_logger(__name__)

_COMMAND_RULES: dict[str, list[str]] = {
    "view": [],
    "create": ["file_text"],
    "str_replace": ["old_str"],
    "insert": ["insert_line", "new_str"],
    "undo_edit": [],
}


def clamp_view_range(view_range: list[int] | None, line_count: int) -> tuple[int, int]:
    """Resolve a 1-based inclusive [start, end] range against a file.

    ``start`` is clamped to at least 1 and ``end`` to the line count; an end
    of -1 means through the last line.
    """
    if not view_range:
        return 1, line_count
    start, end = int(view_range[0]), int(view_range[1])
    start = max(1, start)
    if end == -1 or end > line_count:
        end = line_count
    return start, end


def number_lines(lines: list[str], start: int) -> str:
    return "\n".join(f"{index:6}\t{line}" for index, line in enumerate(lines, start=start))


class TextEditorTool(Tool):
    """View, create and edit files."""

    name = "text_editor"
    description = (
        "Perform text editing operations on files. "
        "The `command` parameter specifies the operation to perform."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": (
                    "The commands to run.\n"
                    "Allowed options are: `view`, `create`, `str_replace`, `insert`, `undo_edit`."
                ),
                "enum": list(_COMMAND_RULES),
            },
            "path": {
                "type": "string",
                "description": "Absolute path (or relative path against cwd) to file or directory.",
            },
            "file_text": {
                "type": "string",
                "description": "Required parameter of `create` command, with the content of the file to be created.",
            },
            "old_str": {
                "type": "string",
                "description": "Required parameter of `str_replace` command containing the string in `path` to replace.",
            },
            "new_str": {
                "type": "string",
                "description": (
                    "Optional parameter of `str_replace` command containing the new string. "
                    "Required parameter of `insert` command containing the string to insert."
                ),
            },
            "insert_line": {
                "type": "integer",
                "description": "Required parameter of `insert` command. The `new_str` will be inserted AFTER the line `insert_line` of `path`.",
            },
            "view_range": {
                "type": "array",
                "items": {"type": "integer"},
                "description": (
                    "Optional parameter of `view` command when `path` points to a file. "
                    "If none is given, the full file is shown."
                ),
            },
        },
        "required": ["command", "path"],
    }

    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self.max_view_chars = int(self.config.tools.text_editor.max_view_chars or 100000)
        self._history: dict[Path, list[str | None]] = {}

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        require_for_command(self, arguments, _COMMAND_RULES)
        view_range = arguments.get("view_range")
        if view_range is not None:
            if (
                not isinstance(view_range, list)
                or len(view_range) != 2
                or not all(isinstance(item, int) for item in view_range)
            ):
                raise ToolError("Tool 'text_editor' view_range must be a list of two integers")

    async def execute(self, command: str, path: str, **kwargs: Any) -> ToolOutput:
        """Dispatch to the sub-command handler."""
        file_path = Path(path).expanduser().resolve()
        handler = getattr(self, f"_{command}")
        try:
            return handler(file_path, **kwargs)
        except (OSError, UnicodeDecodeError) as e:
            log.error("Text editor failed", command=command, path=str(file_path), error=str(e))
            return ToolOutput(success=False, error=f"{command} failed for {path}: {e}")

    def _remember(self, file_path: Path) -> None:
        previous = file_path.read_text(encoding="utf-8") if file_path.is_file() else None
        self._history.setdefault(file_path, []).append(previous)

    def _view(self, file_path: Path, view_range: list[int] | None = None, **kwargs: Any) -> ToolOutput:
        if file_path.is_dir():
            if view_range:
                return ToolOutput(success=False, error="view_range is not allowed when path is a directory")
            entries: list[str] = []
            for item in sorted(file_path.iterdir()):
                if item.name.startswith("."):
                    continue
                entries.append(item.name)
                if item.is_dir():
                    entries.extend(
                        f"{item.name}/{child.name}"
                        for child in sorted(item.iterdir())
                        if not child.name.startswith(".")
                    )
            listing = "\n".join(entries) or "[empty directory]"
            return ToolOutput(success=True, content=f"Entries in {file_path}:\n{listing}")
        if not file_path.exists():
            return ToolOutput(success=False, error=f"File not found: {file_path}")

        lines = file_path.read_text(encoding="utf-8").splitlines()
        if not lines:
            return ToolOutput(success=True, content="[empty file]")
        start, end = clamp_view_range(view_range, len(lines))
        if start > len(lines):
            return ToolOutput(
                success=False,
                error=f"view_range start {start} is past the end of the file ({len(lines)} lines)",
            )
        if end < start:
            return ToolOutput(success=False, error=f"Invalid view_range [{start}, {end}]")

        content = number_lines(lines[start - 1:end], start)
        if len(content) > self.max_view_chars:
            content = content[: self.max_view_chars] + "\n... [truncated]"
        return ToolOutput(success=True, content=content)

    def _create(self, file_path: Path, file_text: str, **kwargs: Any) -> ToolOutput:
        self._remember(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(file_text, encoding="utf-8")
        return ToolOutput(success=True, content=f"Created {file_path} ({len(file_text)} chars)")

    def _str_replace(
        self,
        file_path: Path,
        old_str: str,
        new_str: str | None = None,
        **kwargs: Any,
    ) -> ToolOutput:
        if not file_path.is_file():
            return ToolOutput(success=False, error=f"File not found: {file_path}")
        text = file_path.read_text(encoding="utf-8")
        occurrences = text.count(old_str)
        if occurrences == 0:
            return ToolOutput(success=False, error=f"old_str not found in {file_path}")
        if occurrences > 1:
            return ToolOutput(
                success=False,
                error=f"old_str occurs {occurrences} times in {file_path}; it must be unique",
            )
        self._remember(file_path)
        file_path.write_text(text.replace(old_str, new_str or "", 1), encoding="utf-8")
        return ToolOutput(success=True, content=f"Replaced text in {file_path}")

    def _insert(self, file_path: Path, insert_line: int, new_str: str, **kwargs: Any) -> ToolOutput:
        if not file_path.is_file():
            return ToolOutput(success=False, error=f"File not found: {file_path}")
        text = file_path.read_text(encoding="utf-8")
        lines = text.splitlines()
        if not 0 <= int(insert_line) <= len(lines):
            return ToolOutput(
                success=False,
                error=f"insert_line {insert_line} is outside [0, {len(lines)}]",
            )
        self._remember(file_path)
        index = int(insert_line)
        updated = lines[:index] + new_str.splitlines() + lines[index:]
        trailing = "\n" if text.endswith("\n") or not text else ""
        file_path.write_text("\n".join(updated) + trailing, encoding="utf-8")
        return ToolOutput(success=True, content=f"Inserted text after line {index} of {file_path}")

    def _undo_edit(self, file_path: Path, **kwargs: Any) -> ToolOutput:
        stack = self._history.get(file_path)
        if not stack:
            return ToolOutput(success=False, error=f"No edit history for {file_path}")
        previous = stack.pop()
        if previous is None:
            file_path.unlink(missing_ok=True)
            return ToolOutput(success=True, content=f"Undid creation of {file_path}")
        file_path.write_text(previous, encoding="utf-8")
        return ToolOutput(success=True, content=f"Restored previous content of {file_path}")
