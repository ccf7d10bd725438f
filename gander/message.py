"""Conversation messages and their typed content."""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterable

from gander.exceptions import InvalidMessageError


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Text:
    """Plain text content."""

    text: str


@dataclass(frozen=True)
class ToolUse:
    """A tool call requested by the model."""

    id: str
    name: str
    parameters: Any = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """The outcome of a tool call, sent back to the model."""

    tool_use_id: str
    output: str
    is_error: bool = False


Content = Text | ToolUse | ToolResult

_ALLOWED_CONTENT: dict[Role, tuple[type, ...]] = {
    Role.USER: (Text, ToolResult),
    Role.ASSISTANT: (Text, ToolUse),
}


def content_to_dict(item: Content) -> dict[str, Any]:
    """Serialize one content item to a JSON-safe dict."""
    if isinstance(item, Text):
        return {"type": "text", "text": item.text}
    if isinstance(item, ToolUse):
        return {
            "type": "tool_use",
            "id": item.id,
            "name": item.name,
            "parameters": copy.deepcopy(item.parameters),
        }
    if isinstance(item, ToolResult):
        return {
            "type": "tool_result",
            "tool_use_id": item.tool_use_id,
            "output": item.output,
            "is_error": item.is_error,
        }
    raise InvalidMessageError("content_kind", f"Unsupported content item: {item!r}")


def content_from_dict(data: dict[str, Any]) -> Content:
    """Parse one content item from its dict form."""
    kind = str(data.get("type", ""))
    try:
        if kind == "text":
            return Text(text=str(data["text"]))
        if kind == "tool_use":
            return ToolUse(
                id=str(data["id"]),
                name=str(data["name"]),
                parameters=data.get("parameters", {}),
            )
        if kind == "tool_result":
            return ToolResult(
                tool_use_id=str(data["tool_use_id"]),
                output=str(data.get("output", "")),
                is_error=bool(data.get("is_error", False)),
            )
    except KeyError as e:
        raise InvalidMessageError("content_kind", f"Content '{kind}' is missing field {e}") from e
    raise InvalidMessageError("content_kind", f"Unknown content kind: {kind!r}")


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""

    role: Role
    content: tuple[Content, ...]
    id: str = field(default_factory=lambda: f"msg_{uuid.uuid4().hex}")
    created_at: str = field(default_factory=_utcnow_iso)

    @classmethod
    def construct(cls, role: Role | str, content: Iterable[Content]) -> "Message":
        """Build a message with a fresh id and timestamp."""
        return cls(role=Role(role), content=tuple(content))

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls.construct(Role.USER, [Text(text=text)])

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls.construct(Role.ASSISTANT, [Text(text=text)])

    @property
    def is_user(self) -> bool:
        return self.role == Role.USER

    @property
    def is_assistant(self) -> bool:
        return self.role == Role.ASSISTANT

    def validate(self) -> None:
        """Check the role/content rules.

        Raises:
            InvalidMessageError naming the violated rule
        """
        allowed = _ALLOWED_CONTENT[self.role]
        label = self.role.value.capitalize()
        for item in self.content:
            if not isinstance(item, (Text, ToolUse, ToolResult)):
                raise InvalidMessageError(
                    "content_kind",
                    f"{label} message contains unsupported content {item!r}",
                )
            if not isinstance(item, allowed):
                raise InvalidMessageError(
                    f"{self.role.value}_content",
                    f"{label} message does not support {type(item).__name__}",
                )
        if not self.content:
            names = " or ".join(kind.__name__ for kind in allowed)
            raise InvalidMessageError(
                "non_empty",
                f"{label} message must include a {names}",
            )

    def text(self) -> str:
        """Join all text segments with newlines."""
        return "\n".join(item.text for item in self.content if isinstance(item, Text))

    def tool_uses(self) -> list[ToolUse]:
        return [item for item in self.content if isinstance(item, ToolUse)]

    def tool_results(self) -> list[ToolResult]:
        return [item for item in self.content if isinstance(item, ToolResult)]

    def has_tool_use(self) -> bool:
        return any(isinstance(item, ToolUse) for item in self.content)

    def has_tool_result(self) -> bool:
        return any(isinstance(item, ToolResult) for item in self.content)

    def summary(self) -> str:
        return f"message:{self.role.value}\n{self.text()}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "role": self.role.value,
            "created_at": self.created_at,
            "content": [content_to_dict(item) for item in self.content],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        """Create from dictionary."""
        try:
            role = Role(data["role"])
        except (KeyError, ValueError) as e:
            raise InvalidMessageError("role", f"Invalid message role: {data.get('role')!r}") from e
        raw_content = data.get("content") or []
        if not isinstance(raw_content, list):
            raise InvalidMessageError("content_kind", "Message content must be a list")
        return cls(
            role=role,
            content=tuple(content_from_dict(item) for item in raw_content),
            id=str(data.get("id") or f"msg_{uuid.uuid4().hex}"),
            created_at=str(data.get("created_at") or _utcnow_iso()),
        )
