"""Append-only JSON-lines session logs."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from gander.config import get_config
from gander.exceptions import InvalidMessageError, PersistenceError
from gander.logging import get_logger
from gander.message import Message
from gander.stats import SessionStats

log = get_logger(__name__)

SESSION_FILE_SUFFIX = ".jsonl"
STATS_FILENAME = ".stats.jsonl"


@dataclass
class SessionFile:
    """A session log on disk."""

    name: str
    path: Path
    modified: float


class SessionLog:
    """One ``<name>.jsonl`` file per session, one message per line."""

    def __init__(self, directory: Path | str | None = None):
        """Initialize the session log.

        Args:
            directory: Optional directory override
        """
        if directory is None:
            self.directory = get_config().resolved_sessions_path()
        else:
            self.directory = Path(directory).expanduser()

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create session directory {self.directory}: {e}") from e

    def path(self, name: str) -> Path:
        return self.directory / f"{name}{SESSION_FILE_SUFFIX}"

    def exists(self, name: str) -> bool:
        """Whether a non-empty log exists for name."""
        target = self.path(name)
        return target.is_file() and target.stat().st_size > 0

    @staticmethod
    def _read_lines(path: Path) -> list[dict]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e
        entries = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise PersistenceError(f"{path}:{number}: invalid JSON: {e}") from e
        return entries

    def load(self, name: str) -> list[Message]:
        """Load every message of a session; a missing log is an empty session."""
        target = self.path(name)
        if not target.exists():
            return []
        messages = []
        for number, entry in enumerate(self._read_lines(target), start=1):
            try:
                messages.append(Message.from_dict(entry))
            except (InvalidMessageError, AttributeError, TypeError) as e:
                raise PersistenceError(f"{target}: entry {number} is not a message: {e}") from e
        log.debug("Session log loaded", session=name, count=len(messages))
        return messages

    def append(self, name: str, messages: Iterable[Message]) -> int:
        """Append messages to a session log.

        Returns:
            Number of messages written
        """
        self._ensure_directory()
        lines = [json.dumps(message.to_dict(), ensure_ascii=False) for message in messages]
        if not lines:
            return 0
        try:
            with open(self.path(name), "a", encoding="utf-8") as f:
                for line in lines:
                    f.write(line + "\n")
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path(name)}: {e}") from e
        return len(lines)

    def list_sessions(self) -> list[SessionFile]:
        """Session logs, most recently modified first."""
        if not self.directory.exists():
            return []
        try:
            files = [
                SessionFile(name=path.stem, path=path, modified=path.stat().st_mtime)
                for path in self.directory.glob(f"*{SESSION_FILE_SUFFIX}")
                if path.is_file() and path.name != STATS_FILENAME
            ]
        except OSError as e:
            raise PersistenceError(f"Cannot list {self.directory}: {e}") from e
        return sorted(files, key=lambda item: item.modified, reverse=True)

    def latest(self) -> str | None:
        sessions = self.list_sessions()
        return sessions[0].name if sessions else None

    def clear(self, keep: int = 3) -> list[str]:
        """Delete all but the ``keep`` most recent sessions.

        Returns:
            Names of the deleted sessions
        """
        removed = []
        for item in self.list_sessions()[max(0, keep):]:
            try:
                item.path.unlink()
            except OSError as e:
                raise PersistenceError(f"Cannot delete {item.path}: {e}") from e
            removed.append(item.name)
        if removed:
            log.info("Cleared sessions", removed=removed)
        return removed

    def record_stats(self, stats: SessionStats) -> None:
        self._ensure_directory()
        target = self.directory / STATS_FILENAME
        try:
            with open(target, "a", encoding="utf-8") as f:
                f.write(json.dumps(stats.to_dict()) + "\n")
        except OSError as e:
            raise PersistenceError(f"Cannot write {target}: {e}") from e

    def load_stats(self) -> list[SessionStats]:
        target = self.directory / STATS_FILENAME
        if not target.exists():
            return []
        try:
            return [SessionStats.from_dict(entry) for entry in self._read_lines(target)]
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(f"{target}: malformed stats entry: {e}") from e
