"""Per-session usage statistics."""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class SessionStats:
    """Counters for one session run."""

    session_id: str
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None
    message_count: int = 0
    token_count: int = 0
    accrued_cost: float = 0.0

    def add_message(self, count: int = 1) -> None:
        self.message_count += max(0, count)

    def add_tokens(self, tokens: int, cost_per_token: float = 0.0) -> None:
        """Add tokens and the flat-rate cost estimate for them."""
        tokens = max(0, int(tokens))
        self.token_count += tokens
        self.accrued_cost += tokens * max(0.0, cost_per_token)

    def complete(self) -> None:
        self.end_time = _utcnow()

    def duration(self) -> timedelta:
        end = self.end_time or _utcnow()
        return max(end - self.start_time, timedelta(0))

    def summary(self) -> str:
        return (
            f"Session {self.session_id} stats:\n"
            f"Duration: {self.duration().total_seconds():.1f}s\n"
            f"Messages: {self.message_count}\n"
            f"Tokens: {self.token_count}\n"
            f"Estimated cost: ${self.accrued_cost:.4f}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionStats":
        end_raw = data.get("end_time")
        return cls(
            session_id=str(data["session_id"]),
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(end_raw) if end_raw else None,
            message_count=int(data.get("message_count", 0)),
            token_count=int(data.get("token_count", 0)),
            accrued_cost=float(data.get("accrued_cost", 0.0)),
        )


class StatsTracker:
    """Aggregates stats across session runs."""

    def __init__(self, stats: list[SessionStats] | None = None):
        self._stats: list[SessionStats] = list(stats or [])

    def track(self, stats: SessionStats) -> None:
        self._stats.append(stats)

    def runs(self) -> list[SessionStats]:
        return list(self._stats)

    def get(self, session_id: str) -> list[SessionStats]:
        """All runs recorded for a session, oldest first."""
        return [item for item in self._stats if item.session_id == session_id]

    def total(self, session_id: str | None = None) -> SessionStats:
        """Sum of all runs, or of one session's runs."""
        runs = self.get(session_id) if session_id else self._stats
        total = SessionStats(session_id=session_id or "total")
        if runs:
            total.start_time = min(item.start_time for item in runs)
            total.end_time = max(item.end_time or item.start_time for item in runs)
        else:
            total.end_time = total.start_time
        for item in runs:
            total.message_count += item.message_count
            total.token_count += item.token_count
            total.accrued_cost += item.accrued_cost
        return total

    def __len__(self) -> int:
        return len(self._stats)
