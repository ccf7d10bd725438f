import os

import pytest

from gander.exceptions import PersistenceError
from gander.message import Message, Role, ToolResult, ToolUse
from gander.session_log import SessionLog
from gander.stats import SessionStats


def _touch(session_log: SessionLog, name: str, mtime: int) -> None:
    session_log.append(name, [Message.user(name)])
    os.utime(session_log.path(name), (mtime, mtime))


def test_missing_log_loads_as_empty(tmp_path):
    session_log = SessionLog(tmp_path)

    assert session_log.load("nope") == []
    assert session_log.exists("nope") is False


def test_append_and_load_round_trip_preserves_tool_content(tmp_path):
    session_log = SessionLog(tmp_path / "logs")
    messages = [
        Message.user("list"),
        Message.construct(Role.ASSISTANT, [ToolUse(id="call_1", name="bash", parameters={"command": "ls"})]),
        Message.construct(Role.USER, [ToolResult(tool_use_id="call_1", output="a.txt")]),
    ]

    written = session_log.append("k7l8", messages)

    assert written == 3
    assert session_log.exists("k7l8") is True
    assert session_log.load("k7l8") == messages


def test_blank_lines_are_skipped(tmp_path):
    session_log = SessionLog(tmp_path)
    session_log.append("m9n0", [Message.user("one")])
    with open(session_log.path("m9n0"), "a", encoding="utf-8") as f:
        f.write("\n\n")

    assert len(session_log.load("m9n0")) == 1


def test_invalid_entries_raise_persistence_error(tmp_path):
    session_log = SessionLog(tmp_path)
    session_log.path("bad1").write_text("{\"role\": \"robot\", \"content\": []}\n", encoding="utf-8")
    session_log.path("bad2").write_text("not json\n", encoding="utf-8")

    with pytest.raises(PersistenceError):
        session_log.load("bad1")
    with pytest.raises(PersistenceError):
        session_log.load("bad2")


def test_list_sessions_newest_first_and_latest(tmp_path):
    session_log = SessionLog(tmp_path)
    _touch(session_log, "old1", 1_000)
    _touch(session_log, "new2", 3_000)
    _touch(session_log, "mid3", 2_000)
    session_log.record_stats(SessionStats(session_id="new2"))

    names = [item.name for item in session_log.list_sessions()]

    assert names == ["new2", "mid3", "old1"]
    assert session_log.latest() == "new2"


def test_clear_keeps_most_recent(tmp_path):
    session_log = SessionLog(tmp_path)
    for index, name in enumerate(["a1a1", "b2b2", "c3c3", "d4d4", "e5e5"]):
        _touch(session_log, name, 1_000 + index)

    removed = session_log.clear(keep=3)

    assert sorted(removed) == ["a1a1", "b2b2"]
    assert [item.name for item in session_log.list_sessions()] == ["e5e5", "d4d4", "c3c3"]


def test_stats_records_round_trip(tmp_path):
    session_log = SessionLog(tmp_path)
    stats = SessionStats(session_id="f6f6", message_count=3, token_count=40, accrued_cost=0.004)
    stats.complete()

    session_log.record_stats(stats)
    session_log.record_stats(SessionStats(session_id="g7g7"))

    loaded = session_log.load_stats()
    assert [item.session_id for item in loaded] == ["f6f6", "g7g7"]
    assert loaded[0].token_count == 40
    assert loaded[0].end_time == stats.end_time
