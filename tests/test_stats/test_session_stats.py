from datetime import UTC, datetime, timedelta

import pytest

from gander.names import generate_name
from gander.stats import SessionStats, StatsTracker


def test_counters_accumulate():
    stats = SessionStats(session_id="a1b2")

    stats.add_message()
    stats.add_message(2)
    stats.add_tokens(100, cost_per_token=0.001)
    stats.add_tokens(50, cost_per_token=0.001)

    assert stats.message_count == 3
    assert stats.token_count == 150
    assert stats.accrued_cost == pytest.approx(0.15)


def test_duration_uses_end_time_once_complete():
    start = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    stats = SessionStats(session_id="a1b2", start_time=start, end_time=start + timedelta(seconds=90))

    assert stats.duration() == timedelta(seconds=90)
    assert "Duration: 90.0s" in stats.summary()


def test_complete_stamps_end_time():
    stats = SessionStats(session_id="a1b2")
    assert stats.end_time is None

    stats.complete()

    assert stats.end_time is not None
    assert stats.end_time >= stats.start_time


def test_to_dict_round_trip():
    stats = SessionStats(session_id="c3d4", message_count=4, token_count=12, accrued_cost=0.5)
    stats.complete()

    assert SessionStats.from_dict(stats.to_dict()) == stats


def test_tracker_totals_per_session_and_overall():
    start = datetime(2026, 1, 1, tzinfo=UTC)
    tracker = StatsTracker([
        SessionStats(session_id="a1b2", start_time=start, message_count=2, token_count=10),
        SessionStats(session_id="c3d4", start_time=start, message_count=5, token_count=30),
        SessionStats(session_id="a1b2", start_time=start, message_count=1, token_count=4),
    ])

    assert len(tracker) == 3
    assert len(tracker.get("a1b2")) == 2
    assert tracker.total("a1b2").message_count == 3
    assert tracker.total("a1b2").token_count == 14
    assert tracker.total().token_count == 44
    assert tracker.total("missing").message_count == 0


def test_tracked_runs_keep_their_order():
    tracker = StatsTracker()
    first = SessionStats(session_id="a1b2", message_count=2)
    second = SessionStats(session_id="c3d4", message_count=3)

    tracker.track(first)
    tracker.track(second)

    assert [run.session_id for run in tracker.runs()] == ["a1b2", "c3d4"]
    assert tracker.total().message_count == 5


def test_generated_names_alternate_letters_and_digits():
    name = generate_name()

    assert len(name) == 4
    assert name[0].isalpha() and name[2].isalpha()
    assert name[1].isdigit() and name[3].isdigit()
