# tests/test_events.py
from __future__ import annotations

import pytest

from locker.events import FEES_RECEIVED, LOCK_CREATED, EventLog


def test_event_sequence_numbers_start_at_one() -> None:
    log = EventLog()
    a = log.emit(LOCK_CREATED, lock_id=0, owner="alice", amount=1, dividend_shares=1, duration=1)
    b = log.emit(FEES_RECEIVED, amount=5)
    assert (a.seq, b.seq) == (1, 2)
    assert len(log) == 2
    assert [e.seq for e in log.since(1)] == [2]
    assert log.named(FEES_RECEIVED) == [b]


def test_unknown_event_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        EventLog().emit("lock_teleported")


def test_event_log_json_round_trip() -> None:
    log = EventLog()
    log.emit(FEES_RECEIVED, amount=5)
    again = EventLog.from_json(log.to_json())
    assert again.all() == log.all()
    assert len(EventLog.from_json(None)) == 0
