# src/locker/events.py
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List

from locker.structured_logging import log_event

Json = Dict[str, Any]

_log = logging.getLogger("locker.events")

LOCK_CREATED = "lock_created"
LOCK_DESTROYED = "lock_destroyed"
PARTIAL_WITHDRAWAL = "partial_withdrawal"
FEES_RECEIVED = "fees_received"
FEES_TRANSFERRED = "fees_transferred"
EMERGENCY_UNLOCK_TRIGGERED = "emergency_unlock_triggered"
MINIMUM_DEPOSIT_SET = "minimum_deposit_set"
FEE_RECIPIENT_SET = "fee_recipient_set"
OWNERSHIP_TRANSFERRED = "ownership_transferred"

EVENT_NAMES = frozenset(
    {
        LOCK_CREATED,
        LOCK_DESTROYED,
        PARTIAL_WITHDRAWAL,
        FEES_RECEIVED,
        FEES_TRANSFERRED,
        EMERGENCY_UNLOCK_TRIGGERED,
        MINIMUM_DEPOSIT_SET,
        FEE_RECIPIENT_SET,
        OWNERSHIP_TRANSFERRED,
    }
)


@dataclass(frozen=True, slots=True)
class Event:
    seq: int
    name: str
    fields: Json = field(default_factory=dict)

    def to_json(self) -> Json:
        return {"seq": int(self.seq), "name": self.name, "fields": dict(self.fields)}

    @classmethod
    def from_json(cls, obj: Json) -> "Event":
        return cls(seq=int(obj["seq"]), name=str(obj["name"]), fields=dict(obj.get("fields") or {}))


class EventLog:
    """Append-only event log. Sequence numbers start at 1 and never repeat."""

    def __init__(self, events: List[Event] | None = None) -> None:
        self._events: List[Event] = list(events or [])

    def __len__(self) -> int:
        return len(self._events)

    def emit(self, name: str, **fields: Any) -> Event:
        if name not in EVENT_NAMES:
            raise ValueError(f"unknown event: {name!r}")
        ev = Event(seq=len(self._events) + 1, name=name, fields=fields)
        self._events.append(ev)
        log_event(_log, name, seq=ev.seq, **fields)
        return ev

    def all(self) -> List[Event]:
        return list(self._events)

    def since(self, after: int = 0, *, limit: int = 100) -> List[Event]:
        start = max(0, int(after))
        return self._events[start : start + max(0, int(limit))]

    def named(self, name: str) -> List[Event]:
        return [e for e in self._events if e.name == name]

    def truncate(self, length: int) -> None:
        del self._events[int(length) :]

    def to_json(self) -> List[Json]:
        return [e.to_json() for e in self._events]

    @classmethod
    def from_json(cls, items: Any) -> "EventLog":
        if not isinstance(items, list):
            return cls()
        return cls([Event.from_json(x) for x in items if isinstance(x, dict)])
