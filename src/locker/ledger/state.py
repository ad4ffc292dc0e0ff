# src/locker/ledger/state.py
from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from locker.config import LockerConfig
from locker.events import EventLog
from locker.ledger.types import Lock

Json = Dict[str, Any]


@dataclass
class LockerState:
    """Mutable ledger state: the lock sequence, the mutable policy and the event log.

    Only TimeLocker and the admin/fee-accounting helpers it calls mutate this.
    """

    owner: str
    minimum_deposit: int = 0
    fee_recipient: Optional[str] = None
    pending_fees: int = 0
    emergency_unlock_triggered: bool = False
    locks: List[Lock] = field(default_factory=list)
    events: EventLog = field(default_factory=EventLog)

    @classmethod
    def genesis(cls, cfg: LockerConfig) -> "LockerState":
        return cls(
            owner=str(cfg.owner),
            minimum_deposit=int(cfg.minimum_deposit),
            fee_recipient=cfg.fee_recipient,
        )

    def to_json(self) -> Json:
        return {
            "owner": self.owner,
            "minimum_deposit": int(self.minimum_deposit),
            "fee_recipient": self.fee_recipient,
            "pending_fees": int(self.pending_fees),
            "emergency_unlock_triggered": bool(self.emergency_unlock_triggered),
            "locks": [lk.to_json() for lk in self.locks],
            "events": self.events.to_json(),
        }

    @classmethod
    def from_json(cls, obj: Json) -> "LockerState":
        if not isinstance(obj, dict):
            raise TypeError(f"locker state must be dict, got {type(obj)}")
        locks = obj.get("locks")
        return cls(
            owner=str(obj.get("owner") or ""),
            minimum_deposit=int(obj.get("minimum_deposit", 0) or 0),
            fee_recipient=(str(obj["fee_recipient"]) if obj.get("fee_recipient") else None),
            pending_fees=int(obj.get("pending_fees", 0) or 0),
            emergency_unlock_triggered=bool(obj.get("emergency_unlock_triggered", False)),
            locks=[Lock.from_json(x) for x in locks] if isinstance(locks, list) else [],
            events=EventLog.from_json(obj.get("events")),
        )

    def clone(self) -> "LockerState":
        return copy.deepcopy(self)

    def restore_from(self, saved: "LockerState") -> None:
        """Overwrite this state in place with `saved`. Callers keep their reference."""
        for f in fields(self):
            setattr(self, f.name, getattr(saved, f.name))


@dataclass(frozen=True, slots=True)
class LockerView:
    """
    Immutable read-only view used by the API and executor queries.
    """

    owner: str
    minimum_deposit: int
    fee_recipient: Optional[str]
    pending_fees: int
    emergency_unlock_triggered: bool
    locks: tuple = ()

    @classmethod
    def from_state(cls, state: LockerState) -> "LockerView":
        return cls(
            owner=state.owner,
            minimum_deposit=int(state.minimum_deposit),
            fee_recipient=state.fee_recipient,
            pending_fees=int(state.pending_fees),
            emergency_unlock_triggered=bool(state.emergency_unlock_triggered),
            locks=tuple(Lock(lk.amount, lk.locked_at, lk.lock_duration, lk.owner) for lk in state.locks),
        )

    @property
    def lock_count(self) -> int:
        return len(self.locks)

    def get_lock(self, lock_id: int) -> Optional[Lock]:
        i = int(lock_id)
        if i < 0 or i >= len(self.locks):
            return None
        return self.locks[i]

    def policy_json(self) -> Json:
        return {
            "owner": self.owner,
            "minimum_deposit": int(self.minimum_deposit),
            "fee_recipient": self.fee_recipient,
            "pending_fees": int(self.pending_fees),
            "emergency_unlock_triggered": bool(self.emergency_unlock_triggered),
            "lock_count": self.lock_count,
        }
