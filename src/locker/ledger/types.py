# src/locker/ledger/types.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

Json = Dict[str, Any]

# Owner of a destroyed lock slot.
ZERO_ACCOUNT = ""


@dataclass(slots=True)
class Lock:
    """One deposit commitment.

    `amount` only ever decreases. A lock whose amount reaches 0 is tombstoned:
    every field is zeroed but the slot (and so the lock id) stays in place.
    """

    amount: int
    locked_at: int
    lock_duration: int
    owner: str

    @property
    def destroyed(self) -> bool:
        return int(self.amount) == 0

    @property
    def unlock_at(self) -> int:
        return int(self.locked_at) + int(self.lock_duration)

    def tombstone(self) -> None:
        self.amount = 0
        self.locked_at = 0
        self.lock_duration = 0
        self.owner = ZERO_ACCOUNT

    def to_json(self) -> Json:
        return {
            "amount": int(self.amount),
            "locked_at": int(self.locked_at),
            "lock_duration": int(self.lock_duration),
            "owner": str(self.owner),
        }

    @classmethod
    def from_json(cls, obj: Json) -> "Lock":
        return cls(
            amount=int(obj.get("amount", 0) or 0),
            locked_at=int(obj.get("locked_at", 0) or 0),
            lock_duration=int(obj.get("lock_duration", 0) or 0),
            owner=str(obj.get("owner") or ZERO_ACCOUNT),
        )


@dataclass(frozen=True, slots=True)
class WithdrawalResult:
    lock_id: int
    amount: int
    owed: int
    early_withdrawal_fee: int
    dividend_shares_burned: int
    destroyed: bool

    def to_json(self) -> Json:
        return {
            "lock_id": int(self.lock_id),
            "amount": int(self.amount),
            "owed": int(self.owed),
            "early_withdrawal_fee": int(self.early_withdrawal_fee),
            "dividend_shares_burned": int(self.dividend_shares_burned),
            "destroyed": bool(self.destroyed),
        }
