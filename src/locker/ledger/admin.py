# src/locker/ledger/admin.py
from __future__ import annotations

"""Owner-gated policy switches.

Each helper checks the single owner, mutates LockerState and records the
matching configuration event. The emergency unlock is a one-way latch.
"""

from locker.config import UINT96_MAX
from locker.errors import forbidden, policy
from locker.events import (
    EMERGENCY_UNLOCK_TRIGGERED,
    FEE_RECIPIENT_SET,
    MINIMUM_DEPOSIT_SET,
    OWNERSHIP_TRANSFERRED,
)
from locker.ledger.state import LockerState


def require_owner(state: LockerState, caller: str) -> None:
    if not caller or str(caller) != state.owner:
        raise forbidden("owner_required", caller=str(caller))


def trigger_emergency_unlock(state: LockerState, caller: str) -> None:
    require_owner(state, caller)
    if state.emergency_unlock_triggered:
        raise policy("emergency_unlock_already_triggered")
    state.emergency_unlock_triggered = True
    state.events.emit(EMERGENCY_UNLOCK_TRIGGERED)


def set_minimum_deposit(state: LockerState, caller: str, value: int) -> None:
    require_owner(state, caller)
    v = int(value)
    if v < 0 or v > UINT96_MAX:
        raise policy("minimum_deposit_out_of_range", value=v)
    state.minimum_deposit = v
    state.events.emit(MINIMUM_DEPOSIT_SET, minimum_deposit=v)


def set_fee_recipient(state: LockerState, caller: str, recipient: str) -> None:
    require_owner(state, caller)
    r = str(recipient or "").strip()
    state.fee_recipient = r or None
    state.events.emit(FEE_RECIPIENT_SET, fee_recipient=state.fee_recipient)


def transfer_ownership(state: LockerState, caller: str, new_owner: str) -> None:
    require_owner(state, caller)
    n = str(new_owner or "").strip()
    if not n:
        raise policy("new_owner_required")
    previous = state.owner
    state.owner = n
    state.events.emit(OWNERSHIP_TRANSFERRED, previous_owner=previous, new_owner=n)
