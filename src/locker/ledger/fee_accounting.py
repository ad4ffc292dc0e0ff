# src/locker/ledger/fee_accounting.py
from __future__ import annotations

"""Pending-fee side ledger.

Fees skimmed from early withdrawals accumulate in state.pending_fees (a
96-bit counter) and are flushed in full to the configured recipient.
"""

from locker.collaborators import CustodyModule
from locker.config import UINT96_MAX
from locker.events import FEES_RECEIVED, FEES_TRANSFERRED
from locker.ledger.state import LockerState
from locker.errors import insufficient, policy


def credit_fees(state: LockerState, fee: int) -> None:
    fee = int(fee)
    if fee <= 0:
        return
    new_total = int(state.pending_fees) + fee
    if new_total > UINT96_MAX:
        raise insufficient("pending_fees_overflow", pending_fees=int(state.pending_fees), fee=fee)
    state.pending_fees = new_total
    state.events.emit(FEES_RECEIVED, amount=fee)


def distribute_fees(state: LockerState, custody: CustodyModule, *, locker_address: str) -> int:
    """Flush the whole pending balance to the fee recipient. Open to any caller."""
    recipient = state.fee_recipient
    if not recipient:
        raise policy("fee_recipient_not_set")
    amount = int(state.pending_fees)
    if amount == 0:
        raise policy("no_pending_fees")

    state.pending_fees = 0
    custody.transfer(locker_address, recipient, amount)
    state.events.emit(FEES_TRANSFERRED, recipient=recipient, amount=amount)
    return amount
