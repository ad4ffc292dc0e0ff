# src/locker/ledger/locker.py
from __future__ import annotations

"""Time-locked deposit ledger.

Lock lifecycle:

  Active -> PartiallyReduced -> Destroyed

A lock id is its index in state.locks. Destroyed locks keep their slot as a
zeroed tombstone, so ids are never reused or shifted.

Every mutating entry point runs inside atomic(): the ledger state and any
Transactional collaborator are snapshotted first and restored if anything
raises, so a failed operation leaves no partial effects behind. Withdrawals
write the reduced lock balance before any collaborator is called, so a
re-entrant call from a collaborator sees the already-decremented lock.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

from locker import calculator
from locker.calculator import WithdrawalParameters
from locker.collaborators import CustodyModule, DelegatingCustody, DividendToken, Transactional
from locker.config import UINT32_MAX, UINT96_MAX, FeeCurve, LockerConfig, validate_fee_curve
from locker.errors import LockNotFoundError, UnsupportedError, forbidden, insufficient, policy
from locker.events import LOCK_CREATED, LOCK_DESTROYED, PARTIAL_WITHDRAWAL
from locker.ledger import admin, fee_accounting
from locker.ledger.state import LockerState, LockerView
from locker.ledger.types import Lock, WithdrawalResult
from locker.metrics import inc_counter, set_gauge
from locker.structured_logging import log_event

Clock = Callable[[], int]

_log = logging.getLogger("locker.ledger")


def system_clock() -> int:
    return int(time.time())


class TimeLocker:
    def __init__(
        self,
        *,
        curve: FeeCurve,
        custody: CustodyModule,
        dividend_token: DividendToken,
        state: LockerState,
        locker_address: str = "locker",
        clock: Optional[Clock] = None,
    ) -> None:
        validate_fee_curve(curve)
        self.curve = curve
        self.custody = custody
        self.dividend_token = dividend_token
        self.state = state
        self.locker_address = str(locker_address)
        self._clock: Clock = clock or system_clock
        self._depth = 0
        self._after_commit: List[Callable[[], None]] = []

    @classmethod
    def from_config(
        cls,
        cfg: LockerConfig,
        *,
        custody: CustodyModule,
        dividend_token: DividendToken,
        state: Optional[LockerState] = None,
        clock: Optional[Clock] = None,
    ) -> "TimeLocker":
        return cls(
            curve=cfg.fee_curve,
            custody=custody,
            dividend_token=dividend_token,
            state=state if state is not None else LockerState.genesis(cfg),
            locker_address=cfg.locker_address,
            clock=clock,
        )

    # ----------------------------
    # Internals
    # ----------------------------

    def now(self) -> int:
        return int(self._clock())

    def _transactional(self) -> List[Transactional]:
        out: List[Transactional] = []
        for c in (self.custody, self.dividend_token):
            if isinstance(c, Transactional) and all(c is not o for o in out):
                out.append(c)
        return out

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the body all-or-nothing; sections may nest.

        Metric updates queued with _on_commit() are published only when the
        outermost section exits cleanly, and dropped with the section that
        queued them otherwise.
        """
        saved_state = self.state.clone()
        saved = [(c, c.snapshot()) for c in self._transactional()]
        mark = len(self._after_commit)
        self._depth += 1
        try:
            yield
        except BaseException:
            self.state.restore_from(saved_state)
            for c, snap in saved:
                c.restore(snap)
            del self._after_commit[mark:]
            raise
        finally:
            self._depth -= 1

        if self._depth == 0:
            pending, self._after_commit = self._after_commit, []
            for publish in pending:
                publish()

    def _on_commit(self, fn: Callable[..., None], *args: Any) -> None:
        self._after_commit.append(functools.partial(fn, *args))

    def _lock_at(self, lock_id: int) -> Lock:
        i = int(lock_id)
        if i < 0 or i >= len(self.state.locks):
            raise LockNotFoundError(details={"lock_id": i, "lock_count": len(self.state.locks)})
        return self.state.locks[i]

    def _publish_gauges(self) -> None:
        set_gauge("lock_count", len(self.state.locks))
        set_gauge("pending_fees", int(self.state.pending_fees))

    # ----------------------------
    # Read-only queries
    # ----------------------------

    def lock_count(self) -> int:
        return len(self.state.locks)

    def get_lock(self, lock_id: int) -> Lock:
        lk = self._lock_at(lock_id)
        return Lock(lk.amount, lk.locked_at, lk.lock_duration, lk.owner)

    def get_dividends_multiplier(self, duration: int) -> int:
        return calculator.get_dividends_multiplier(self.curve, duration)

    def get_withdrawal_parameters(self, amount: int, locked_at: int, lock_duration: int) -> WithdrawalParameters:
        return calculator.get_withdrawal_parameters(
            self.curve,
            amount,
            locked_at,
            lock_duration,
            now=self.now(),
            emergency_unlock_triggered=self.state.emergency_unlock_triggered,
        )

    def view(self) -> LockerView:
        return LockerView.from_state(self.state)

    # ----------------------------
    # Lock lifecycle
    # ----------------------------

    def deposit(self, caller: str, amount: int, duration: int) -> int:
        """Lock `amount` for `duration` seconds and mint the bonus shares. Returns the lock id."""
        amount = int(amount)
        duration = int(duration)
        if amount <= 0:
            raise policy("amount_must_be_positive", amount=amount)
        if amount > UINT96_MAX:
            raise insufficient("amount_exceeds_uint96", amount=amount)
        if amount < int(self.state.minimum_deposit):
            raise policy("amount_below_minimum", amount=amount, minimum_deposit=int(self.state.minimum_deposit))
        if self.state.emergency_unlock_triggered:
            raise policy("emergency_unlock_triggered")

        multiplier = self.get_dividends_multiplier(duration)
        dividend_shares = calculator.mul_div(amount, multiplier, calculator.WAD)

        with self.atomic():
            self.custody.deposit_into(caller, amount)
            self.dividend_token.mint(caller, dividend_shares)

            lock_id = len(self.state.locks)
            self.state.locks.append(
                Lock(
                    amount=amount,
                    locked_at=self.now() & UINT32_MAX,
                    lock_duration=duration,
                    owner=str(caller),
                )
            )
            self.state.events.emit(
                LOCK_CREATED,
                lock_id=lock_id,
                owner=str(caller),
                amount=amount,
                dividend_shares=dividend_shares,
                duration=duration,
            )
            self._on_commit(inc_counter, "deposits")
            self._on_commit(self._publish_gauges)

        return lock_id

    def withdraw(self, caller: str, lock_id: int, amount: int) -> WithdrawalResult:
        """Withdraw `amount` from a lock, paying the early-withdrawal fee if still locked."""
        amount = int(amount)
        if amount < 0:
            raise policy("negative_amount", amount=amount)

        with self.atomic():
            lk = self._lock_at(lock_id)
            if lk.destroyed:
                raise insufficient("lock_destroyed", lock_id=int(lock_id))
            if str(caller) != lk.owner:
                raise forbidden("not_lock_owner", lock_id=int(lock_id), caller=str(caller))
            if amount > lk.amount:
                raise insufficient("amount_exceeds_lock", lock_id=int(lock_id), amount=amount, locked=lk.amount)

            if amount == 0:
                log_event(_log, "zero_withdrawal_ignored", lock_id=int(lock_id), caller=str(caller))
                return WithdrawalResult(int(lock_id), 0, 0, 0, 0, False)

            owner = lk.owner
            dividend_shares, fee = self.get_withdrawal_parameters(amount, lk.locked_at, lk.lock_duration)
            fee = min(int(fee), amount)

            remaining = lk.amount - amount
            if remaining == 0:
                lk.tombstone()
            else:
                lk.amount = remaining

            if fee > 0:
                fee_accounting.credit_fees(self.state, fee)

            self.dividend_token.burn(owner, dividend_shares)

            if fee > 0:
                self.custody.withdraw_from(owner, self.locker_address, amount)
                self.custody.transfer(self.locker_address, owner, amount - fee)
            else:
                self.custody.withdraw_from(owner, owner, amount)

            self.state.events.emit(
                LOCK_DESTROYED if remaining == 0 else PARTIAL_WITHDRAWAL,
                lock_id=int(lock_id),
                owner=owner,
                amount=amount,
                dividend_shares=dividend_shares,
                early_withdrawal_fee=fee,
            )
            self._on_commit(inc_counter, "withdrawals")
            if remaining == 0:
                self._on_commit(inc_counter, "locks_destroyed")
            self._on_commit(self._publish_gauges)

        return WithdrawalResult(
            lock_id=int(lock_id),
            amount=amount,
            owed=amount - fee,
            early_withdrawal_fee=fee,
            dividend_shares_burned=dividend_shares,
            destroyed=remaining == 0,
        )

    def destroy_lock(self, caller: str, lock_id: int) -> WithdrawalResult:
        lk = self._lock_at(lock_id)
        if lk.destroyed:
            raise insufficient("lock_destroyed", lock_id=int(lock_id))
        return self.withdraw(caller, lock_id, lk.amount)

    # ----------------------------
    # Fees
    # ----------------------------

    def distribute_fees(self) -> int:
        with self.atomic():
            amount = fee_accounting.distribute_fees(self.state, self.custody, locker_address=self.locker_address)
            self._on_commit(inc_counter, "fees_distributed", amount)
            self._on_commit(self._publish_gauges)
        return amount

    # ----------------------------
    # Administrative controls
    # ----------------------------

    def trigger_emergency_unlock(self, caller: str) -> None:
        with self.atomic():
            admin.trigger_emergency_unlock(self.state, caller)

    def set_minimum_deposit(self, caller: str, value: int) -> None:
        with self.atomic():
            admin.set_minimum_deposit(self.state, caller, value)

    def set_fee_recipient(self, caller: str, recipient: str) -> None:
        with self.atomic():
            admin.set_fee_recipient(self.state, caller, recipient)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self.atomic():
            admin.transfer_ownership(self.state, caller, new_owner)

    def delegate(self, caller: str, delegatee: str) -> None:
        """Forward voting delegation of the caller's custodial position."""
        if not isinstance(self.custody, DelegatingCustody):
            raise UnsupportedError(reason="delegation_not_supported")
        with self.atomic():
            self.custody.delegate_voting_power(str(caller), str(delegatee))

