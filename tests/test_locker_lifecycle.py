# tests/test_locker_lifecycle.py
from __future__ import annotations

from dataclasses import replace
from typing import Tuple

import pytest

from locker import metrics
from locker.config import DAY_SECONDS, UINT32_MAX, default_locker_config
from locker.custody_memory import InMemoryCustody, InMemoryDividendToken
from locker.errors import (
    ForbiddenError,
    InsufficientBalanceError,
    LockNotFoundError,
    PolicyError,
    UnsupportedError,
)
from locker.events import (
    EMERGENCY_UNLOCK_TRIGGERED,
    FEE_RECIPIENT_SET,
    LOCK_CREATED,
    MINIMUM_DEPOSIT_SET,
    OWNERSHIP_TRANSFERRED,
)
from locker.ledger.locker import TimeLocker

T0 = 1_700_000_000
YEAR = 365 * DAY_SECONDS


class _Clock:
    def __init__(self, t: int = T0) -> None:
        self.t = int(t)

    def __call__(self) -> int:
        return self.t


def _setup(**cfg_changes) -> Tuple[TimeLocker, InMemoryCustody, InMemoryDividendToken, _Clock]:
    cfg = replace(default_locker_config(), mode="dev", **cfg_changes)
    custody = InMemoryCustody(balances={"alice": 10_000, "bob": 10_000})
    token = InMemoryDividendToken()
    clock = _Clock()
    locker = TimeLocker.from_config(cfg, custody=custody, dividend_token=token, clock=clock)
    return locker, custody, token, clock


def test_deposit_creates_lock_and_mints_bonus() -> None:
    locker, custody, token, _ = _setup()

    lock_id = locker.deposit("alice", 1000, YEAR)

    assert lock_id == 0
    assert locker.lock_count() == 1
    lk = locker.get_lock(0)
    assert (lk.amount, lk.locked_at, lk.lock_duration, lk.owner) == (1000, T0, YEAR, "alice")

    assert token.balance_of("alice") == 1500
    assert custody.position_of("alice") == 1000
    assert custody.balance_of("alice") == 9000

    ev = locker.state.events.named(LOCK_CREATED)
    assert len(ev) == 1
    assert ev[0].fields == {
        "lock_id": 0,
        "owner": "alice",
        "amount": 1000,
        "dividend_shares": 1500,
        "duration": YEAR,
    }


def test_minimum_duration_lock_has_no_bonus() -> None:
    locker, _, token, _ = _setup()
    locker.deposit("alice", 1000, 30 * DAY_SECONDS)
    assert token.balance_of("alice") == 1000


def test_lock_ids_are_sequential_per_ledger() -> None:
    locker, _, _, _ = _setup()
    assert locker.deposit("alice", 100, YEAR) == 0
    assert locker.deposit("bob", 100, YEAR) == 1
    assert locker.deposit("alice", 100, YEAR) == 2
    assert locker.lock_count() == 3


@pytest.mark.parametrize("duration", [30 * DAY_SECONDS - 1, YEAR + 1, 0])
def test_deposit_rejects_out_of_bounds_duration(duration: int) -> None:
    locker, custody, token, _ = _setup()
    with pytest.raises(PolicyError) as e:
        locker.deposit("alice", 1000, duration)
    assert e.value.reason == "duration_out_of_bounds"
    assert locker.lock_count() == 0
    assert custody.balance_of("alice") == 10_000
    assert token.total_supply == 0


def test_deposit_rejects_non_positive_amount() -> None:
    locker, _, _, _ = _setup()
    with pytest.raises(PolicyError) as e:
        locker.deposit("alice", 0, YEAR)
    assert e.value.reason == "amount_must_be_positive"


def test_minimum_deposit_is_enforced() -> None:
    locker, _, _, _ = _setup()
    locker.set_minimum_deposit("owner", 500)
    assert locker.state.minimum_deposit == 500
    assert locker.state.events.named(MINIMUM_DEPOSIT_SET)[-1].fields == {"minimum_deposit": 500}

    with pytest.raises(PolicyError) as e:
        locker.deposit("alice", 499, YEAR)
    assert e.value.reason == "amount_below_minimum"

    assert locker.deposit("alice", 500, YEAR) == 0


def test_deposit_fails_when_custody_refuses() -> None:
    locker, custody, token, _ = _setup()
    with pytest.raises(InsufficientBalanceError) as e:
        locker.deposit("carol", 1000, YEAR)
    assert e.value.reason == "asset_balance_too_low"
    assert locker.lock_count() == 0
    assert len(locker.state.events) == 0
    assert token.total_supply == 0
    assert custody.total_custody == 0


def test_locked_at_is_truncated_to_32_bits() -> None:
    locker, _, _, clock = _setup()
    clock.t = 2**32 + 5
    locker.deposit("alice", 1000, YEAR)
    assert locker.get_lock(0).locked_at == 5
    assert locker.get_lock(0).locked_at <= UINT32_MAX


def test_get_lock_returns_a_copy() -> None:
    locker, _, _, _ = _setup()
    locker.deposit("alice", 1000, YEAR)
    lk = locker.get_lock(0)
    lk.amount = 1
    assert locker.get_lock(0).amount == 1000


def test_get_lock_unknown_id() -> None:
    locker, _, _, _ = _setup()
    with pytest.raises(LockNotFoundError) as e:
        locker.get_lock(0)
    assert e.value.code == "not_found"
    with pytest.raises(LockNotFoundError):
        locker.get_lock(-1)


def test_admin_calls_require_owner() -> None:
    locker, _, _, _ = _setup()
    calls = [
        lambda: locker.trigger_emergency_unlock("alice"),
        lambda: locker.set_minimum_deposit("alice", 1),
        lambda: locker.set_fee_recipient("alice", "alice"),
        lambda: locker.transfer_ownership("alice", "alice"),
    ]
    for call in calls:
        with pytest.raises(ForbiddenError) as e:
            call()
        assert e.value.reason == "owner_required"

    assert len(locker.state.events) == 0
    assert locker.state.owner == "owner"


def test_minimum_deposit_range() -> None:
    locker, _, _, _ = _setup()
    with pytest.raises(PolicyError) as e:
        locker.set_minimum_deposit("owner", 2**96)
    assert e.value.reason == "minimum_deposit_out_of_range"


def test_set_fee_recipient_records_event() -> None:
    locker, _, _, _ = _setup()
    locker.set_fee_recipient("owner", "treasury")
    assert locker.state.fee_recipient == "treasury"
    assert locker.state.events.named(FEE_RECIPIENT_SET)[-1].fields == {"fee_recipient": "treasury"}


def test_emergency_unlock_is_one_way() -> None:
    locker, _, _, _ = _setup()
    locker.deposit("alice", 1000, YEAR)

    locker.trigger_emergency_unlock("owner")
    assert locker.state.emergency_unlock_triggered is True
    assert len(locker.state.events.named(EMERGENCY_UNLOCK_TRIGGERED)) == 1

    with pytest.raises(PolicyError) as e:
        locker.trigger_emergency_unlock("owner")
    assert e.value.reason == "emergency_unlock_already_triggered"

    with pytest.raises(PolicyError) as e:
        locker.deposit("alice", 1000, YEAR)
    assert e.value.reason == "emergency_unlock_triggered"


def test_transfer_ownership_moves_admin_rights() -> None:
    locker, _, _, _ = _setup()
    locker.transfer_ownership("owner", "bob")

    assert locker.state.owner == "bob"
    assert locker.state.events.named(OWNERSHIP_TRANSFERRED)[-1].fields == {
        "previous_owner": "owner",
        "new_owner": "bob",
    }
    with pytest.raises(ForbiddenError):
        locker.set_minimum_deposit("owner", 1)
    locker.set_minimum_deposit("bob", 1)

    with pytest.raises(PolicyError) as e:
        locker.transfer_ownership("bob", "  ")
    assert e.value.reason == "new_owner_required"


def test_delegate_forwards_to_custody() -> None:
    locker, custody, _, _ = _setup()
    locker.deposit("alice", 1000, YEAR)
    locker.delegate("alice", "bob")
    assert custody.delegate_of("alice") == "bob"


class _PlainCustody:
    def deposit_into(self, sender: str, amount: int) -> None:
        pass

    def withdraw_from(self, sender: str, recipient: str, amount: int) -> None:
        pass

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        pass


def test_delegate_without_capability_is_unsupported() -> None:
    cfg = replace(default_locker_config(), mode="dev")
    locker = TimeLocker.from_config(cfg, custody=_PlainCustody(), dividend_token=InMemoryDividendToken())
    with pytest.raises(UnsupportedError) as e:
        locker.delegate("alice", "bob")
    assert e.value.code == "unsupported"

    disabled = TimeLocker.from_config(
        cfg,
        custody=InMemoryCustody(supports_delegation=False),
        dividend_token=InMemoryDividendToken(),
    )
    with pytest.raises(UnsupportedError):
        disabled.delegate("alice", "bob")


def test_view_is_a_detached_snapshot() -> None:
    locker, _, _, _ = _setup(fee_recipient="treasury")
    locker.deposit("alice", 1000, YEAR)
    view = locker.view()
    locker.deposit("bob", 1000, YEAR)

    assert view.lock_count == 1
    assert view.get_lock(1) is None
    assert view.policy_json()["fee_recipient"] == "treasury"
    assert locker.view().lock_count == 2


def test_metrics_wait_for_the_outermost_section(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOCKER_METRICS_ENABLED", "1")
    metrics.reset()
    locker, _, _, _ = _setup()
    try:
        with pytest.raises(RuntimeError):
            with locker.atomic():
                locker.deposit("alice", 1000, YEAR)
                assert metrics.snapshot()["counters"] == {}
                raise RuntimeError("abort")
        assert locker.lock_count() == 0
        assert metrics.snapshot()["counters"] == {}

        with locker.atomic():
            locker.deposit("alice", 1000, YEAR)
            assert metrics.snapshot()["counters"] == {}
        assert metrics.snapshot()["counters"] == {"deposits": 1}
        assert metrics.snapshot()["gauges"] == {"lock_count": 1, "pending_fees": 0}
    finally:
        metrics.reset()
