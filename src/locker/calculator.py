# src/locker/calculator.py
from __future__ import annotations

"""Dividend multiplier and early-withdrawal fee arithmetic.

Pure functions over a FeeCurve. All values are unsigned fixed-point integers
scaled by 1e18 (WAD). Products of two WAD-scaled values are kept at full
width and only divided down once, so the result is the floor of the exact
rational value:

  multiplier = 1e18 + max_bonus * (duration - min_duration) / (max_duration - min_duration)
  shares     = amount * multiplier / 1e18
  fee        = amount * min_fee / 1e18
             + amount * base_fee * time_remaining * multiplier / (1e36 * lock_duration)

Each intermediate product is bounded to 256 bits; the quotient of a
256x256-bit product is bounded to 256 bits again.
"""

from typing import NamedTuple

from locker.config import UINT256_MAX, WAD, WAD_SQUARED, FeeCurve
from locker.errors import insufficient, policy


class WithdrawalParameters(NamedTuple):
    dividend_shares: int
    early_withdrawal_fee: int


def _checked_mul(a: int, b: int) -> int:
    out = int(a) * int(b)
    if out > UINT256_MAX:
        raise insufficient("uint256_overflow", a=int(a), b=int(b))
    return out


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with a 512-bit intermediate and a 256-bit result."""
    a, b, denominator = int(a), int(b), int(denominator)
    if a < 0 or b < 0 or a > UINT256_MAX or b > UINT256_MAX:
        raise insufficient("uint256_overflow", a=a, b=b)
    if denominator <= 0:
        raise ZeroDivisionError("mul_div denominator must be positive")
    out = (a * b) // denominator
    if out > UINT256_MAX:
        raise insufficient("uint256_overflow", a=a, b=b, denominator=denominator)
    return out


def get_dividends_multiplier(curve: FeeCurve, duration: int) -> int:
    d = int(duration)
    lo = int(curve.min_lock_duration)
    hi = int(curve.max_lock_duration)
    if d < lo or d > hi:
        raise policy("duration_out_of_bounds", duration=d, min_lock_duration=lo, max_lock_duration=hi)
    return WAD + mul_div(curve.max_dividends_bonus_multiplier, d - lo, hi - lo)


def get_withdrawal_parameters(
    curve: FeeCurve,
    amount: int,
    locked_at: int,
    lock_duration: int,
    *,
    now: int,
    emergency_unlock_triggered: bool = False,
) -> WithdrawalParameters:
    """Split a withdrawal of `amount` into bonus shares to burn and the early-exit fee.

    Fee decay is anchored to the original (locked_at, lock_duration) pair, not to
    the remaining balance. At or after locked_at + lock_duration the fee is 0.

    time_remaining is min(locked_at + lock_duration - now, lock_duration): a
    locked_at later than `now` is quoted as if the lock had just started, so
    the fee never exceeds the zero-elapsed value.
    """
    amount = int(amount)
    if amount < 0:
        raise policy("negative_amount", amount=amount)

    multiplier = get_dividends_multiplier(curve, lock_duration)
    dividend_shares = mul_div(amount, multiplier, WAD)

    unlock_at = int(locked_at) + int(lock_duration)
    if emergency_unlock_triggered or int(now) >= unlock_at or int(lock_duration) == 0:
        return WithdrawalParameters(dividend_shares, 0)

    time_remaining = min(unlock_at - int(now), int(lock_duration))
    minimum_fee = mul_div(amount, curve.min_early_withdrawal_fee, WAD)
    dynamic_fee = mul_div(
        _checked_mul(amount, curve.base_early_withdrawal_fee),
        _checked_mul(time_remaining, multiplier),
        _checked_mul(WAD_SQUARED, lock_duration),
    )
    return WithdrawalParameters(dividend_shares, minimum_fee + dynamic_fee)
