# src/locker/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class LockerError(Exception):
    """Canonical error type for ledger, calculator and collaborator failures."""

    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class PolicyError(LockerError):
    """Request rejected by deposit/withdraw policy (amount floor, duration bounds, emergency mode)."""

    code: str = "policy"
    reason: str = "policy_violation"
    details: Optional[Json] = None


@dataclass
class ForbiddenError(LockerError):
    code: str = "forbidden"
    reason: str = "not_authorized"
    details: Optional[Json] = None


@dataclass
class InsufficientBalanceError(LockerError):
    """Amount exceeds what is available, or a bounded counter would overflow."""

    code: str = "insufficient_balance"
    reason: str = "insufficient_balance"
    details: Optional[Json] = None


@dataclass
class ConfigInvariantError(LockerError):
    code: str = "invalid_config"
    reason: str = "invalid_config"
    details: Optional[Json] = None


@dataclass
class LockNotFoundError(LockerError):
    code: str = "not_found"
    reason: str = "lock_not_found"
    details: Optional[Json] = None


@dataclass
class UnsupportedError(LockerError):
    code: str = "unsupported"
    reason: str = "unsupported"
    details: Optional[Json] = None


def policy(reason: str, **details: Any) -> PolicyError:
    return PolicyError(reason=reason, details=details or None)


def forbidden(reason: str, **details: Any) -> ForbiddenError:
    return ForbiddenError(reason=reason, details=details or None)


def insufficient(reason: str, **details: Any) -> InsufficientBalanceError:
    return InsufficientBalanceError(reason=reason, details=details or None)


def invalid_config(reason: str, **details: Any) -> ConfigInvariantError:
    return ConfigInvariantError(reason=reason, details=details or None)
