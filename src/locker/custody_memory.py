# src/locker/custody_memory.py
from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from locker.errors import UnsupportedError, insufficient, policy

Json = Dict[str, Any]


def _require_amount(amount: Any) -> int:
    v = int(amount)
    if v < 0:
        raise policy("negative_amount", amount=v)
    return v


class InMemoryCustody:
    """
    In-process custody module.

    Used by the standalone service and by tests. Tracks:
      - asset: plain asset balances per account
      - positions: custodial (deposited) balances per depositor
      - delegates: voting delegation per depositor
    """

    def __init__(
        self,
        *,
        balances: Optional[Dict[str, int]] = None,
        supports_delegation: bool = True,
    ) -> None:
        self.asset: Dict[str, int] = {str(k): int(v) for k, v in (balances or {}).items()}
        self.positions: Dict[str, int] = {}
        self.delegates: Dict[str, str] = {}
        self.supports_delegation = bool(supports_delegation)

    # ---- queries ----

    def balance_of(self, account: str) -> int:
        return int(self.asset.get(account, 0))

    def position_of(self, account: str) -> int:
        return int(self.positions.get(account, 0))

    def delegate_of(self, account: str) -> Optional[str]:
        return self.delegates.get(account)

    @property
    def total_custody(self) -> int:
        return sum(self.positions.values())

    # ---- custody capability ----

    def credit(self, account: str, amount: int) -> None:
        v = _require_amount(amount)
        self.asset[account] = self.balance_of(account) + v

    def _debit(self, book: Dict[str, int], account: str, amount: int, reason: str) -> None:
        have = int(book.get(account, 0))
        if amount > have:
            raise insufficient(reason, account=account, have=have, need=amount)
        book[account] = have - amount

    def deposit_into(self, sender: str, amount: int) -> None:
        v = _require_amount(amount)
        self._debit(self.asset, sender, v, "asset_balance_too_low")
        self.positions[sender] = self.position_of(sender) + v

    def withdraw_from(self, sender: str, recipient: str, amount: int) -> None:
        v = _require_amount(amount)
        self._debit(self.positions, sender, v, "custody_position_too_low")
        self.asset[recipient] = self.balance_of(recipient) + v

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        v = _require_amount(amount)
        self._debit(self.asset, sender, v, "asset_balance_too_low")
        self.asset[recipient] = self.balance_of(recipient) + v

    def delegate_voting_power(self, sender: str, delegatee: str) -> None:
        if not self.supports_delegation:
            raise UnsupportedError(reason="delegation_not_supported")
        self.delegates[sender] = str(delegatee)

    # ---- rollback / persistence ----

    def snapshot(self) -> Json:
        return copy.deepcopy(self.to_json())

    def restore(self, snap: Json) -> None:
        self.asset = {str(k): int(v) for k, v in snap.get("asset", {}).items()}
        self.positions = {str(k): int(v) for k, v in snap.get("positions", {}).items()}
        self.delegates = {str(k): str(v) for k, v in snap.get("delegates", {}).items()}
        self.supports_delegation = bool(snap.get("supports_delegation", True))

    def to_json(self) -> Json:
        return {
            "asset": dict(self.asset),
            "positions": dict(self.positions),
            "delegates": dict(self.delegates),
            "supports_delegation": self.supports_delegation,
        }

    @classmethod
    def from_json(cls, obj: Json) -> "InMemoryCustody":
        c = cls()
        c.restore(obj if isinstance(obj, dict) else {})
        return c


class InMemoryDividendToken:
    """In-process bonus token ledger (mint/burn only)."""

    def __init__(self) -> None:
        self.balances: Dict[str, int] = {}
        self.total_supply = 0

    def balance_of(self, account: str) -> int:
        return int(self.balances.get(account, 0))

    def mint(self, recipient: str, amount: int) -> None:
        v = _require_amount(amount)
        self.balances[recipient] = self.balance_of(recipient) + v
        self.total_supply += v

    def burn(self, holder: str, amount: int) -> None:
        v = _require_amount(amount)
        have = self.balance_of(holder)
        if v > have:
            raise insufficient("dividend_balance_too_low", account=holder, have=have, need=v)
        self.balances[holder] = have - v
        self.total_supply -= v

    def snapshot(self) -> Json:
        return copy.deepcopy(self.to_json())

    def restore(self, snap: Json) -> None:
        self.balances = {str(k): int(v) for k, v in snap.get("balances", {}).items()}
        self.total_supply = int(snap.get("total_supply", 0))

    def to_json(self) -> Json:
        return {"balances": dict(self.balances), "total_supply": int(self.total_supply)}

    @classmethod
    def from_json(cls, obj: Json) -> "InMemoryDividendToken":
        t = cls()
        t.restore(obj if isinstance(obj, dict) else {})
        return t
