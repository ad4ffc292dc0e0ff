# src/locker/collaborators.py
from __future__ import annotations

"""Capability interfaces for the external collaborators.

The ledger never holds the locked asset or the bonus token itself. It drives:

  - a custody module that takes deposits in, pays them out, moves the plain
    asset held by the ledger's own account, and (optionally) forwards voting
    delegation for a depositor's custodial position;
  - a bonus ("dividend") token it may mint and burn.

Any exception raised by a collaborator aborts the whole ledger operation.
"""

from typing import Any, Protocol, runtime_checkable


class CustodyModule(Protocol):
    def deposit_into(self, sender: str, amount: int) -> None:
        """Take `amount` of the asset from `sender` into custody, credited to `sender`."""

    def withdraw_from(self, sender: str, recipient: str, amount: int) -> None:
        """Release `amount` from `sender`'s custodial position to `recipient`."""

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move plain (uncustodied) asset between accounts."""


@runtime_checkable
class DelegatingCustody(Protocol):
    def delegate_voting_power(self, sender: str, delegatee: str) -> None:
        ...


class DividendToken(Protocol):
    def mint(self, recipient: str, amount: int) -> None:
        ...

    def burn(self, holder: str, amount: int) -> None:
        ...


@runtime_checkable
class Transactional(Protocol):
    """Collaborators that can be rolled back together with the ledger state."""

    def snapshot(self) -> Any:
        ...

    def restore(self, snap: Any) -> None:
        ...
