# src/locker/ledger/__init__.py
"""
Lock ledger package.

  - types: Lock record and withdrawal result
  - state: mutable ledger state + read-only view
  - locker: TimeLocker, the lock lifecycle state machine
  - fee_accounting: pending-fee accumulator and flush
  - admin: owner-gated policy switches and the emergency unlock latch
"""
