# src/locker/runtime/executor.py
from __future__ import annotations

import logging
import re
import threading
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

from locker import calculator
from locker.config import LockerConfig, load_locker_config
from locker.crypto.sig import canonical_request_message, request_id, verify_ed25519_signature
from locker.custody_memory import InMemoryCustody, InMemoryDividendToken
from locker.errors import LockerError, forbidden
from locker.ledger.locker import Clock, TimeLocker
from locker.ledger.state import LockerState, LockerView
from locker.runtime.sqlite_db import SqliteDB, SqliteLockerStore
from locker.structured_logging import log_event

Json = Dict[str, Any]

_log = logging.getLogger("locker.executor")

_INT_RE = re.compile(r"-?[0-9]+")


class ExecutorError(RuntimeError):
    pass


def _bad_request(reason: str, **details: Any) -> LockerError:
    return LockerError("invalid_request", reason, details or None)


def _strict_int(v: Any) -> Optional[int]:
    """Whole numbers only: a JSON integer or a decimal-digit string. Floats and bools are refused."""
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str) and _INT_RE.fullmatch(v.strip()):
        return int(v.strip())
    return None


def _req_int(payload: Json, key: str) -> int:
    v = _strict_int(payload.get(key))
    if v is None:
        raise _bad_request("missing_or_invalid_field", field=key)
    return v


def _req_str(payload: Json, key: str) -> str:
    v = payload.get(key)
    if not isinstance(v, str) or not v.strip():
        raise _bad_request("missing_or_invalid_field", field=key)
    return v.strip()


class LockerExecutor:
    """Signed-request executor over a TimeLocker persisted in SQLite.

    Callers are Ed25519 public keys (hex). Each request carries a per-caller
    nonce that must be exactly the last accepted nonce + 1. A request either
    commits (ledger + collaborators + nonce + receipt in one SQLite write) or
    leaves both the in-memory and the persisted state untouched.
    """

    def __init__(
        self,
        *,
        cfg: LockerConfig,
        clock: Optional[Clock] = None,
        require_signatures: bool = True,
    ) -> None:
        self.cfg = cfg
        self.require_signatures = bool(require_signatures)
        # Requests are applied one at a time, in arrival order. Reads take the
        # same lock so they never observe a request that is still in flight.
        self._exec_lock = threading.RLock()

        self._db = SqliteDB(path=cfg.db_path)
        self._store = SqliteLockerStore(db=self._db)

        if self._store.exists():
            snap = self._store.read()
            self._check_fee_curve_fail_closed(snap)
        else:
            snap = self._genesis_snapshot()
            self._store.write(snap)

        self.seq = int(snap.get("seq", 0))
        self.nonces: Dict[str, int] = {str(k): int(v) for k, v in (snap.get("nonces") or {}).items()}
        self.custody = InMemoryCustody.from_json(snap.get("custody") or {})
        self.dividend_token = InMemoryDividendToken.from_json(snap.get("dividend_token") or {})
        self.locker = TimeLocker.from_config(
            cfg,
            custody=self.custody,
            dividend_token=self.dividend_token,
            state=LockerState.from_json(snap.get("locker") or {}),
            clock=clock,
        )

        self._handlers: Dict[str, Callable[[str, Json], Json]] = {
            "deposit": self._do_deposit,
            "withdraw": self._do_withdraw,
            "destroy_lock": self._do_destroy_lock,
            "distribute_fees": self._do_distribute_fees,
            "trigger_emergency_unlock": self._do_trigger_emergency_unlock,
            "set_minimum_deposit": self._do_set_minimum_deposit,
            "set_fee_recipient": self._do_set_fee_recipient,
            "transfer_ownership": self._do_transfer_ownership,
            "delegate": self._do_delegate,
        }

    # ----------------------------
    # Boot
    # ----------------------------

    def _genesis_snapshot(self) -> Json:
        custody = InMemoryCustody(balances=self.cfg.genesis_balances)
        return {
            "seq": 0,
            "fee_curve": asdict(self.cfg.fee_curve),
            "locker_address": self.cfg.locker_address,
            "locker": LockerState.genesis(self.cfg).to_json(),
            "custody": custody.to_json(),
            "dividend_token": InMemoryDividendToken().to_json(),
            "nonces": {},
        }

    def _check_fee_curve_fail_closed(self, snap: Json) -> None:
        have = snap.get("fee_curve")
        want = asdict(self.cfg.fee_curve)
        if have != want:
            raise ExecutorError(f"fee curve mismatch: db={have!r} config={want!r}. Refuse to start.")
        if str(snap.get("locker_address") or "") != self.cfg.locker_address:
            raise ExecutorError("locker_address mismatch between db and config. Refuse to start.")

    # ----------------------------
    # Reads
    # ----------------------------

    def snapshot(self, *, seq: Optional[int] = None, nonces: Optional[Dict[str, int]] = None) -> Json:
        return {
            "seq": int(self.seq if seq is None else seq),
            "fee_curve": asdict(self.cfg.fee_curve),
            "locker_address": self.cfg.locker_address,
            "locker": self.locker.state.to_json(),
            "custody": self.custody.to_json(),
            "dividend_token": self.dividend_token.to_json(),
            "nonces": dict(self.nonces if nonces is None else nonces),
        }

    def read_state(self) -> Json:
        return self._store.read()

    def view(self) -> LockerView:
        with self._exec_lock:
            return self.locker.view()

    def next_nonce(self, account: str) -> int:
        return int(self.nonces.get(str(account), 0)) + 1

    def account_json(self, account: str) -> Json:
        a = str(account)
        with self._exec_lock:
            return {
                "account": a,
                "asset_balance": self.custody.balance_of(a),
                "custody_position": self.custody.position_of(a),
                "delegate": self.custody.delegate_of(a),
                "dividend_balance": self.dividend_token.balance_of(a),
                "next_nonce": self.next_nonce(a),
            }

    def events_since(self, after: int = 0, *, limit: int = 100) -> Json:
        with self._exec_lock:
            log = self.locker.state.events
            return {"events": [e.to_json() for e in log.since(after, limit=limit)], "total": len(log)}

    def withdrawal_parameters(self, amount: int, locked_at: int, lock_duration: int) -> Json:
        """Quote a withdrawal against the committed emergency flag and the current clock."""
        with self._exec_lock:
            now = self.locker.now()
            shares, fee = calculator.get_withdrawal_parameters(
                self.locker.curve,
                amount,
                locked_at,
                lock_duration,
                now=now,
                emergency_unlock_triggered=self.locker.state.emergency_unlock_triggered,
            )
        return {"dividend_shares": shares, "early_withdrawal_fee": fee, "now": now}

    def get_receipt(self, rid: str) -> Optional[Json]:
        return self._store.get_receipt(rid)

    # ----------------------------
    # Execute
    # ----------------------------

    def _authenticate(self, request: Json) -> tuple[str, str, int, Json]:
        action = str(request.get("action") or "").strip()
        caller = str(request.get("caller") or "").strip()
        payload = request.get("payload") if isinstance(request.get("payload"), dict) else {}
        nonce = _strict_int(request.get("nonce"))
        if nonce is None:
            raise _bad_request("missing_or_invalid_field", field="nonce")

        if action not in self._handlers:
            raise _bad_request("unknown_action", action=action)
        if not caller:
            raise _bad_request("missing_or_invalid_field", field="caller")

        if self.require_signatures:
            msg = canonical_request_message(action=action, caller=caller, nonce=nonce, payload=payload)
            if not verify_ed25519_signature(message=msg, sig=str(request.get("sig") or ""), pubkey=caller):
                raise forbidden("bad_signature", caller=caller)

        expected = self.next_nonce(caller)
        if nonce != expected:
            raise _bad_request("bad_nonce", expected=expected, got=nonce)

        return action, caller, nonce, payload

    def execute(self, request: Json) -> Json:
        """Apply one request envelope {action, caller, nonce, payload, sig}.

        Returns {"ok": True, "request_id", "seq", "result"}; raises LockerError on rejection.
        """
        if not isinstance(request, dict):
            raise _bad_request("request_not_an_object")

        with self._exec_lock:
            return self._execute_locked(request)

    def _execute_locked(self, request: Json) -> Json:
        action, caller, nonce, payload = self._authenticate(request)
        rid = request_id(action=action, caller=caller, nonce=nonce, payload=payload)

        new_seq = self.seq + 1
        new_nonces = dict(self.nonces)
        new_nonces[caller] = nonce

        try:
            with self.locker.atomic():
                result = self._handlers[action](caller, payload)
                self._store.write(
                    self.snapshot(seq=new_seq, nonces=new_nonces),
                    receipt={"request_id": rid, "caller": caller, "action": action, "nonce": nonce, "result": result},
                )
        except LockerError as e:
            log_event(_log, "request_rejected", action=action, caller=caller, code=e.code, reason=e.reason)
            raise

        self.seq = new_seq
        self.nonces = new_nonces
        log_event(_log, "request_applied", action=action, caller=caller, nonce=nonce, seq=new_seq)
        return {"ok": True, "request_id": rid, "seq": new_seq, "result": result}

    # ----------------------------
    # Handlers
    # ----------------------------

    def _do_deposit(self, caller: str, payload: Json) -> Json:
        lock_id = self.locker.deposit(caller, _req_int(payload, "amount"), _req_int(payload, "duration"))
        return {"lock_id": lock_id}

    def _do_withdraw(self, caller: str, payload: Json) -> Json:
        res = self.locker.withdraw(caller, _req_int(payload, "lock_id"), _req_int(payload, "amount"))
        return res.to_json()

    def _do_destroy_lock(self, caller: str, payload: Json) -> Json:
        return self.locker.destroy_lock(caller, _req_int(payload, "lock_id")).to_json()

    def _do_distribute_fees(self, caller: str, payload: Json) -> Json:
        return {"amount": self.locker.distribute_fees()}

    def _do_trigger_emergency_unlock(self, caller: str, payload: Json) -> Json:
        self.locker.trigger_emergency_unlock(caller)
        return {"emergency_unlock_triggered": True}

    def _do_set_minimum_deposit(self, caller: str, payload: Json) -> Json:
        value = _req_int(payload, "value")
        self.locker.set_minimum_deposit(caller, value)
        return {"minimum_deposit": value}

    def _do_set_fee_recipient(self, caller: str, payload: Json) -> Json:
        recipient = _req_str(payload, "recipient")
        self.locker.set_fee_recipient(caller, recipient)
        return {"fee_recipient": recipient}

    def _do_transfer_ownership(self, caller: str, payload: Json) -> Json:
        new_owner = _req_str(payload, "new_owner")
        self.locker.transfer_ownership(caller, new_owner)
        return {"owner": new_owner}

    def _do_delegate(self, caller: str, payload: Json) -> Json:
        delegatee = _req_str(payload, "delegatee")
        self.locker.delegate(caller, delegatee)
        return {"delegatee": delegatee}


def build_executor(*, cfg: Optional[LockerConfig] = None) -> LockerExecutor:
    return LockerExecutor(cfg=cfg or load_locker_config())
