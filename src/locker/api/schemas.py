# src/locker/api/schemas.py
from __future__ import annotations

"""Pydantic request/response schemas for the HTTP API.

These exist only for HTTP input validation; the executor re-validates
payload fields per action.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SignedRequest(BaseModel):
    action: str = Field(..., description="Ledger action, e.g. deposit, withdraw, distribute_fees")
    caller: str = Field(..., description="Caller account id (Ed25519 public key, hex)")
    nonce: int = Field(..., ge=1, description="Caller nonce; must be the last accepted nonce + 1")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Action arguments")
    sig: str = Field(..., description="Ed25519 signature (hex or base64) over the canonical request")


class SubmitResponse(BaseModel):
    ok: bool
    request_id: str
    seq: int
    result: Dict[str, Any]


class LockResponse(BaseModel):
    lock_id: int
    amount: int
    locked_at: int
    lock_duration: int
    owner: str
    destroyed: bool


class WithdrawalParamsResponse(BaseModel):
    amount: int
    locked_at: int
    lock_duration: int
    dividend_shares: int
    early_withdrawal_fee: int
    now: Optional[int] = None
