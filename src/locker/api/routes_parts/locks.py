# src/locker/api/routes_parts/locks.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from locker.api.errors import ApiError
from locker.api.routes_parts.common import _executor
from locker.api.schemas import LockResponse, WithdrawalParamsResponse

router = APIRouter()

Json = Dict[str, Any]


@router.get("/policy")
def policy(request: Request) -> Json:
    ex = _executor(request)
    curve = ex.cfg.fee_curve
    out = ex.view().policy_json()
    out.update(
        {
            "min_lock_duration": curve.min_lock_duration,
            "max_lock_duration": curve.max_lock_duration,
            "min_early_withdrawal_fee": curve.min_early_withdrawal_fee,
            "base_early_withdrawal_fee": curve.base_early_withdrawal_fee,
            "max_dividends_bonus_multiplier": curve.max_dividends_bonus_multiplier,
            "locker_address": ex.cfg.locker_address,
        }
    )
    return out


@router.get("/locks/count")
def lock_count(request: Request) -> Json:
    return {"lock_count": _executor(request).view().lock_count}


@router.get("/locks/{lock_id}", response_model=LockResponse)
def get_lock(lock_id: int, request: Request) -> LockResponse:
    lk = _executor(request).view().get_lock(lock_id)
    if lk is None:
        raise ApiError.not_found("not_found", "lock_not_found", {"lock_id": lock_id})
    return LockResponse(
        lock_id=lock_id,
        amount=lk.amount,
        locked_at=lk.locked_at,
        lock_duration=lk.lock_duration,
        owner=lk.owner,
        destroyed=lk.destroyed,
    )


@router.get("/multiplier")
def multiplier(request: Request, duration: int = Query(..., ge=0)) -> Json:
    ex = _executor(request)
    return {"duration": duration, "multiplier": ex.locker.get_dividends_multiplier(duration)}


@router.get("/withdrawal-params", response_model=WithdrawalParamsResponse)
def withdrawal_params(
    request: Request,
    amount: int = Query(..., ge=0),
    locked_at: int = Query(..., ge=0),
    lock_duration: int = Query(..., ge=0),
) -> WithdrawalParamsResponse:
    quote = _executor(request).withdrawal_parameters(amount, locked_at, lock_duration)
    return WithdrawalParamsResponse(amount=amount, locked_at=locked_at, lock_duration=lock_duration, **quote)


@router.get("/events")
def events(
    request: Request,
    after: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
) -> Json:
    return _executor(request).events_since(after, limit=limit)


@router.get("/accounts/{account}")
def account(account: str, request: Request) -> Json:
    return _executor(request).account_json(account)
