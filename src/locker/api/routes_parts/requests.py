# src/locker/api/routes_parts/requests.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from locker.api.errors import ApiError
from locker.api.routes_parts.common import _executor
from locker.api.schemas import SignedRequest, SubmitResponse

router = APIRouter()


@router.post("/requests/submit", response_model=SubmitResponse)
def submit(body: SignedRequest, request: Request) -> Dict[str, Any]:
    """Apply a signed ledger request.

    The executor verifies the signature and nonce and either commits the
    whole request or rejects it with no state change.
    """
    return _executor(request).execute(body.model_dump())


@router.get("/requests/{request_id}")
def receipt(request_id: str, request: Request) -> Dict[str, Any]:
    rec = _executor(request).get_receipt(request_id)
    if rec is None:
        raise ApiError.not_found("not_found", "receipt_not_found", {"request_id": request_id})
    return rec
