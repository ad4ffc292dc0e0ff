# src/locker/api/routes_parts/common.py
from __future__ import annotations

from fastapi import Request

from locker.api.errors import ApiError
from locker.runtime.executor import LockerExecutor


def _executor(request: Request) -> LockerExecutor:
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex
