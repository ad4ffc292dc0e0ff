# src/locker/api/routes.py
from __future__ import annotations

from fastapi import APIRouter

from locker.api.routes_parts.health import router as health_router
from locker.api.routes_parts.locks import router as locks_router
from locker.api.routes_parts.metrics import router as metrics_router
from locker.api.routes_parts.requests import router as requests_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(locks_router, prefix="/v1", tags=["locks"])
public_router.include_router(requests_router, prefix="/v1", tags=["requests"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
