# src/locker/api/app.py
from __future__ import annotations

import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from locker.api.errors import ApiError, api_error_handler, locker_error_handler
from locker.api.routes import public_router
from locker.api.structured_logging import RequestLogMiddleware
from locker.config import apply_locker_config_to_env, load_locker_config
from locker.errors import LockerError
from locker.runtime.executor import build_executor as _build_executor
from locker.structured_logging import configure_structured_logging


def build_executor():
    """Build a LockerExecutor for the API runtime.

    Kept as a module-level wrapper so tests can monkeypatch
    `locker.api.app.build_executor`.
    """
    return _build_executor(cfg=load_locker_config())


def _parse_cors_origins() -> List[str]:
    """Parse CORS origins.

    Policy:
      - If LOCKER_CORS_ORIGINS is unset/empty -> CORS disabled
      - Wildcard "*" is rejected in LOCKER_MODE=prod
    """
    raw = os.environ.get("LOCKER_CORS_ORIGINS", "").strip()
    mode = os.environ.get("LOCKER_MODE", "prod").strip().lower()

    if not raw:
        return []

    origins = [o.strip() for o in raw.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in LOCKER_CORS_ORIGINS."
            )
        return ["*"]

    return origins


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load locker config + attach executor
      - False: no executor; routes that need one answer 500 not_ready
    """
    configure_structured_logging()

    if boot_runtime:
        apply_locker_config_to_env(load_locker_config())

    mode = os.environ.get("LOCKER_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Locker API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Locker API")

    app.state.executor = build_executor() if boot_runtime else None

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(LockerError, locker_error_handler)

    app.add_middleware(RequestLogMiddleware)

    cors_origins = _parse_cors_origins()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    app.include_router(public_router)

    return app
