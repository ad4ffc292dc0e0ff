# src/locker/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from locker.structured_logging import log_event

_OFF = {"0", "false", "no", "n", "off"}


def request_logging_enabled() -> bool:
    return (os.environ.get("LOCKER_LOG_REQUESTS") or "1").strip().lower() not in _OFF


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` JSONL line per request, tagged with x-request-id.

    An incoming x-request-id is reused; otherwise one is generated and echoed
    back on the response. LOCKER_LOG_REQUESTS=0 turns the middleware into a
    pass-through.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._enabled = request_logging_enabled()
        self._logger = logging.getLogger("locker.http")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._enabled:
            return await call_next(request)

        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        t0 = time.monotonic()
        fields = {
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "",
        }

        try:
            response = await call_next(request)
        except Exception as e:
            log_event(self._logger, "http_request", status=500, error=str(e), duration_ms=_elapsed_ms(t0), **fields)
            raise

        response.headers.setdefault("x-request-id", rid)
        log_event(self._logger, "http_request", status=response.status_code, duration_ms=_elapsed_ms(t0), **fields)
        return response


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)
