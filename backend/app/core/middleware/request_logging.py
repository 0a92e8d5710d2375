from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("okr.api")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with a request id and the caller's suggestion session."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        request.state.session_id = request.headers.get("X-Session-ID")
        started_at = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started_at) * 1000, 2)

        response.headers.setdefault("X-Request-ID", request_id)
        # Routes may assign a session when the caller sent none.
        session_id = getattr(request.state, "session_id", None)
        if session_id:
            response.headers.setdefault("X-Session-ID", session_id)

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "request_id": request_id,
                "session_id": session_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response
