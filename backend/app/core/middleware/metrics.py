from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import http_request_duration_seconds, http_requests_total

SCRAPE_PATH = "/metrics"


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path == SCRAPE_PATH:
            return await call_next(request)
        started_at = time.perf_counter()
        response = await call_next(request)
        # Label by route template; action ids would explode the series count.
        route_path = getattr(request.scope.get("route"), "path", None) or "unmatched"
        labels = {"method": request.method, "path": route_path}
        http_requests_total.labels(status=str(response.status_code), **labels).inc()
        http_request_duration_seconds.labels(**labels).observe(time.perf_counter() - started_at)
        return response
