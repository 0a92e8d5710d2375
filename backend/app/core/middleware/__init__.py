from app.core.middleware.metrics import MetricsMiddleware
from app.core.middleware.request_logging import RequestLoggingMiddleware

__all__ = [
    "MetricsMiddleware",
    "RequestLoggingMiddleware",
]
