import uuid

from fastapi import Request


def _meta(request: Request) -> dict:
    return {
        "request_id": getattr(request.state, "request_id", None) or uuid.uuid4().hex,
        "session_id": getattr(request.state, "session_id", None),
    }


def envelope(request: Request, data: dict | list | None, error: dict | None = None) -> dict:
    """Success body; ``error`` carries a degraded-but-served condition such as a catalog fallback."""
    return {"data": data, "meta": _meta(request), "error": error}


def exception_envelope(request: Request, status_code: int, message: str, code: str, details: dict | None = None) -> dict:
    return {
        "success": False,
        "errors": [{"code": code, "message": message, "details": details or {}}],
        "meta": {**_meta(request), "status_code": status_code},
    }
