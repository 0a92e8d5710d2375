from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from app.api.response import exception_envelope
from app.api.v1.router import api_router
from app.core.config import get_settings
from app.core.errors import OkrCoreError
from app.core.logging_config import configure_logging
from app.core.metrics import render_metrics
from app.core.middleware import MetricsMiddleware, RequestLoggingMiddleware
from app.providers.retry import RetryExhaustedError

settings = get_settings()
configure_logging(log_level=settings.log_level, app_env=settings.app_env)
logger = logging.getLogger("okr.api")


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "okr api starting env=%s cache=%s suggestions=%s",
        settings.app_env,
        settings.template_cache_backend,
        settings.suggestion_service_url,
    )
    yield
    logger.info("okr api stopping env=%s", settings.app_env)


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_v1_prefix)

if settings.metrics_enabled:
    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)


def _core_error_response(request: Request, exc: OkrCoreError) -> JSONResponse:
    details = {"category": exc.category, "retryable": exc.retryable, **exc.details}
    payload = exception_envelope(
        request=request,
        status_code=exc.status_code,
        message=exc.user_message,
        code=exc.code,
        details=details,
    )
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(OkrCoreError)
async def core_exception_handler(request: Request, exc: OkrCoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request failed code=%s category=%s: %s", exc.code, exc.category, exc)
    return _core_error_response(request, exc)


@app.exception_handler(RetryExhaustedError)
async def retry_exhausted_handler(request: Request, exc: RetryExhaustedError) -> JSONResponse:
    response = _core_error_response(request, exc.last_error)
    response.headers["X-Retry-Attempts"] = str(exc.attempts)
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    details: dict[str, object] = exc.detail if isinstance(exc.detail, dict) else {}
    payload = exception_envelope(
        request=request,
        status_code=exc.status_code,
        message=message,
        code=f"http_{exc.status_code}",
        details=details,
    )
    return JSONResponse(status_code=exc.status_code, content=payload)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = exception_envelope(
        request=request,
        status_code=422,
        message="Validation failed",
        code="validation_error",
        details={"errors": jsonable_errors(exc)},
    )
    return JSONResponse(status_code=422, content=payload)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error path=%s", request.url.path, exc_info=exc)
    payload = exception_envelope(
        request=request,
        status_code=500,
        message="Internal server error",
        code="internal_server_error",
    )
    return JSONResponse(status_code=500, content=payload)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")} for error in exc.errors()]
