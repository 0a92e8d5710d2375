import logging

from fastapi import APIRouter, Body, Depends, Request

from app.api.response import envelope
from app.api.deps import get_suggestion_manager
from app.providers.errors import SuggestionServiceError, SuggestionValidationError
from app.schemas.suggestions import SuggestionContext, SwitchSourceIn
from app.schemas.templates import TemplateOrigin
from app.services.suggestion_source_manager import SuggestionSourceManager

logger = logging.getLogger("okr.api")

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


async def _generate_or_fallback(request: Request, manager: SuggestionSourceManager, call) -> dict:
    try:
        await call()
    except SuggestionServiceError as exc:
        fell_back = manager.session.selected_source == TemplateOrigin.CATALOG and manager.session.has_tried_ai
        if isinstance(exc, SuggestionValidationError) or not fell_back:
            raise
        logger.info("serving catalog fallback session=%s code=%s", manager.session.session_id, exc.code)
        return envelope(
            request,
            manager.snapshot(),
            error={"code": exc.code, "message": exc.user_message, "retryable": exc.retryable},
        )
    return envelope(request, manager.snapshot())


@router.get("")
def get_suggestions(request: Request, manager: SuggestionSourceManager = Depends(get_suggestion_manager)) -> dict:
    return envelope(request, manager.snapshot())


@router.post("")
async def generate_suggestions(
    request: Request,
    context: SuggestionContext = Body(...),
    manager: SuggestionSourceManager = Depends(get_suggestion_manager),
) -> dict:
    return await _generate_or_fallback(request, manager, lambda: manager.generate(context))


@router.post("/regenerate")
async def regenerate_suggestions(
    request: Request,
    manager: SuggestionSourceManager = Depends(get_suggestion_manager),
) -> dict:
    return await _generate_or_fallback(request, manager, manager.regenerate)


@router.post("/source")
def switch_source(
    request: Request,
    body: SwitchSourceIn,
    manager: SuggestionSourceManager = Depends(get_suggestion_manager),
) -> dict:
    switched = manager.switch_source(body.source)
    return envelope(request, {"switched": switched, **manager.stats()})


@router.post("/health-check")
async def probe_suggestion_health(
    request: Request,
    manager: SuggestionSourceManager = Depends(get_suggestion_manager),
) -> dict:
    healthy = await manager.probe_health()
    return envelope(request, {"healthy": healthy, **manager.stats()})


@router.delete("")
def clear_suggestions(request: Request, manager: SuggestionSourceManager = Depends(get_suggestion_manager)) -> dict:
    manager.clear()
    return envelope(request, manager.stats())
