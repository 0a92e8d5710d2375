from fastapi import APIRouter, Depends, Request

from app.api.deps import CoreServices, get_services
from app.api.response import envelope

router = APIRouter(tags=['ops'])


@router.get('/health')
def health(request: Request, services: CoreServices = Depends(get_services)) -> dict:
    return envelope(
        request,
        {
            'status': 'ok',
            'suggestion_circuit': services.circuit_breaker.state().value,
            'tracked_sessions': len(services.sessions),
        },
    )


@router.get('/health/observability')
def observability(request: Request, services: CoreServices = Depends(get_services)) -> dict:
    return envelope(
        request,
        {
            'errors': services.journal.stats(),
            'performance': services.observer.stats(),
        },
    )
