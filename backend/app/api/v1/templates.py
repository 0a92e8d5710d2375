from fastapi import APIRouter, Depends, Query, Request

from app.api.deps import CoreServices, get_services
from app.api.response import envelope

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("")
async def resolve_templates(
    request: Request,
    industry: str | None = Query(default=None),
    services: CoreServices = Depends(get_services),
) -> dict:
    resolution = await services.resolver.resolve(industry)
    return envelope(request, resolution.to_payload())


@router.post("/invalidate")
def invalidate_templates(
    request: Request,
    industry: str | None = Query(default=None),
    services: CoreServices = Depends(get_services),
) -> dict:
    dropped = services.resolver.invalidate_industry(industry)
    return envelope(request, {"industry": industry, "invalidated_keys": dropped})
