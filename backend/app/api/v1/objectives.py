from fastapi import APIRouter, Depends, Request

from app.api.deps import CoreServices, get_services
from app.api.response import envelope
from app.schemas.objectives import BulkValidateIn, CreateObjectiveIn, ValidateObjectiveIn

router = APIRouter(prefix="/objectives", tags=["objectives"])


@router.post("/validate")
async def validate_objective(
    request: Request,
    body: ValidateObjectiveIn,
    services: CoreServices = Depends(get_services),
) -> dict:
    issues = await services.objectives.validate_objective(body.brand_id, body.draft, allow_duplicates=body.allow_duplicates)
    return envelope(request, {"is_valid": not issues, "errors": [issue.model_dump() for issue in issues]})


@router.post("/validate-bulk")
async def validate_objectives_bulk(
    request: Request,
    body: BulkValidateIn,
    services: CoreServices = Depends(get_services),
) -> dict:
    result = await services.objectives.validate_bulk(body.brand_id, body.drafts, allow_duplicates=body.allow_duplicates)
    return envelope(request, result.model_dump())


@router.post("", status_code=201)
async def create_objective(
    request: Request,
    body: CreateObjectiveIn,
    services: CoreServices = Depends(get_services),
) -> dict:
    objective = await services.objectives.create_objective(body.brand_id, body.draft, allow_duplicate=body.allow_duplicate)
    return envelope(request, objective.model_dump())
