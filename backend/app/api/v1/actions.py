from fastapi import APIRouter, Depends, Request

from app.api.deps import CoreServices, get_services
from app.api.response import envelope
from app.schemas.actions import AssignCampaignIn, LinkObjectiveIn, StageTransitionIn

router = APIRouter(prefix="/actions", tags=["actions"])


@router.get("/{action_id}")
async def get_action(request: Request, action_id: str, services: CoreServices = Depends(get_services)) -> dict:
    action = await services.actions.get_action(action_id)
    return envelope(request, action.model_dump(mode="json"))


@router.post("/{action_id}/stage")
async def transition_action_stage(
    request: Request,
    action_id: str,
    body: StageTransitionIn,
    services: CoreServices = Depends(get_services),
) -> dict:
    action = await services.actions.transition_action_stage(action_id, body.target_stage, body.actor_id)
    return envelope(request, action.model_dump(mode="json"))


@router.post("/{action_id}/objective")
async def link_action_to_objective(
    request: Request,
    action_id: str,
    body: LinkObjectiveIn,
    services: CoreServices = Depends(get_services),
) -> dict:
    action = await services.actions.link_action_to_objective(action_id, body.okr_objective_id)
    return envelope(request, action.model_dump(mode="json"))


@router.post("/{action_id}/campaign")
async def assign_action_to_campaign(
    request: Request,
    action_id: str,
    body: AssignCampaignIn,
    services: CoreServices = Depends(get_services),
) -> dict:
    action = await services.actions.assign_action_to_campaign(action_id, body.campaign_id)
    return envelope(request, action.model_dump(mode="json"))
