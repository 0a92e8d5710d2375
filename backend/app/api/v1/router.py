from fastapi import APIRouter

from app.api.v1 import actions, health, objectives, suggestions, templates


def build_api_router() -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(templates.router)
    api_router.include_router(suggestions.router)
    api_router.include_router(objectives.router)
    api_router.include_router(actions.router)
    return api_router


api_router = build_api_router()
