"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
"""

from fastapi import APIRouter

from hotnode.api.routes.health import router as health_router


def create_api_router() -> APIRouter:
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    return api_router


__all__ = ["create_api_router"]
