"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from nexustech.api.routes.chunks import router as chunks_router
from nexustech.api.routes.connections import router as connections_router
from nexustech.api.routes.conversations import router as conversations_router
from nexustech.api.routes.health import router as health_router
from nexustech.api.routes.internal import router as internal_router
from nexustech.api.routes.loci import router as loci_router
from nexustech.api.routes.me import router as me_router
from nexustech.api.routes.nexi import router as nexi_router
from nexustech.api.routes.prompt_templates import router as prompt_templates_router
from nexustech.api.routes.tags import router as tags_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(me_router, tags=["user"])
    api_router.include_router(nexi_router, tags=["nexi"])
    api_router.include_router(chunks_router, tags=["chunks"])
    api_router.include_router(tags_router, tags=["tags"])
    api_router.include_router(connections_router, tags=["connections"])
    api_router.include_router(conversations_router, tags=["conversations"])
    api_router.include_router(loci_router, tags=["loci"])
    api_router.include_router(prompt_templates_router, tags=["prompt-templates"])
    api_router.include_router(internal_router, tags=["internal"])
    return api_router


__all__ = ["create_api_router"]
