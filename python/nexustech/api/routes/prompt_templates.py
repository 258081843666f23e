"""Prompt template routes.

Reads and usage counting are open to guests (system templates only); creating
and editing templates requires a signed-in user.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_user_viewer, get_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.prompt_template import (
    CreatePromptTemplateRequest,
    TemplateScope,
    UpdatePromptTemplateRequest,
)
from nexustech.services import prompt_templates as prompt_templates_service

router = APIRouter()


@router.get("/prompt-templates")
def list_prompt_templates(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    scope: Annotated[TemplateScope, Query()] = "all",
    include_inactive: Annotated[bool, Query()] = False,
) -> dict:
    """List system templates and the viewer's own, oldest first."""
    return success_models(
        prompt_templates_service.list_prompt_templates(db, viewer, scope, include_inactive)
    )


@router.get("/prompt-templates/popular")
def list_popular_prompt_templates(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query()] = prompt_templates_service.DEFAULT_POPULAR_LIMIT,
) -> dict:
    """Most used templates first; limit is clamped to 1..50."""
    return success_models(
        prompt_templates_service.list_popular_prompt_templates(db, viewer, limit)
    )


@router.post("/prompt-templates", status_code=201)
def create_prompt_template(
    body: CreatePromptTemplateRequest,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = prompt_templates_service.create_prompt_template(db, viewer, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/prompt-templates/{template_id}")
def get_prompt_template(
    template_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = prompt_templates_service.get_prompt_template(db, viewer, template_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/prompt-templates/{template_id}")
def update_prompt_template(
    template_id: UUID,
    body: UpdatePromptTemplateRequest,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Partial update. System templates are read-only (403)."""
    result = prompt_templates_service.update_prompt_template(db, viewer, template_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/prompt-templates/{template_id}", status_code=204)
def delete_prompt_template(
    template_id: UUID,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    prompt_templates_service.delete_prompt_template(db, viewer, template_id)
    return Response(status_code=204)


@router.post("/prompt-templates/{template_id}/use")
def record_prompt_template_usage(
    template_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Count one use of a template and stamp last_used_at."""
    result = prompt_templates_service.record_prompt_template_usage(db, viewer, template_id)
    return success_response(result.model_dump(mode="json"))
