"""Tag routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.knowledge import CreateTagRequest, ReparentTagRequest, UpdateTagRequest
from nexustech.services import tags as tags_service

router = APIRouter()


@router.post("/notebooks/{notebook_id}/tags", status_code=201)
def create_tag(
    notebook_id: UUID,
    body: CreateTagRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = tags_service.create_tag(db, viewer, notebook_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/notebooks/{notebook_id}/tags")
def list_tag_tree(
    notebook_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Top-level tags of the notebook, each with its nested children and chunk count."""
    return success_models(tags_service.list_tag_tree(db, viewer, notebook_id))


@router.patch("/tags/{tag_id}")
def update_tag(
    tag_id: UUID,
    body: UpdateTagRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = tags_service.update_tag(db, viewer, tag_id, body)
    return success_response(result.model_dump(mode="json"))


@router.post("/tags/{tag_id}/reparent")
def reparent_tag(
    tag_id: UUID,
    body: ReparentTagRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Nest the tag under parent_tag_id, or move it to the top level when null."""
    result = tags_service.reparent_tag(db, viewer, tag_id, body.parent_tag_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/tags/{tag_id}", status_code=204)
def delete_tag(
    tag_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a tag; its child tags move up to its parent."""
    tags_service.delete_tag(db, viewer, tag_id)
    return Response(status_code=204)
