"""Chunk routes: chunks and meta tags, placement, tag links and chunk satellites.

Routes are transport-only: each calls exactly one service function.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.knowledge import (
    AssignTagsRequest,
    CreateAttachmentRequest,
    CreateChunkRequest,
    CreateConduitRequest,
    MoveChunkRequest,
    UpdateChunkRequest,
)
from nexustech.services import chunks as chunks_service

router = APIRouter()


@router.get("/meta-tags")
def list_meta_tags(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """System meta tags followed by the viewer's own."""
    return success_models(chunks_service.list_meta_tags(db, viewer))


@router.get("/tags/{tag_id}/chunks")
def list_chunks_by_tag(
    tag_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_models(chunks_service.list_chunks_by_tag(db, viewer, tag_id))


@router.post("/notebooks/{notebook_id}/chunks", status_code=201)
def create_chunk(
    notebook_id: UUID,
    body: CreateChunkRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Create a chunk. placement_hint picks the creator's top/bottom preference."""
    result = chunks_service.create_chunk(db, viewer, notebook_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/chunks/{chunk_id}")
def get_chunk(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.get_chunk(db, viewer, chunk_id)
    return success_response(result.model_dump(mode="json"))


@router.patch("/chunks/{chunk_id}")
def update_chunk(
    chunk_id: UUID,
    body: UpdateChunkRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.update_chunk(db, viewer, chunk_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/chunks/{chunk_id}", status_code=204)
def delete_chunk(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    """Delete a chunk, its satellites, its connections' shadows and its placements."""
    chunks_service.delete_chunk(db, viewer, chunk_id)
    return Response(status_code=204)


@router.post("/chunks/{chunk_id}/move")
def move_chunk(
    chunk_id: UUID,
    body: MoveChunkRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.move_chunk(db, viewer, chunk_id, body.target_notebook_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/chunks/{chunk_id}/move-to-top")
def move_chunk_to_top(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.move_chunk_to_top(db, viewer, chunk_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/chunks/{chunk_id}/move-to-bottom")
def move_chunk_to_bottom(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.move_chunk_to_bottom(db, viewer, chunk_id)
    return success_response(result.model_dump(mode="json"))


@router.put("/chunks/{chunk_id}/tags")
def assign_tags(
    chunk_id: UUID,
    body: AssignTagsRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Replace the chunk's tags with exactly the given set."""
    tag_ids = chunks_service.assign_tags(db, viewer, chunk_id, body.tag_ids)
    return success_response({"chunk_id": str(chunk_id), "tag_ids": [str(t) for t in tag_ids]})


@router.post("/chunks/{chunk_id}/attachments", status_code=201)
def add_attachment(
    chunk_id: UUID,
    body: CreateAttachmentRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.add_attachment(db, viewer, chunk_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/chunks/{chunk_id}/attachments")
def list_attachments(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_models(chunks_service.list_attachments(db, viewer, chunk_id))


@router.delete("/attachments/{attachment_id}", status_code=204)
def delete_attachment(
    attachment_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    chunks_service.delete_attachment(db, viewer, attachment_id)
    return Response(status_code=204)


@router.post("/chunks/{chunk_id}/jem")
def toggle_jem(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.toggle_jem(db, viewer, chunk_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/chunks/{chunk_id}/conduits", status_code=201)
def create_conduit(
    chunk_id: UUID,
    body: CreateConduitRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = chunks_service.create_conduit(db, viewer, chunk_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/chunks/{chunk_id}/conduits")
def list_conduits(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Outgoing and incoming conduits whose other end the viewer can see."""
    result = chunks_service.list_conduits(db, viewer, chunk_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/conduits/{conduit_id}", status_code=204)
def delete_conduit(
    conduit_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    chunks_service.delete_conduit(db, viewer, conduit_id)
    return Response(status_code=204)
