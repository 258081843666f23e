"""Locus ordering routes (drag-and-drop persistence)."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.content import (
    ContentTypeValue,
    MoveContentItemRequest,
    ReorderContentItemsRequest,
)
from nexustech.services import loci as loci_service

router = APIRouter()


@router.get("/loci/{locus_id}/items")
def get_locus_items(
    locus_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    content_type: Annotated[ContentTypeValue | None, Query()] = None,
    parent_id: Annotated[str | None, Query(description="Parent group; omit for top level")] = None,
) -> dict:
    """Ordered items of one group with the referenced records attached."""
    items = loci_service.get_locus_items(
        db, viewer, locus_id, content_type=content_type, parent_id=parent_id
    )
    return success_models(items)


@router.post("/loci/{locus_id}/reorder")
def reorder_locus_items(
    locus_id: str,
    body: ReorderContentItemsRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Set positions of one content type to their index in ordered_content_ids."""
    return success_models(loci_service.reorder_locus_items(db, viewer, locus_id, body))


@router.post("/content-items/{item_id}/move")
def move_content_item(
    item_id: UUID,
    body: MoveContentItemRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = loci_service.move_locus_item(db, viewer, item_id, body)
    return success_response(result.model_dump(mode="json"))
