"""Viewer-scoped access to locus ordering.

Thin layer over nexustech.services.content_items: resolves and checks the
locus for the viewer, runs the ordering operation in a transaction, and
returns enriched items.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.db.models import ContentItem, LocusType
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, InvalidRequestError
from nexustech.logging import get_logger
from nexustech.schemas.content import (
    ContentItemOut,
    EnrichedContentItemOut,
    MoveContentItemRequest,
    ReorderContentItemsRequest,
)
from nexustech.services.content_items import (
    enrich_content_items,
    list_content_items,
    move_content_item,
    reorder_content_items,
)
from nexustech.services.scoping import (
    get_content_item_for_viewer_or_404,
    get_locus_for_viewer_or_404,
)

logger = get_logger(__name__)


def get_locus_items(
    db: Session,
    viewer: Viewer,
    locus_id: str,
    content_type: str | None = None,
    parent_id: str | None = None,
) -> list[EnrichedContentItemOut]:
    """Ordered items of one (locus, parent) group with their records attached."""
    get_locus_for_viewer_or_404(db, viewer, locus_id)
    items = list_content_items(db, locus_id, content_type=content_type, parent_id=parent_id)
    return enrich_content_items(db, items)


def reorder_locus_items(
    db: Session, viewer: Viewer, locus_id: str, request: ReorderContentItemsRequest
) -> list[EnrichedContentItemOut]:
    """Persist a drag-and-drop ordering and return the group in its new order."""
    get_locus_for_viewer_or_404(db, viewer, locus_id, write=True)

    rewritten = run_in_transaction(
        db,
        lambda: reorder_content_items(
            db,
            locus_id,
            request.content_type,
            request.ordered_content_ids,
            parent_id=request.parent_id,
        ),
    )
    logger.info(
        "locus_reordered",
        locus_id=locus_id,
        content_type=request.content_type,
        rewritten=rewritten,
    )
    return get_locus_items(
        db, viewer, locus_id, content_type=request.content_type, parent_id=request.parent_id
    )


def move_locus_item(
    db: Session, viewer: Viewer, item_id: UUID, request: MoveContentItemRequest
) -> ContentItemOut:
    """Move one item to another locus or parent group.

    Raises:
        NotFoundError: Item or destination locus missing or not visible.
        InvalidRequestError(E_INVALID_REQUEST): new_locus_type does not match
            the destination.
    """
    get_content_item_for_viewer_or_404(db, viewer, item_id, write=True)
    locus_type = get_locus_for_viewer_or_404(db, viewer, request.new_locus_id, write=True)
    if locus_type != LocusType(request.new_locus_type):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"Locus {request.new_locus_id} is a {locus_type.value}",
        )

    def work() -> ContentItem:
        return move_content_item(
            db,
            item_id,
            request.new_locus_id,
            locus_type,
            new_parent_id=request.new_parent_id,
            new_position=request.new_position,
        )

    return ContentItemOut.model_validate(run_in_transaction(db, work))
