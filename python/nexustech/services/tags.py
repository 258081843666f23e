"""Tag service layer.

Tags form a tree inside one notebook. A tag's content item lives in the
notebook locus with parent_id set to its parent tag, so siblings are ordered
within their parent's group. Reparenting moves the content item to the end
of the new parent's group.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.auth.permissions import is_visible
from nexustech.db.models import (
    ChunkTag,
    ContentItem,
    ContentType,
    LocusType,
    Nexus,
    Notebook,
    Tag,
)
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, InvalidRequestError
from nexustech.logging import get_logger
from nexustech.schemas.knowledge import CreateTagRequest, TagNodeOut, TagOut, UpdateTagRequest
from nexustech.services import cascade
from nexustech.services.content_items import (
    append_content_item,
    find_content_items,
    move_content_item,
)
from nexustech.services.scoping import (
    get_notebook_for_viewer_or_404,
    get_tag_for_viewer_or_404,
    nexus_is_shared_for,
)

logger = get_logger(__name__)


def _parent_key(parent_tag_id: UUID | None) -> str | None:
    return str(parent_tag_id) if parent_tag_id is not None else None


def _validate_parent(
    db: Session, notebook_id: UUID, parent_tag_id: UUID | None, tag_id: UUID | None = None
) -> None:
    """Parent must be a tag of the same notebook and must not create a cycle.

    Raises:
        InvalidRequestError(E_INVALID_PARENT)
    """
    if parent_tag_id is None:
        return
    parent = db.get(Tag, parent_tag_id)
    if parent is None or parent.notebook_id != notebook_id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_PARENT, "Parent tag must belong to the same notebook"
        )
    if tag_id is None:
        return

    # Walk up from the new parent; reaching tag_id means a cycle
    seen: set[UUID] = set()
    current: Tag | None = parent
    while current is not None and current.id not in seen:
        if current.id == tag_id:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_PARENT, "A tag cannot be nested under itself"
            )
        seen.add(current.id)
        current = db.get(Tag, current.parent_tag_id) if current.parent_tag_id else None


def create_tag(
    db: Session, viewer: Viewer, notebook_id: UUID, request: CreateTagRequest
) -> TagOut:
    """Create a tag in a notebook, nested under parent_tag_id when given."""
    notebook: Notebook = get_notebook_for_viewer_or_404(db, viewer, notebook_id, write=True)
    _validate_parent(db, notebook.id, request.parent_tag_id)

    def work() -> Tag:
        tag = Tag(
            notebook_id=notebook.id,
            name=request.name,
            description=request.description,
            color=request.color,
            parent_tag_id=request.parent_tag_id,
            origin_notebook_id=notebook.id,
            origin_nexus_id=notebook.nexus_id,
            owner_id=viewer.subject,
        )
        db.add(tag)
        db.flush()
        append_content_item(
            db,
            locus_id=str(notebook.id),
            locus_type=LocusType.notebook,
            content_type=ContentType.tag,
            content_id=str(tag.id),
            owner_id=viewer.subject,
            parent_id=_parent_key(request.parent_tag_id),
        )
        return tag

    tag = run_in_transaction(db, work)
    logger.info("tag_created", tag_id=str(tag.id), notebook_id=str(notebook.id))
    return TagOut.model_validate(tag)


def list_tag_tree(db: Session, viewer: Viewer, notebook_id: UUID) -> list[TagNodeOut]:
    """The notebook's tags as a tree of top-level nodes.

    Siblings follow their content item positions; tags without a placement
    come after their placed siblings, oldest first. A tag whose parent is
    missing or invisible is shown at the top level.
    """
    notebook = get_notebook_for_viewer_or_404(db, viewer, notebook_id)
    nexus = db.get(Nexus, notebook.nexus_id)
    shared = nexus is not None and nexus_is_shared_for(nexus, viewer)
    tags = [
        tag
        for tag in db.scalars(select(Tag).where(Tag.notebook_id == notebook.id)).all()
        if is_visible(tag.owner_id, viewer.subject, shared)
    ]
    if not tags:
        return []

    positions = {
        item.content_id: item.position
        for item in db.scalars(
            select(ContentItem).where(
                ContentItem.locus_id == str(notebook.id),
                ContentItem.content_type == ContentType.tag.value,
            )
        ).all()
    }
    counts = dict(
        db.execute(
            select(ChunkTag.tag_id, func.count())
            .where(ChunkTag.tag_id.in_([tag.id for tag in tags]))
            .group_by(ChunkTag.tag_id)
        ).all()
    )

    def sort_key(tag: Tag) -> tuple:
        position = positions.get(str(tag.id))
        return (position is None, position or 0, tag.created_at)

    nodes = {tag.id: TagNodeOut.model_validate(tag) for tag in tags}
    for tag_id, node in nodes.items():
        node.chunk_count = counts.get(tag_id, 0)
    roots: list[TagNodeOut] = []
    for tag in sorted(tags, key=sort_key):
        parent = nodes.get(tag.parent_tag_id) if tag.parent_tag_id is not None else None
        (parent.children if parent is not None else roots).append(nodes[tag.id])
    return roots


def update_tag(db: Session, viewer: Viewer, tag_id: UUID, request: UpdateTagRequest) -> TagOut:
    tag = get_tag_for_viewer_or_404(db, viewer, tag_id, write=True)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        del changes["name"]

    def work() -> Tag:
        for field, value in changes.items():
            setattr(tag, field, value)
        db.flush()
        return tag

    return TagOut.model_validate(run_in_transaction(db, work))


def reparent_tag(
    db: Session, viewer: Viewer, tag_id: UUID, parent_tag_id: UUID | None
) -> TagOut:
    """Nest a tag under a new parent (None moves it to the top level).

    Raises:
        InvalidRequestError(E_INVALID_PARENT): Parent in another notebook, or a cycle.
    """
    tag = get_tag_for_viewer_or_404(db, viewer, tag_id, write=True)
    _validate_parent(db, tag.notebook_id, parent_tag_id, tag_id=tag.id)
    new_parent_key = _parent_key(parent_tag_id)

    def work() -> Tag:
        tag.parent_tag_id = parent_tag_id
        for item in find_content_items(db, ContentType.tag, str(tag.id)):
            if item.parent_id != new_parent_key:
                move_content_item(db, item.id, item.locus_id, item.locus_type, new_parent_key)
        db.flush()
        return tag

    run_in_transaction(db, work)
    logger.info("tag_reparented", tag_id=str(tag_id), parent_tag_id=new_parent_key)
    return TagOut.model_validate(tag)


def delete_tag(db: Session, viewer: Viewer, tag_id: UUID) -> None:
    """Delete a tag. Its children move up to the deleted tag's parent."""
    get_tag_for_viewer_or_404(db, viewer, tag_id, write=True)
    run_in_transaction(db, lambda: cascade.delete_tag(db, tag_id))
    logger.info("tag_deleted", tag_id=str(tag_id))
