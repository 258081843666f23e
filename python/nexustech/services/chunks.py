"""Chunk service layer.

Chunk creation honours the creator's placement preference for the kind of
creation (add, import, research): "bottom" appends to the notebook,
anything else inserts at the top. Chunks created without a meta tag get
the system CORE meta tag, which is created on first use.

Satellite records (tag links, attachments, jems, conduits) are managed
here too; deleting a chunk goes through the cascade orchestrator.
"""

from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.db.models import (
    Attachment,
    Chunk,
    ChunkTag,
    Conduit,
    ContentItem,
    ContentType,
    Jem,
    LocusType,
    MetaTag,
    MetaTagColor,
    Placement,
    now_ms,
)
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from nexustech.logging import get_logger
from nexustech.schemas.knowledge import (
    AttachmentOut,
    ChunkConduitsOut,
    ChunkOut,
    ConduitOut,
    CreateAttachmentRequest,
    CreateChunkRequest,
    CreateConduitRequest,
    JemOut,
    MetaTagOut,
    UpdateChunkRequest,
)
from nexustech.services import cascade
from nexustech.services.content_items import (
    append_content_item,
    insert_content_item_at_top,
    remove_content_items_for,
)
from nexustech.services.scoping import (
    chunk_is_visible,
    get_chunk_for_viewer_or_404,
    get_notebook_for_viewer_or_404,
    get_tag_for_viewer_or_404,
)
from nexustech.services.users import placement_for

logger = get_logger(__name__)

CORE_META_TAG_NAME = "CORE"
CORE_META_TAG_DESCRIPTION = (
    "Essential information, fundamental concepts, main ideas, widely accepted facts"
)


def ensure_core_meta_tag(db: Session) -> MetaTag:
    """Return the system CORE meta tag, creating it if missing. Flushes only."""
    meta_tag = db.scalar(
        select(MetaTag)
        .where(MetaTag.name == CORE_META_TAG_NAME, MetaTag.is_system.is_(True))
        .order_by(MetaTag.created_at)
        .limit(1)
    )
    if meta_tag is not None:
        return meta_tag

    meta_tag = MetaTag(
        name=CORE_META_TAG_NAME,
        display_color=MetaTagColor.BLUE.value,
        description=CORE_META_TAG_DESCRIPTION,
        is_system=True,
        owner_id=None,
    )
    db.add(meta_tag)
    db.flush()
    logger.info("core_meta_tag_created", meta_tag_id=str(meta_tag.id))
    return meta_tag


def to_chunk_out(db: Session, chunk: Chunk) -> ChunkOut:
    out = ChunkOut.model_validate(chunk)
    if chunk.meta_tag_id is not None:
        meta_tag = db.get(MetaTag, chunk.meta_tag_id)
        out.meta_tag = MetaTagOut.model_validate(meta_tag) if meta_tag else None
    return out


def _require_meta_tag(db: Session, meta_tag_id: UUID) -> None:
    if db.get(MetaTag, meta_tag_id) is None:
        raise NotFoundError(ApiErrorCode.E_META_TAG_NOT_FOUND, "Meta tag not found")


def _place_chunk(db: Session, chunk: Chunk, owner_id: str | None, placement: Placement) -> None:
    place = append_content_item if placement == Placement.bottom else insert_content_item_at_top
    place(
        db,
        locus_id=str(chunk.notebook_id),
        locus_type=LocusType.notebook,
        content_type=ContentType.chunk,
        content_id=str(chunk.id),
        owner_id=owner_id,
    )


def list_meta_tags(db: Session, viewer: Viewer) -> list[MetaTagOut]:
    """System meta tags, then the viewer's own, each oldest first."""
    condition = MetaTag.is_system.is_(True)
    if viewer.subject is not None:
        condition = or_(condition, MetaTag.owner_id == viewer.subject)
    meta_tags = db.scalars(
        select(MetaTag)
        .where(condition)
        .order_by(MetaTag.is_system.desc(), MetaTag.created_at, MetaTag.id)
    ).all()
    return [MetaTagOut.model_validate(meta_tag) for meta_tag in meta_tags]


# =============================================================================
# Chunks
# =============================================================================


def create_chunk(
    db: Session, viewer: Viewer, notebook_id: UUID, request: CreateChunkRequest
) -> ChunkOut:
    """Create a chunk in a notebook and place it per the creator's preference.

    Raises:
        NotFoundError(E_NOTEBOOK_NOT_FOUND): Notebook missing or not visible.
        NotFoundError(E_META_TAG_NOT_FOUND): meta_tag_id does not exist.
    """
    notebook = get_notebook_for_viewer_or_404(db, viewer, notebook_id, write=True)
    placement = placement_for(db, viewer.subject, request.placement_hint)

    def work() -> Chunk:
        if request.meta_tag_id is not None:
            _require_meta_tag(db, request.meta_tag_id)
            meta_tag_id = request.meta_tag_id
        else:
            meta_tag_id = ensure_core_meta_tag(db).id

        chunk = Chunk(
            notebook_id=notebook.id,
            title=request.title,
            original_text=request.original_text,
            source=request.source,
            chunk_type=request.chunk_type,
            meta_tag_id=meta_tag_id,
            owner_id=viewer.subject,
        )
        db.add(chunk)
        db.flush()
        _place_chunk(db, chunk, viewer.subject, placement)
        return chunk

    chunk = run_in_transaction(db, work)
    logger.info(
        "chunk_created",
        chunk_id=str(chunk.id),
        notebook_id=str(notebook.id),
        placement=placement.value,
    )
    return to_chunk_out(db, chunk)


def get_chunk(db: Session, viewer: Viewer, chunk_id: UUID) -> ChunkOut:
    return to_chunk_out(db, get_chunk_for_viewer_or_404(db, viewer, chunk_id))


def list_chunks_by_tag(db: Session, viewer: Viewer, tag_id: UUID) -> list[ChunkOut]:
    """Visible chunks linked to a tag, with their meta tags.

    Chunks in the tag's notebook come first in notebook order; chunks that
    have since moved elsewhere follow, oldest first.
    """
    tag = get_tag_for_viewer_or_404(db, viewer, tag_id)
    chunks = [
        chunk
        for chunk in db.scalars(
            select(Chunk)
            .join(ChunkTag, ChunkTag.chunk_id == Chunk.id)
            .where(ChunkTag.tag_id == tag.id)
        ).all()
        if chunk_is_visible(db, viewer, chunk.id)
    ]
    positions = {
        item.content_id: item.position
        for item in db.scalars(
            select(ContentItem).where(
                ContentItem.locus_id == str(tag.notebook_id),
                ContentItem.content_type == ContentType.chunk.value,
                ContentItem.content_id.in_([str(chunk.id) for chunk in chunks]),
            )
        ).all()
    }

    def sort_key(chunk: Chunk) -> tuple:
        position = positions.get(str(chunk.id))
        elsewhere = chunk.notebook_id != tag.notebook_id
        return (elsewhere, position is None, position or 0, chunk.created_at)

    return [to_chunk_out(db, chunk) for chunk in sorted(chunks, key=sort_key)]


def update_chunk(
    db: Session, viewer: Viewer, chunk_id: UUID, request: UpdateChunkRequest
) -> ChunkOut:
    """Write only the fields present in the request body."""
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)
    changes = request.model_dump(exclude_unset=True)
    for required in ("original_text", "chunk_type"):
        if changes.get(required, "") is None:
            del changes[required]

    def work() -> Chunk:
        if changes.get("meta_tag_id") is not None:
            _require_meta_tag(db, changes["meta_tag_id"])
        for field, value in changes.items():
            setattr(chunk, field, value)
        db.flush()
        return chunk

    return to_chunk_out(db, run_in_transaction(db, work))


def delete_chunk(db: Session, viewer: Viewer, chunk_id: UUID) -> None:
    get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)
    run_in_transaction(db, lambda: cascade.delete_chunk(db, chunk_id))
    logger.info("chunk_deleted", chunk_id=str(chunk_id))


def move_chunk(db: Session, viewer: Viewer, chunk_id: UUID, target_notebook_id: UUID) -> ChunkOut:
    """Move a chunk to another notebook, appending it there."""
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)
    target = get_notebook_for_viewer_or_404(db, viewer, target_notebook_id, write=True)

    def work() -> Chunk:
        remove_content_items_for(db, ContentType.chunk, str(chunk.id))
        chunk.notebook_id = target.id
        chunk.updated_at = now_ms()
        db.flush()
        _place_chunk(db, chunk, chunk.owner_id, Placement.bottom)
        return chunk

    run_in_transaction(db, work)
    logger.info("chunk_moved", chunk_id=str(chunk_id), target_notebook_id=str(target.id))
    return to_chunk_out(db, chunk)


def _reposition(db: Session, viewer: Viewer, chunk_id: UUID, placement: Placement) -> ChunkOut:
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)

    def work() -> Chunk:
        remove_content_items_for(db, ContentType.chunk, str(chunk.id))
        db.flush()
        _place_chunk(db, chunk, chunk.owner_id, placement)
        return chunk

    return to_chunk_out(db, run_in_transaction(db, work))


def move_chunk_to_top(db: Session, viewer: Viewer, chunk_id: UUID) -> ChunkOut:
    return _reposition(db, viewer, chunk_id, Placement.top)


def move_chunk_to_bottom(db: Session, viewer: Viewer, chunk_id: UUID) -> ChunkOut:
    return _reposition(db, viewer, chunk_id, Placement.bottom)


# =============================================================================
# Satellites
# =============================================================================


def assign_tags(db: Session, viewer: Viewer, chunk_id: UUID, tag_ids: list[UUID]) -> list[UUID]:
    """Replace the chunk's tag links with exactly `tag_ids`.

    Raises:
        NotFoundError(E_TAG_NOT_FOUND): A tag is missing or not visible.
    """
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)
    unique_ids = list(dict.fromkeys(tag_ids))
    for tag_id in unique_ids:
        get_tag_for_viewer_or_404(db, viewer, tag_id)

    def work() -> None:
        db.execute(delete(ChunkTag).where(ChunkTag.chunk_id == chunk.id))
        for tag_id in unique_ids:
            db.add(ChunkTag(chunk_id=chunk.id, tag_id=tag_id))
        db.flush()

    run_in_transaction(db, work)
    return unique_ids


def add_attachment(
    db: Session, viewer: Viewer, chunk_id: UUID, request: CreateAttachmentRequest
) -> AttachmentOut:
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)

    def work() -> Attachment:
        attachment = Attachment(
            chunk_id=chunk.id, name=request.name, url=request.url, owner_id=viewer.subject
        )
        db.add(attachment)
        db.flush()
        return attachment

    return AttachmentOut.model_validate(run_in_transaction(db, work))


def list_attachments(db: Session, viewer: Viewer, chunk_id: UUID) -> list[AttachmentOut]:
    """Attachments of a chunk, oldest first."""
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    attachments = db.scalars(
        select(Attachment)
        .where(Attachment.chunk_id == chunk.id)
        .order_by(Attachment.created_at, Attachment.id)
    ).all()
    return [AttachmentOut.model_validate(attachment) for attachment in attachments]


def delete_attachment(db: Session, viewer: Viewer, attachment_id: UUID) -> None:
    """Delete an attachment whose chunk the viewer may modify.

    Raises:
        NotFoundError(E_ATTACHMENT_NOT_FOUND): Missing or not visible.
    """
    attachment = db.get(Attachment, attachment_id)
    if attachment is None:
        raise NotFoundError(ApiErrorCode.E_ATTACHMENT_NOT_FOUND, "Attachment not found")
    try:
        get_chunk_for_viewer_or_404(db, viewer, attachment.chunk_id, write=True)
    except NotFoundError:
        raise NotFoundError(
            ApiErrorCode.E_ATTACHMENT_NOT_FOUND, "Attachment not found"
        ) from None

    def work() -> None:
        db.execute(delete(Attachment).where(Attachment.id == attachment_id))

    run_in_transaction(db, work)


def toggle_jem(db: Session, viewer: Viewer, chunk_id: UUID) -> JemOut:
    """Flip the viewer's favorite marker on a chunk."""
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    owner_clause = (
        Jem.owner_id.is_(None) if viewer.subject is None else Jem.owner_id == viewer.subject
    )

    def work() -> bool:
        existing = db.scalars(select(Jem).where(Jem.chunk_id == chunk.id, owner_clause)).all()
        if existing:
            db.execute(delete(Jem).where(Jem.id.in_([jem.id for jem in existing])))
            return False
        db.add(Jem(chunk_id=chunk.id, owner_id=viewer.subject))
        db.flush()
        return True

    return JemOut(chunk_id=chunk.id, is_jem=run_in_transaction(db, work))


def create_conduit(
    db: Session, viewer: Viewer, chunk_id: UUID, request: CreateConduitRequest
) -> ConduitOut:
    """Create a typed relation from this chunk to another visible chunk.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): Source and target are the same chunk.
    """
    source = get_chunk_for_viewer_or_404(db, viewer, chunk_id, write=True)
    target = get_chunk_for_viewer_or_404(db, viewer, request.target_chunk_id)
    if source.id == target.id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "A chunk cannot relate to itself"
        )

    def work() -> Conduit:
        conduit = Conduit(
            source_chunk_id=source.id,
            target_chunk_id=target.id,
            conduit_type=request.conduit_type,
            description=request.description,
            owner_id=viewer.subject,
        )
        db.add(conduit)
        db.flush()
        return conduit

    return ConduitOut.model_validate(run_in_transaction(db, work))


def list_conduits(db: Session, viewer: Viewer, chunk_id: UUID) -> ChunkConduitsOut:
    """Conduits from and to a chunk, oldest first.

    A conduit whose other end the viewer cannot see is left out.
    """
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    conduits = db.scalars(
        select(Conduit)
        .where(or_(Conduit.source_chunk_id == chunk.id, Conduit.target_chunk_id == chunk.id))
        .order_by(Conduit.created_at, Conduit.id)
    ).all()

    outgoing, incoming = [], []
    for conduit in conduits:
        outbound = conduit.source_chunk_id == chunk.id
        other_id = conduit.target_chunk_id if outbound else conduit.source_chunk_id
        if not chunk_is_visible(db, viewer, other_id):
            continue
        (outgoing if outbound else incoming).append(ConduitOut.model_validate(conduit))
    return ChunkConduitsOut(outgoing=outgoing, incoming=incoming)


def delete_conduit(db: Session, viewer: Viewer, conduit_id: UUID) -> None:
    """Delete a conduit whose source chunk the viewer may modify.

    Raises:
        NotFoundError(E_CONDUIT_NOT_FOUND): Missing, or the source chunk is not visible.
    """
    conduit = db.get(Conduit, conduit_id)
    if conduit is None:
        raise NotFoundError(ApiErrorCode.E_CONDUIT_NOT_FOUND, "Conduit not found")
    try:
        get_chunk_for_viewer_or_404(db, viewer, conduit.source_chunk_id, write=True)
    except NotFoundError:
        raise NotFoundError(ApiErrorCode.E_CONDUIT_NOT_FOUND, "Conduit not found") from None

    def work() -> None:
        db.execute(delete(Conduit).where(Conduit.id == conduit_id))

    run_in_transaction(db, work)
    logger.info("conduit_deleted", conduit_id=str(conduit_id))
