"""Locus content item ordering engine.

A locus (a nexus or a notebook) holds an ordered sequence of heterogeneous
content references. Ordering lives entirely in ContentItem.position, scoped
to the exact (locus_id, parent_id) group:

- append places the new item at max(position) + 1 (0 for an empty group)
- insert-at-top shifts every sibling down by one, one write per sibling,
  then places the new item at 0
- reorder overwrites positions with list indexes for one content type
- move relocates one item to another locus/parent

Positions are not unique in the schema, so every read re-sorts by
(position, created_at). Appends and top inserts lock the locus container
row first, which serializes concurrent writers into one locus on
PostgreSQL; where row locks are unavailable collisions degrade to
position ties, never to lost rows.

Functions here flush but never commit. Callers own the transaction
(see nexustech.db.session.run_in_transaction).
"""

from collections import defaultdict
from collections.abc import Callable, Iterable
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from nexustech.db.models import (
    Chunk,
    ContentItem,
    ContentType,
    ConversationMessage,
    LocusType,
    MetaTag,
    Nexus,
    Notebook,
    Tag,
)
from nexustech.errors import ApiErrorCode, NotFoundError
from nexustech.logging import get_logger
from nexustech.schemas.content import ContentItemOut, EnrichedContentItemOut
from nexustech.schemas.conversation import MessageOut
from nexustech.schemas.knowledge import ChunkOut, MetaTagOut, NotebookOut, TagOut

logger = get_logger(__name__)


# =============================================================================
# Helpers
# =============================================================================


def _as_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except (ValueError, TypeError, AttributeError):
        return None


def _in_group(locus_id: str, parent_id: str | None):
    """WHERE clause for one (locus_id, parent_id) group. None parent means top level."""
    parent_clause = (
        ContentItem.parent_id.is_(None) if parent_id is None else ContentItem.parent_id == parent_id
    )
    return (ContentItem.locus_id == locus_id) & parent_clause


def sort_by_position(items: Iterable[ContentItem]) -> list[ContentItem]:
    """Stable sort by position, ties broken by creation time."""
    return sorted(items, key=lambda item: (item.position, item.created_at))


def lock_locus(db: Session, locus_id: str, locus_type: LocusType | str) -> None:
    """Take a row lock on the locus container (SELECT ... FOR UPDATE).

    No-op for ids that are not container primary keys.
    """
    key = _as_uuid(locus_id)
    if key is None:
        return
    model = Nexus if LocusType(locus_type) == LocusType.nexus else Notebook
    db.execute(select(model.id).where(model.id == key).with_for_update())


# =============================================================================
# Ordering operations
# =============================================================================


def next_position(db: Session, locus_id: str, parent_id: str | None = None) -> int:
    """Highest position in (locus_id, parent_id) plus one, or 0 when the group is empty."""
    highest = db.scalar(
        select(func.max(ContentItem.position)).where(_in_group(locus_id, parent_id))
    )
    return 0 if highest is None else highest + 1


def append_content_item(
    db: Session,
    *,
    locus_id: str,
    locus_type: LocusType | str,
    content_type: ContentType | str,
    content_id: str,
    owner_id: str | None,
    parent_id: str | None = None,
) -> ContentItem:
    """Place content at the end of its (locus_id, parent_id) group."""
    lock_locus(db, locus_id, locus_type)
    item = ContentItem(
        locus_id=locus_id,
        locus_type=LocusType(locus_type).value,
        content_type=ContentType(content_type).value,
        content_id=content_id,
        parent_id=parent_id,
        owner_id=owner_id,
        position=next_position(db, locus_id, parent_id),
    )
    db.add(item)
    db.flush()

    logger.debug(
        "content_item_appended",
        locus_id=locus_id,
        content_type=item.content_type,
        content_id=content_id,
        position=item.position,
    )
    return item


def insert_content_item_at_top(
    db: Session,
    *,
    locus_id: str,
    locus_type: LocusType | str,
    content_type: ContentType | str,
    content_id: str,
    owner_id: str | None,
    parent_id: str | None = None,
) -> ContentItem:
    """Place content at position 0, shifting every sibling down by one.

    O(n) in sibling count: each sibling is rewritten individually.
    """
    lock_locus(db, locus_id, locus_type)
    siblings = db.scalars(select(ContentItem).where(_in_group(locus_id, parent_id))).all()
    for sibling in siblings:
        sibling.position += 1

    item = ContentItem(
        locus_id=locus_id,
        locus_type=LocusType(locus_type).value,
        content_type=ContentType(content_type).value,
        content_id=content_id,
        parent_id=parent_id,
        owner_id=owner_id,
        position=0,
    )
    db.add(item)
    db.flush()

    logger.debug(
        "content_item_inserted_at_top",
        locus_id=locus_id,
        content_type=item.content_type,
        content_id=content_id,
        shifted=len(siblings),
    )
    return item


def reorder_content_items(
    db: Session,
    locus_id: str,
    content_type: ContentType | str,
    ordered_content_ids: list[str],
    parent_id: str | None = None,
) -> int:
    """Overwrite positions of one content type with their index in `ordered_content_ids`.

    Ids with no matching item are ignored. Items of that type absent from the
    list keep their current positions. Only the (locus_id, parent_id) group is
    touched; parent_id None means the top level.

    Returns:
        Number of items whose position was rewritten.
    """
    index_of = {content_id: index for index, content_id in enumerate(ordered_content_ids)}

    query = select(ContentItem).where(
        _in_group(locus_id, parent_id),
        ContentItem.content_type == ContentType(content_type).value,
    )

    rewritten = 0
    for item in db.scalars(query).all():
        new_position = index_of.get(item.content_id)
        if new_position is None:
            continue
        if item.position != new_position:
            item.position = new_position
        rewritten += 1

    db.flush()
    logger.debug("content_items_reordered", locus_id=locus_id, rewritten=rewritten)
    return rewritten


def move_content_item(
    db: Session,
    item_id: UUID,
    new_locus_id: str,
    new_locus_type: LocusType | str,
    new_parent_id: str | None = None,
    new_position: int | None = None,
) -> ContentItem:
    """Relocate one item. Without new_position it is appended at the destination.

    Raises:
        NotFoundError(E_CONTENT_ITEM_NOT_FOUND): If item_id does not exist.
    """
    item = db.get(ContentItem, item_id)
    if item is None:
        raise NotFoundError(ApiErrorCode.E_CONTENT_ITEM_NOT_FOUND, "Content item not found")

    lock_locus(db, new_locus_id, new_locus_type)
    if new_position is None:
        new_position = next_position(db, new_locus_id, new_parent_id)

    item.locus_id = new_locus_id
    item.locus_type = LocusType(new_locus_type).value
    item.parent_id = new_parent_id
    item.position = new_position
    db.flush()

    logger.debug(
        "content_item_moved",
        item_id=str(item_id),
        new_locus_id=new_locus_id,
        position=new_position,
    )
    return item


def list_content_items(
    db: Session,
    locus_id: str,
    content_type: ContentType | str | None = None,
    parent_id: str | None = None,
) -> list[ContentItem]:
    """Items of one (locus_id, parent_id) group, always re-sorted by position."""
    query = select(ContentItem).where(_in_group(locus_id, parent_id))
    if content_type is not None:
        query = query.where(ContentItem.content_type == ContentType(content_type).value)
    return sort_by_position(db.scalars(query).all())


def find_content_items(
    db: Session, content_type: ContentType | str, content_id: str
) -> list[ContentItem]:
    """Every placement of one piece of content, across all loci."""
    return list(
        db.scalars(
            select(ContentItem).where(
                ContentItem.content_type == ContentType(content_type).value,
                ContentItem.content_id == content_id,
            )
        ).all()
    )


def remove_content_items_for(db: Session, content_type: ContentType | str, content_id: str) -> int:
    """Delete every placement of one piece of content. Returns the number removed."""
    result = db.execute(
        delete(ContentItem).where(
            ContentItem.content_type == ContentType(content_type).value,
            ContentItem.content_id == content_id,
        )
    )
    return result.rowcount or 0


def remove_content_items_in_locus(db: Session, locus_id: str) -> int:
    """Delete every item located in a locus, whatever it points at."""
    result = db.execute(delete(ContentItem).where(ContentItem.locus_id == locus_id))
    return result.rowcount or 0


# =============================================================================
# Enrichment
# =============================================================================

Resolver = Callable[[Session, list[str]], dict[str, BaseModel]]


def _uuid_keys(content_ids: list[str]) -> list[UUID]:
    return [key for key in (_as_uuid(cid) for cid in content_ids) if key is not None]


def _resolve_chunks(db: Session, content_ids: list[str]) -> dict[str, BaseModel]:
    chunks = db.scalars(select(Chunk).where(Chunk.id.in_(_uuid_keys(content_ids)))).all()
    meta_tag_ids = {chunk.meta_tag_id for chunk in chunks if chunk.meta_tag_id is not None}
    meta_tags = {
        meta_tag.id: MetaTagOut.model_validate(meta_tag)
        for meta_tag in db.scalars(select(MetaTag).where(MetaTag.id.in_(meta_tag_ids))).all()
    }

    resolved: dict[str, BaseModel] = {}
    for chunk in chunks:
        out = ChunkOut.model_validate(chunk)
        out.meta_tag = meta_tags.get(chunk.meta_tag_id) if chunk.meta_tag_id else None
        resolved[str(chunk.id)] = out
    return resolved


def _resolve_notebooks(db: Session, content_ids: list[str]) -> dict[str, BaseModel]:
    rows = db.scalars(select(Notebook).where(Notebook.id.in_(_uuid_keys(content_ids)))).all()
    return {str(row.id): NotebookOut.model_validate(row) for row in rows}


def _resolve_tags(db: Session, content_ids: list[str]) -> dict[str, BaseModel]:
    rows = db.scalars(select(Tag).where(Tag.id.in_(_uuid_keys(content_ids)))).all()
    return {str(row.id): TagOut.model_validate(row) for row in rows}


def _resolve_messages(db: Session, content_ids: list[str]) -> dict[str, BaseModel]:
    rows = db.scalars(
        select(ConversationMessage).where(ConversationMessage.id.in_(_uuid_keys(content_ids)))
    ).all()
    return {str(row.id): MessageOut.model_validate(row) for row in rows}


RESOLVERS: dict[ContentType, Resolver] = {
    ContentType.chunk: _resolve_chunks,
    ContentType.notebook: _resolve_notebooks,
    ContentType.tag: _resolve_tags,
    ContentType.conversation_message: _resolve_messages,
}

_unresolved = set(ContentType) - set(RESOLVERS)
if _unresolved:
    raise RuntimeError(f"No content resolver for: {sorted(t.value for t in _unresolved)}")


def enrich_content_items(
    db: Session, items: list[ContentItem]
) -> list[EnrichedContentItemOut]:
    """Attach the referenced record to each item, preserving order.

    One query per content type present. Items whose record no longer
    exists are dropped.
    """
    ids_by_type: dict[ContentType, list[str]] = defaultdict(list)
    for item in items:
        ids_by_type[ContentType(item.content_type)].append(item.content_id)

    resolved = {
        content_type: RESOLVERS[content_type](db, content_ids)
        for content_type, content_ids in ids_by_type.items()
    }

    enriched = []
    dropped = 0
    for item in items:
        content = resolved[ContentType(item.content_type)].get(item.content_id)
        if content is None:
            dropped += 1
            continue
        enriched.append(
            EnrichedContentItemOut(item=ContentItemOut.model_validate(item), content=content)
        )

    if dropped:
        logger.info("dangling_content_items_skipped", count=dropped)
    return enriched
