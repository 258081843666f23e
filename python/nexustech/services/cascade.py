"""Cascade deletion orchestrator.

Removes a record together with everything that references it, leaf-first:

- chunk: tag links, conduits (either end), jems, attachments, outgoing
  connections (connection row, then the shadow chunk through this same
  cascade), connections where it is the shadow, its content items, itself
- tag: tag links, its content items, itself; child tags move up to the
  deleted tag's parent and their content items are appended to that group
- conversation: its messages' content items, its messages, itself
- notebook: its chunks, tags, conversations, every content item located in
  it, its own content item in the nexus, itself
- nexus: its notebooks, every content item located in it, itself

Functions flush but never commit; callers wrap them in run_in_transaction
so a cascade lands all at once. Each step is logged with the entity id so
an interrupted run on a store without transactions can be finished by hand.
"""

from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from nexustech.db.models import (
    Attachment,
    Chunk,
    ChunkConnection,
    ChunkTag,
    Conduit,
    ContentItem,
    ContentType,
    Conversation,
    ConversationMessage,
    Jem,
    Nexus,
    Notebook,
    Tag,
)
from nexustech.logging import get_logger
from nexustech.services.content_items import (
    find_content_items,
    move_content_item,
    remove_content_items_for,
    remove_content_items_in_locus,
)

logger = get_logger(__name__)


def _step(entity: str, entity_id: UUID, step: str, count: int | None = None) -> None:
    logger.debug("cascade_step", entity=entity, entity_id=str(entity_id), step=step, count=count)


def _rows(db: Session, statement) -> int:
    return db.execute(statement).rowcount or 0


def delete_chunk(db: Session, chunk_id: UUID) -> bool:
    """Delete a chunk and everything hanging off it. Returns False if it was already gone."""
    chunk = db.get(Chunk, chunk_id)
    if chunk is None:
        return False

    _step(
        "chunk",
        chunk_id,
        "chunk_tags",
        _rows(db, delete(ChunkTag).where(ChunkTag.chunk_id == chunk_id)),
    )
    _step(
        "chunk",
        chunk_id,
        "conduits",
        _rows(
            db,
            delete(Conduit).where(
                or_(Conduit.source_chunk_id == chunk_id, Conduit.target_chunk_id == chunk_id)
            ),
        ),
    )
    _step("chunk", chunk_id, "jems", _rows(db, delete(Jem).where(Jem.chunk_id == chunk_id)))
    _step(
        "chunk",
        chunk_id,
        "attachments",
        _rows(db, delete(Attachment).where(Attachment.chunk_id == chunk_id)),
    )

    outgoing = db.scalars(
        select(ChunkConnection).where(ChunkConnection.source_chunk_id == chunk_id)
    ).all()
    for connection in outgoing:
        shadow_id = connection.shadow_chunk_id
        db.execute(delete(ChunkConnection).where(ChunkConnection.id == connection.id))
        if shadow_id != chunk_id:
            delete_chunk(db, shadow_id)
    _step("chunk", chunk_id, "outgoing_connections", len(outgoing))

    _step(
        "chunk",
        chunk_id,
        "shadow_connections",
        _rows(db, delete(ChunkConnection).where(ChunkConnection.shadow_chunk_id == chunk_id)),
    )
    _step(
        "chunk",
        chunk_id,
        "content_items",
        remove_content_items_for(db, ContentType.chunk, str(chunk_id)),
    )

    db.execute(delete(Chunk).where(Chunk.id == chunk_id))
    db.flush()
    _step("chunk", chunk_id, "chunk")
    return True


def delete_tag(db: Session, tag_id: UUID) -> bool:
    """Delete a tag, moving its child tags up one level. Returns False if it was already gone."""
    tag = db.get(Tag, tag_id)
    if tag is None:
        return False

    _step(
        "tag", tag_id, "chunk_tags", _rows(db, delete(ChunkTag).where(ChunkTag.tag_id == tag_id))
    )

    new_parent = tag.parent_tag_id
    new_parent_key = str(new_parent) if new_parent is not None else None
    children = db.scalars(select(Tag).where(Tag.parent_tag_id == tag_id)).all()
    for child in children:
        child.parent_tag_id = new_parent
        for item in find_content_items(db, ContentType.tag, str(child.id)):
            if item.parent_id == str(tag_id):
                move_content_item(db, item.id, item.locus_id, item.locus_type, new_parent_key)
    db.flush()
    _step("tag", tag_id, "children_reparented", len(children))

    removed = remove_content_items_for(db, ContentType.tag, str(tag_id))
    _step("tag", tag_id, "content_items", removed)
    db.execute(delete(Tag).where(Tag.id == tag_id))
    db.flush()
    _step("tag", tag_id, "tag")
    return True


def delete_conversation(db: Session, conversation_id: UUID) -> bool:
    """Delete a conversation with its messages and their content items."""
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        return False

    message_ids = db.scalars(
        select(ConversationMessage.id).where(
            ConversationMessage.conversation_id == conversation_id
        )
    ).all()
    for message_id in message_ids:
        remove_content_items_for(db, ContentType.conversation_message, str(message_id))
    db.execute(
        delete(ConversationMessage).where(ConversationMessage.conversation_id == conversation_id)
    )
    _step("conversation", conversation_id, "messages", len(message_ids))

    db.execute(delete(Conversation).where(Conversation.id == conversation_id))
    db.flush()
    _step("conversation", conversation_id, "conversation")
    return True


def delete_notebook(db: Session, notebook_id: UUID) -> bool:
    """Delete a notebook and its whole subtree. Returns False if it was already gone."""
    notebook = db.get(Notebook, notebook_id)
    if notebook is None:
        return False

    chunk_ids = db.scalars(select(Chunk.id).where(Chunk.notebook_id == notebook_id)).all()
    for chunk_id in chunk_ids:
        # Shadows of chunks deleted earlier in this loop are already gone
        delete_chunk(db, chunk_id)
    _step("notebook", notebook_id, "chunks", len(chunk_ids))

    _step(
        "notebook",
        notebook_id,
        "inbound_connections",
        _rows(
            db,
            delete(ChunkConnection).where(ChunkConnection.target_notebook_id == notebook_id),
        ),
    )

    tag_ids = db.scalars(select(Tag.id).where(Tag.notebook_id == notebook_id)).all()
    if tag_ids:
        db.execute(delete(ChunkTag).where(ChunkTag.tag_id.in_(tag_ids)))
        db.execute(
            delete(ContentItem).where(
                ContentItem.content_type == ContentType.tag.value,
                ContentItem.content_id.in_([str(tag_id) for tag_id in tag_ids]),
            )
        )
        db.execute(delete(Tag).where(Tag.notebook_id == notebook_id))
    _step("notebook", notebook_id, "tags", len(tag_ids))

    conversation_ids = db.scalars(
        select(Conversation.id).where(Conversation.notebook_id == notebook_id)
    ).all()
    for conversation_id in conversation_ids:
        delete_conversation(db, conversation_id)
    _step("notebook", notebook_id, "conversations", len(conversation_ids))

    _step(
        "notebook",
        notebook_id,
        "located_content_items",
        remove_content_items_in_locus(db, str(notebook_id)),
    )
    _step(
        "notebook",
        notebook_id,
        "own_content_items",
        remove_content_items_for(db, ContentType.notebook, str(notebook_id)),
    )

    db.execute(delete(Notebook).where(Notebook.id == notebook_id))
    db.flush()
    logger.info("notebook_deleted", notebook_id=str(notebook_id), chunks=len(chunk_ids))
    return True


def delete_nexus(db: Session, nexus_id: UUID) -> bool:
    """Delete a nexus and every notebook in it. Returns False if it was already gone."""
    nexus = db.get(Nexus, nexus_id)
    if nexus is None:
        return False

    notebook_ids = db.scalars(select(Notebook.id).where(Notebook.nexus_id == nexus_id)).all()
    for notebook_id in notebook_ids:
        delete_notebook(db, notebook_id)

    _step(
        "nexus",
        nexus_id,
        "located_content_items",
        remove_content_items_in_locus(db, str(nexus_id)),
    )
    db.execute(delete(Nexus).where(Nexus.id == nexus_id))
    db.flush()
    logger.info("nexus_deleted", nexus_id=str(nexus_id), notebooks=len(notebook_ids))
    return True


def delete_chunk_connection(db: Session, connection_id: UUID) -> bool:
    """Delete a connection together with its shadow chunk (and the shadow's content item)."""
    connection = db.get(ChunkConnection, connection_id)
    if connection is None:
        return False

    shadow_id = connection.shadow_chunk_id
    db.execute(delete(ChunkConnection).where(ChunkConnection.id == connection_id))
    delete_chunk(db, shadow_id)
    _step("connection", connection_id, "connection")
    return True
