"""Chunk connection service layer.

A connection places a shadow copy of a source chunk into another notebook.
The shadow is an ordinary chunk, ordered independently in its notebook.
Deleting the connection deletes the shadow with it.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.db.models import Chunk, ChunkConnection, ContentType, LocusType
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, ConflictError, NotFoundError
from nexustech.logging import get_logger
from nexustech.schemas.knowledge import (
    ChunkConnectionInfoOut,
    ConnectionOut,
    CreateConnectionRequest,
    ShadowSourceOut,
)
from nexustech.services import cascade
from nexustech.services.chunks import to_chunk_out
from nexustech.services.content_items import append_content_item
from nexustech.services.scoping import (
    chunk_is_visible,
    get_chunk_for_viewer_or_404,
    get_notebook_for_viewer_or_404,
)

logger = get_logger(__name__)


def shadow_source_label(source: str | None) -> str:
    return f"Connection from {source or 'Unknown'}"


def create_connection(
    db: Session, viewer: Viewer, chunk_id: UUID, request: CreateConnectionRequest
) -> ConnectionOut:
    """Connect a chunk to another notebook by placing a shadow copy there.

    Raises:
        NotFoundError: Source chunk or target notebook missing or not visible.
        ConflictError(E_CONNECTION_EXISTS): The chunk is already connected there.
    """
    source = get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    target = get_notebook_for_viewer_or_404(db, viewer, request.target_notebook_id, write=True)

    def work() -> ChunkConnection:
        existing = db.scalar(
            select(ChunkConnection.id).where(
                ChunkConnection.source_chunk_id == source.id,
                ChunkConnection.target_notebook_id == target.id,
            )
        )
        if existing is not None:
            raise ConflictError(
                ApiErrorCode.E_CONNECTION_EXISTS,
                "Connection already exists between this chunk and notebook",
            )

        shadow = Chunk(
            notebook_id=target.id,
            title=source.title,
            original_text=source.original_text,
            user_edited_text=source.user_edited_text,
            source=shadow_source_label(source.source),
            chunk_type=source.chunk_type,
            meta_tag_id=source.meta_tag_id,
            owner_id=viewer.subject,
        )
        db.add(shadow)
        db.flush()
        append_content_item(
            db,
            locus_id=str(target.id),
            locus_type=LocusType.notebook,
            content_type=ContentType.chunk,
            content_id=str(shadow.id),
            owner_id=viewer.subject,
        )

        connection = ChunkConnection(
            source_chunk_id=source.id,
            target_notebook_id=target.id,
            shadow_chunk_id=shadow.id,
            description=request.description,
            owner_id=viewer.subject,
        )
        db.add(connection)
        db.flush()
        return connection

    connection = run_in_transaction(db, work)
    logger.info(
        "chunk_connection_created",
        connection_id=str(connection.id),
        source_chunk_id=str(source.id),
        shadow_chunk_id=str(connection.shadow_chunk_id),
    )
    return ConnectionOut.model_validate(connection)


def list_connections(db: Session, viewer: Viewer, chunk_id: UUID) -> list[ConnectionOut]:
    """Outgoing connections of a chunk, oldest first."""
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    connections = db.scalars(
        select(ChunkConnection)
        .where(ChunkConnection.source_chunk_id == chunk.id)
        .order_by(ChunkConnection.created_at, ChunkConnection.id)
    ).all()
    return [ConnectionOut.model_validate(connection) for connection in connections]


def _connection_counts(db: Session, chunk_ids: list[UUID]) -> dict[UUID, int]:
    if not chunk_ids:
        return {}
    return dict(
        db.execute(
            select(ChunkConnection.source_chunk_id, func.count())
            .where(ChunkConnection.source_chunk_id.in_(chunk_ids))
            .group_by(ChunkConnection.source_chunk_id)
        ).all()
    )


def get_connection_info(db: Session, viewer: Viewer, chunk_id: UUID) -> ChunkConnectionInfoOut:
    """How many notebooks a chunk is connected into, and where a shadow came from.

    The source of a shadow is only included when the viewer can see it.
    """
    chunk = get_chunk_for_viewer_or_404(db, viewer, chunk_id)
    connection = db.scalar(
        select(ChunkConnection).where(ChunkConnection.shadow_chunk_id == chunk.id).limit(1)
    )
    shadow_source = None
    if connection is not None:
        shadow_source = ShadowSourceOut(connection=ConnectionOut.model_validate(connection))
        source = db.get(Chunk, connection.source_chunk_id)
        if source is not None and chunk_is_visible(db, viewer, source.id):
            shadow_source.source_chunk = to_chunk_out(db, source)
            shadow_source.source_notebook_id = source.notebook_id

    return ChunkConnectionInfoOut(
        chunk_id=chunk.id,
        connection_count=_connection_counts(db, [chunk.id]).get(chunk.id, 0),
        is_shadow=connection is not None,
        shadow_source=shadow_source,
    )


def count_connections(db: Session, viewer: Viewer, chunk_ids: list[UUID]) -> dict[str, int]:
    """Connection counts keyed by chunk id. Chunks the viewer cannot see are left out."""
    visible = [
        chunk_id
        for chunk_id in dict.fromkeys(chunk_ids)
        if chunk_is_visible(db, viewer, chunk_id)
    ]
    counts = _connection_counts(db, visible)
    return {str(chunk_id): counts.get(chunk_id, 0) for chunk_id in visible}


def delete_connection(db: Session, viewer: Viewer, connection_id: UUID) -> None:
    """Delete a connection and its shadow chunk.

    Access is checked on the shadow chunk, the record this deletes.

    Raises:
        NotFoundError(E_CONNECTION_NOT_FOUND): Missing, or the shadow chunk is not
            visible to the viewer.
        ForbiddenError: The shadow chunk is in a read-only nexus.
    """
    not_found = NotFoundError(ApiErrorCode.E_CONNECTION_NOT_FOUND, "Connection not found")
    connection = db.get(ChunkConnection, connection_id)
    if connection is None:
        raise not_found
    try:
        get_chunk_for_viewer_or_404(db, viewer, connection.shadow_chunk_id, write=True)
    except NotFoundError:
        raise not_found from None

    run_in_transaction(db, lambda: cascade.delete_chunk_connection(db, connection_id))
    logger.info("chunk_connection_deleted", connection_id=str(connection_id))
