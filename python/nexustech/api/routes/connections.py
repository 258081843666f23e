"""Chunk connection routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.knowledge import CreateConnectionRequest
from nexustech.services import connections as connections_service

router = APIRouter()


@router.post("/chunks/{chunk_id}/connections", status_code=201)
def create_connection(
    chunk_id: UUID,
    body: CreateConnectionRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Place a shadow copy of the chunk into the target notebook.

    409 E_CONNECTION_EXISTS if the chunk is already connected there.
    """
    result = connections_service.create_connection(db, viewer, chunk_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/chunks/{chunk_id}/connections")
def list_connections(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_models(connections_service.list_connections(db, viewer, chunk_id))


@router.get("/chunks/{chunk_id}/connection-info")
def get_connection_info(
    chunk_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Connection count, and the source connection when the chunk is a shadow."""
    result = connections_service.get_connection_info(db, viewer, chunk_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/connections/counts")
def count_connections(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    chunk_id: Annotated[list[UUID], Query()],
) -> dict:
    """Connection counts for several chunks, keyed by chunk id."""
    return success_response(connections_service.count_connections(db, viewer, chunk_id))


@router.delete("/connections/{connection_id}", status_code=204)
def delete_connection(
    connection_id: UUID,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    connections_service.delete_connection(db, viewer, connection_id)
    return Response(status_code=204)
