"""Conversation routes.

Conversations are private to signed-in users; guests get 401.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_user_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_models, success_response
from nexustech.schemas.conversation import AddMessageRequest, CreateConversationRequest
from nexustech.services import conversations as conversations_service

router = APIRouter()


@router.get("/conversations")
def list_conversations(
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the viewer's conversations, most recently active first."""
    return success_models(conversations_service.list_conversations(db, viewer))


@router.post("/conversations", status_code=201)
def create_conversation(
    body: CreateConversationRequest,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = conversations_service.create_conversation(db, viewer, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    return success_models(conversations_service.list_messages(db, viewer, conversation_id))


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def add_message(
    conversation_id: UUID,
    body: AddMessageRequest,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Record a question/answer exchange.

    Messages of notebook-scoped conversations are appended to the notebook's ordering.
    """
    result = conversations_service.add_message(db, viewer, conversation_id, body)
    return success_response(result.model_dump(mode="json"))


@router.delete("/conversations/{conversation_id}", status_code=204)
def delete_conversation(
    conversation_id: UUID,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    conversations_service.delete_conversation(db, viewer, conversation_id)
    return Response(status_code=204)
