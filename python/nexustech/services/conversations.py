"""Conversation service layer.

Conversations belong to a signed-in user and may be scoped to a notebook.
Messages of a notebook-scoped conversation are placed in that notebook's
ordering as conversationMessage content items, so they can be arranged
alongside chunks. Conversations older than the retention window are
purged by a periodic task.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.config import get_settings
from nexustech.db.models import (
    ContentType,
    Conversation,
    ConversationMessage,
    LocusType,
    now_ms,
)
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, NotFoundError
from nexustech.logging import get_logger
from nexustech.schemas.conversation import (
    AddMessageRequest,
    ConversationOut,
    CreateConversationRequest,
    MessageOut,
)
from nexustech.services import cascade
from nexustech.services.content_items import append_content_item
from nexustech.services.scoping import get_notebook_for_viewer_or_404

logger = get_logger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def _message_count(db: Session, conversation_id: UUID) -> int:
    return db.scalar(
        select(func.count())
        .select_from(ConversationMessage)
        .where(ConversationMessage.conversation_id == conversation_id)
    )


def _to_out(db: Session, conversation: Conversation) -> ConversationOut:
    out = ConversationOut.model_validate(conversation)
    out.message_count = _message_count(db, conversation.id)
    return out


def get_conversation_for_owner_or_404(
    db: Session, viewer: Viewer, conversation_id: UUID
) -> Conversation:
    """Load a conversation owned by the viewer.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Missing or owned by someone else.
    """
    conversation = db.get(Conversation, conversation_id)
    if conversation is None or conversation.owner_id != viewer.subject:
        raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
    return conversation


def create_conversation(
    db: Session, viewer: Viewer, request: CreateConversationRequest
) -> ConversationOut:
    if request.notebook_id is not None:
        get_notebook_for_viewer_or_404(db, viewer, request.notebook_id)

    def work() -> Conversation:
        conversation = Conversation(
            notebook_id=request.notebook_id,
            title=request.title,
            model_used=request.model_used,
            owner_id=viewer.subject,
        )
        db.add(conversation)
        db.flush()
        return conversation

    conversation = run_in_transaction(db, work)
    logger.info("conversation_created", conversation_id=str(conversation.id))
    return _to_out(db, conversation)


def list_conversations(db: Session, viewer: Viewer) -> list[ConversationOut]:
    """The viewer's conversations, most recently active first."""
    conversations = db.scalars(
        select(Conversation)
        .where(Conversation.owner_id == viewer.subject)
        .order_by(Conversation.updated_at.desc(), Conversation.id)
    ).all()
    return [_to_out(db, conversation) for conversation in conversations]


def list_messages(db: Session, viewer: Viewer, conversation_id: UUID) -> list[MessageOut]:
    conversation = get_conversation_for_owner_or_404(db, viewer, conversation_id)
    messages = db.scalars(
        select(ConversationMessage)
        .where(ConversationMessage.conversation_id == conversation.id)
        .order_by(ConversationMessage.order, ConversationMessage.created_at)
    ).all()
    return [MessageOut.model_validate(message) for message in messages]


def add_message(
    db: Session, viewer: Viewer, conversation_id: UUID, request: AddMessageRequest
) -> MessageOut:
    """Record a question/answer exchange and bump the conversation's activity time."""
    conversation = get_conversation_for_owner_or_404(db, viewer, conversation_id)

    def work() -> ConversationMessage:
        message = ConversationMessage(
            conversation_id=conversation.id,
            question=request.question,
            answer=request.answer,
            order=_message_count(db, conversation.id),
            owner_id=viewer.subject,
        )
        db.add(message)
        db.flush()
        if conversation.notebook_id is not None:
            append_content_item(
                db,
                locus_id=str(conversation.notebook_id),
                locus_type=LocusType.notebook,
                content_type=ContentType.conversation_message,
                content_id=str(message.id),
                owner_id=viewer.subject,
            )
        conversation.updated_at = now_ms()
        db.flush()
        return message

    return MessageOut.model_validate(run_in_transaction(db, work))


def delete_conversation(db: Session, viewer: Viewer, conversation_id: UUID) -> None:
    get_conversation_for_owner_or_404(db, viewer, conversation_id)
    run_in_transaction(db, lambda: cascade.delete_conversation(db, conversation_id))
    logger.info("conversation_deleted", conversation_id=str(conversation_id))


def cleanup_old_conversations(
    db: Session, at_ms: int | None = None, retention_days: int | None = None
) -> int:
    """Delete conversations created before the retention window.

    Each conversation is removed in its own transaction; conversations
    already deleted are committed if a later one fails.

    Returns:
        Number of conversations deleted.
    """
    if retention_days is None:
        retention_days = get_settings().conversation_retention_days
    cutoff = (at_ms if at_ms is not None else now_ms()) - retention_days * DAY_MS

    conversation_ids = db.scalars(
        select(Conversation.id).where(Conversation.created_at < cutoff)
    ).all()
    deleted = 0
    for conversation_id in conversation_ids:
        if run_in_transaction(
            db, lambda cid=conversation_id: cascade.delete_conversation(db, cid)
        ):
            deleted += 1

    logger.info(
        "old_conversations_cleaned",
        deleted=deleted,
        candidates=len(conversation_ids),
        retention_days=retention_days,
    )
    return deleted
