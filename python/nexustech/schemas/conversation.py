"""Conversation and message Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Request Schemas
# =============================================================================


class CreateConversationRequest(BaseModel):
    """Request body for starting a conversation, optionally against a notebook."""

    notebook_id: UUID | None = None
    title: str | None = Field(default=None, max_length=300)
    model_used: str | None = None


class AddMessageRequest(BaseModel):
    """A completed question/answer exchange to record."""

    question: str = Field(..., min_length=1)
    answer: str | None = None


# =============================================================================
# Response Schemas
# =============================================================================


class ConversationOut(BaseModel):
    id: UUID
    notebook_id: UUID | None
    title: str | None
    model_used: str | None
    owner_id: str | None
    message_count: int = 0
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    id: UUID
    conversation_id: UUID
    question: str
    answer: str | None
    created_at: int

    model_config = ConfigDict(from_attributes=True)
