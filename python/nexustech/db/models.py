"""SQLAlchemy ORM models for Nexustech.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Enums are Python str enums stored as text and guarded by CHECK constraints.

Column types are portable (Uuid, BigInteger epoch milliseconds) so the same
models run on PostgreSQL in deployments and SQLite in the test suite.
"""

import time
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def now_ms() -> int:
    """Current UTC time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def _enum_check(column: str, enum_cls: type[PyEnum], name: str) -> CheckConstraint:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return CheckConstraint(f"{column} IN ({values})", name=name)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class LocusType(str, PyEnum):
    """Kinds of container a ContentItem can be placed in."""

    nexus = "nexus"
    notebook = "notebook"


class ContentType(str, PyEnum):
    """Kinds of record a ContentItem can point at.

    Closed set: every member must have exactly one enrichment resolver
    (see nexustech.services.content_items).
    """

    chunk = "chunk"
    notebook = "notebook"
    tag = "tag"
    conversation_message = "conversationMessage"


class ChunkType(str, PyEnum):
    text = "text"
    code = "code"
    document = "document"


class MetaTagColor(str, PyEnum):
    BLUE = "BLUE"
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"
    PURPLE = "PURPLE"


class ConduitType(str, PyEnum):
    """Typed relations between two chunks."""

    expands_on = "expands_on"
    contradicts = "contradicts"
    resolves = "resolves"
    references = "references"
    builds_on = "builds_on"


class Placement(str, PyEnum):
    """Where newly created chunks land within their notebook."""

    top = "top"
    bottom = "bottom"


class ShardTransactionType(str, PyEnum):
    """Ledger entry kinds.

    DEBIT rows carry a negative shard_amount; every other kind is positive.
    """

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"
    MONTHLY_RESET = "MONTHLY_RESET"
    PURCHASE = "PURCHASE"
    WELCOME_BONUS = "WELCOME_BONUS"


# =============================================================================
# Users and billing
# =============================================================================


class User(Base):
    """User account plus preferences and the cached shard balance.

    `subject` is the identity provider's `sub` claim. Every owner_id column
    in the schema stores a subject, not this table's primary key.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subject: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Preferences
    fav_model: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_dark_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    add_chunk_placement: Mapped[str | None] = mapped_column(Text, nullable=True)
    import_chunk_placement: Mapped[str | None] = mapped_column(Text, nullable=True)
    research_chunk_placement: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Shard ledger cache (sum of this user's shard_transactions.shard_amount)
    shard_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    monthly_shard_allowance: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    last_allowance_reset_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    purchased_shards: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    last_active_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        CheckConstraint("shard_balance >= 0", name="ck_users_shard_balance_nonnegative"),
        CheckConstraint("purchased_shards >= 0", name="ck_users_purchased_nonnegative"),
        _enum_check("add_chunk_placement", Placement, "ck_users_add_chunk_placement"),
        _enum_check("import_chunk_placement", Placement, "ck_users_import_chunk_placement"),
        _enum_check("research_chunk_placement", Placement, "ck_users_research_chunk_placement"),
    )


class ShardTransaction(Base):
    """Append-only ledger row. Never updated, never deleted."""

    __tablename__ = "shard_transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    shard_amount: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    associated_conversation_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    input_tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    model_id_used: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    __table_args__ = (
        _enum_check("type", ShardTransactionType, "ck_shard_transactions_type"),
        Index("ix_shard_transactions_user_created", "user_id", "created_at"),
    )


class LLMModelPricing(Base):
    """Stored per-model token prices, consulted when the static table has no entry."""

    __tablename__ = "llm_models"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    model_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    input_token_cost_per_million: Mapped[float] = mapped_column(Float, nullable=False)
    output_token_cost_per_million: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )


# =============================================================================
# Containers
# =============================================================================


class Nexus(Base):
    """Nexus model - a top-level knowledge domain.

    owner_id is None for shared records: the public manual and guest nexi
    (which carry guest_session_id instead).
    """

    __tablename__ = "nexi"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    guest_session_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        CheckConstraint("length(name) BETWEEN 1 AND 200", name="ck_nexi_name_length"),
    )


class Notebook(Base):
    """Notebook model - a locus within a nexus."""

    __tablename__ = "notebooks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    nexus_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("nexi.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_question: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        CheckConstraint("length(name) BETWEEN 1 AND 200", name="ck_notebooks_name_length"),
    )


# =============================================================================
# Content
# =============================================================================


class MetaTag(Base):
    """Classification label shown on chunks. System tags (CORE) have no owner."""

    __tablename__ = "meta_tags"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    display_color: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        _enum_check("display_color", MetaTagColor, "ck_meta_tags_display_color"),
    )


class Chunk(Base):
    """Chunk model - an atomic piece of content inside a notebook."""

    __tablename__ = "chunks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    notebook_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_edited_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(Text, nullable=True)
    chunk_type: Mapped[str] = mapped_column(Text, nullable=False, default=ChunkType.text.value)
    meta_tag_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("meta_tags.id", ondelete="SET NULL"), nullable=True
    )
    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (_enum_check("chunk_type", ChunkType, "ck_chunks_chunk_type"),)


class Tag(Base):
    """Hierarchical tag scoped to a notebook."""

    __tablename__ = "tags"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    notebook_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_tag_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("tags.id", ondelete="SET NULL"), nullable=True
    )
    origin_notebook_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    origin_nexus_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        CheckConstraint("length(name) BETWEEN 1 AND 100", name="ck_tags_name_length"),
        CheckConstraint("parent_tag_id IS NULL OR parent_tag_id != id", name="ck_tags_not_self"),
    )


class ChunkTag(Base):
    """Link between a chunk and a tag."""

    __tablename__ = "chunk_tags"

    chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class Conduit(Base):
    """Typed, directed relation between two chunks."""

    __tablename__ = "conduits"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    source_chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    conduit_type: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    __table_args__ = (_enum_check("conduit_type", ConduitType, "ck_conduits_conduit_type"),)


class Jem(Base):
    """Favorite marker on a chunk."""

    __tablename__ = "jems"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class Attachment(Base):
    """External file or link attached to a chunk."""

    __tablename__ = "attachments"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)


class ChunkConnection(Base):
    """Places a shadow copy of a source chunk into another notebook."""

    __tablename__ = "chunk_connections"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    source_chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_notebook_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=False
    )
    shadow_chunk_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("chunks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)

    __table_args__ = (
        UniqueConstraint(
            "source_chunk_id", "target_notebook_id", name="uix_chunk_connections_source_target"
        ),
    )


# =============================================================================
# Conversations
# =============================================================================


class Conversation(Base):
    """Chat thread, optionally scoped to a notebook."""

    __tablename__ = "conversations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    notebook_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("notebooks.id", ondelete="CASCADE"), nullable=True, index=True
    )
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_used: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )


class ConversationMessage(Base):
    """One question/answer exchange within a conversation."""

    __tablename__ = "conversation_messages"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int | None] = mapped_column("order", Integer, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )


# =============================================================================
# Prompt templates
# =============================================================================


class PromptTemplate(Base):
    """Reusable prompt with placeholders and optional LLM settings.

    System templates have no owner and are visible to everyone; user templates
    are visible to their owner only. placeholders and llm_config are stored as
    JSON documents shaped by nexustech.schemas.prompt_template.
    """

    __tablename__ = "prompt_templates"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    template_content: Mapped[str] = mapped_column(Text, nullable=False)
    is_system_defined: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    icon: Mapped[str | None] = mapped_column(Text, nullable=True)
    tag_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    placeholders: Mapped[list | None] = mapped_column(JSON, nullable=True)
    llm_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        CheckConstraint("usage_count >= 0", name="ck_prompt_templates_usage_count"),
        CheckConstraint(
            "is_system_defined = false OR owner_id IS NULL",
            name="ck_prompt_templates_system_unowned",
        ),
    )


# =============================================================================
# Ordering
# =============================================================================


class ContentItem(Base):
    """Placement of one piece of content at a position within a locus.

    `position` is zero-based and dense within (locus_id, parent_id) after
    append-only histories; uniqueness is not enforced by the schema, so
    readers always sort. content_id is an untyped reference resolved
    through content_type.
    """

    __tablename__ = "locus_content_items"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    locus_id: Mapped[str] = mapped_column(Text, nullable=False)
    locus_type: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(Text, nullable=False)
    content_id: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=now_ms)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=now_ms, onupdate=now_ms
    )

    __table_args__ = (
        _enum_check("locus_type", LocusType, "ck_locus_content_items_locus_type"),
        _enum_check("content_type", ContentType, "ck_locus_content_items_content_type"),
        CheckConstraint("position >= 0", name="ck_locus_content_items_position_nonnegative"),
        Index("ix_locus_content_items_locus_parent_position", "locus_id", "parent_id", "position"),
        Index("ix_locus_content_items_content", "content_type", "content_id"),
        Index("ix_locus_content_items_locus_type", "locus_id", "content_type"),
    )
