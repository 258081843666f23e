"""Database module for Nexustech.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from nexustech.db.engine import create_db_engine, get_engine
from nexustech.db.models import (
    Attachment,
    Base,
    Chunk,
    ChunkConnection,
    ChunkTag,
    ChunkType,
    Conduit,
    ConduitType,
    ContentItem,
    ContentType,
    Conversation,
    ConversationMessage,
    Jem,
    LLMModelPricing,
    LocusType,
    MetaTag,
    MetaTagColor,
    Nexus,
    Notebook,
    Placement,
    ShardTransaction,
    ShardTransactionType,
    Tag,
    User,
    now_ms,
)
from nexustech.db.session import get_db, run_in_transaction, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    "run_in_transaction",
    "now_ms",
    # Base
    "Base",
    # Enums
    "LocusType",
    "ContentType",
    "ChunkType",
    "MetaTagColor",
    "ConduitType",
    "Placement",
    "ShardTransactionType",
    # Models
    "User",
    "ShardTransaction",
    "LLMModelPricing",
    "Nexus",
    "Notebook",
    "MetaTag",
    "Chunk",
    "Tag",
    "ChunkTag",
    "Conduit",
    "Jem",
    "Attachment",
    "ChunkConnection",
    "Conversation",
    "ConversationMessage",
    "ContentItem",
]
