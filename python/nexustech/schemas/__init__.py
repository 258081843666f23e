"""Pydantic schemas for request/response models.

Response models are re-exported here for convenient imports.
"""

from nexustech.schemas.content import ContentItemOut, EnrichedContentItemOut
from nexustech.schemas.conversation import ConversationOut, MessageOut
from nexustech.schemas.knowledge import (
    AttachmentOut,
    ChunkOut,
    ConduitOut,
    ConnectionOut,
    JemOut,
    MetaTagOut,
    NexusOut,
    NotebookOut,
    TagOut,
)
from nexustech.schemas.maintenance import LedgerReport, OrphanReport
from nexustech.schemas.shards import (
    CreditResult,
    DebitResult,
    ResetResult,
    ShardSummaryOut,
    ShardTransactionOut,
)
from nexustech.schemas.users import UserOut

__all__ = [
    # Ordering
    "ContentItemOut",
    "EnrichedContentItemOut",
    # Knowledge structure
    "NexusOut",
    "NotebookOut",
    "ChunkOut",
    "MetaTagOut",
    "TagOut",
    "AttachmentOut",
    "JemOut",
    "ConduitOut",
    "ConnectionOut",
    # Conversations
    "ConversationOut",
    "MessageOut",
    # Ledger
    "DebitResult",
    "CreditResult",
    "ResetResult",
    "ShardTransactionOut",
    "ShardSummaryOut",
    # Users
    "UserOut",
    # Maintenance
    "OrphanReport",
    "LedgerReport",
]
