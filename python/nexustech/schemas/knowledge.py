"""Pydantic schemas for nexi, notebooks, chunks, tags and their satellites.

Contains request and response models for the knowledge-structure endpoints.
Timestamps are epoch milliseconds.
"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ChunkTypeValue = Literal["text", "code", "document"]
ConduitTypeValue = Literal["expands_on", "contradicts", "resolves", "references", "builds_on"]
MetaTagColorValue = Literal["BLUE", "GREEN", "YELLOW", "RED", "PURPLE"]
PlacementHint = Literal["add", "import", "research"]

# =============================================================================
# Request Schemas
# =============================================================================


class CreateNexusRequest(BaseModel):
    """Request body for creating a nexus."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None


class UpdateNexusRequest(BaseModel):
    """Partial update; omitted fields are unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None


class ReorderNexiRequest(BaseModel):
    nexus_ids: list[UUID]


class CreateNotebookRequest(BaseModel):
    """Request body for creating a notebook inside a nexus."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    meta_question: str | None = None


class UpdateNotebookRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    meta_question: str | None = None


class CreateChunkRequest(BaseModel):
    """Request body for creating a chunk.

    placement_hint selects which of the creator's placement preferences
    decides whether the chunk lands at the top or the bottom.
    """

    original_text: str = ""
    title: str | None = None
    source: str | None = None
    chunk_type: ChunkTypeValue = "text"
    meta_tag_id: UUID | None = None
    placement_hint: PlacementHint = "add"


class UpdateChunkRequest(BaseModel):
    """Partial update; only fields present in the body are written."""

    title: str | None = None
    original_text: str | None = None
    user_edited_text: str | None = None
    source: str | None = None
    chunk_type: ChunkTypeValue | None = None
    meta_tag_id: UUID | None = None


class MoveChunkRequest(BaseModel):
    target_notebook_id: UUID


class AssignTagsRequest(BaseModel):
    tag_ids: list[UUID]


class CreateAttachmentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    url: str = Field(..., min_length=1, max_length=2048)


class CreateConduitRequest(BaseModel):
    target_chunk_id: UUID
    conduit_type: ConduitTypeValue
    description: str | None = None


class CreateTagRequest(BaseModel):
    """Request body for creating a tag. parent_tag_id nests it under another tag."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    color: str | None = None
    parent_tag_id: UUID | None = None


class UpdateTagRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = None


class ReparentTagRequest(BaseModel):
    parent_tag_id: UUID | None = None


class CreateConnectionRequest(BaseModel):
    target_notebook_id: UUID
    description: str | None = None


# =============================================================================
# Response Schemas
# =============================================================================


class NexusOut(BaseModel):
    """Response schema for a nexus. is_shared marks the public manual or a guest nexus."""

    id: UUID
    name: str
    description: str | None
    order: int | None
    owner_id: str | None
    is_shared: bool = False
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)


class NotebookOut(BaseModel):
    id: UUID
    nexus_id: UUID
    name: str
    description: str | None
    meta_question: str | None
    owner_id: str | None
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)


class MetaTagOut(BaseModel):
    id: UUID
    name: str
    display_color: MetaTagColorValue
    description: str | None
    is_system: bool

    model_config = ConfigDict(from_attributes=True)


class ChunkOut(BaseModel):
    """Response schema for a chunk, with its meta tag when one is set."""

    id: UUID
    notebook_id: UUID
    title: str | None
    original_text: str
    user_edited_text: str | None
    source: str | None
    chunk_type: ChunkTypeValue
    meta_tag_id: UUID | None
    meta_tag: MetaTagOut | None = None
    owner_id: str | None
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)


class TagOut(BaseModel):
    id: UUID
    notebook_id: UUID
    name: str
    description: str | None
    color: str | None
    parent_tag_id: UUID | None
    origin_notebook_id: UUID | None
    origin_nexus_id: UUID | None
    owner_id: str | None
    created_at: int
    updated_at: int

    model_config = ConfigDict(from_attributes=True)


class TagNodeOut(TagOut):
    """A tag with its nested children, for the notebook tag tree."""

    chunk_count: int = 0
    children: list["TagNodeOut"] = Field(default_factory=list)


class AttachmentOut(BaseModel):
    id: UUID
    chunk_id: UUID
    name: str
    url: str
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class JemOut(BaseModel):
    """Favorite state for a chunk after a toggle."""

    chunk_id: UUID
    is_jem: bool


class ConduitOut(BaseModel):
    id: UUID
    source_chunk_id: UUID
    target_chunk_id: UUID
    conduit_type: ConduitTypeValue
    description: str | None
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class ConnectionOut(BaseModel):
    id: UUID
    source_chunk_id: UUID
    target_notebook_id: UUID
    shadow_chunk_id: UUID
    description: str | None
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class ChunkConduitsOut(BaseModel):
    """Conduits starting from a chunk and conduits pointing at it."""

    outgoing: list[ConduitOut]
    incoming: list[ConduitOut]


class ShadowSourceOut(BaseModel):
    """Where a shadow chunk was connected from.

    source_chunk is None when the viewer cannot see the source.
    """

    connection: ConnectionOut
    source_chunk: ChunkOut | None = None
    source_notebook_id: UUID | None = None


class ChunkConnectionInfoOut(BaseModel):
    chunk_id: UUID
    connection_count: int
    is_shadow: bool
    shadow_source: ShadowSourceOut | None = None
