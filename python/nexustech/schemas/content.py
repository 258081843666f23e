"""Pydantic schemas for locus content items (ordering records)."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from nexustech.schemas.conversation import MessageOut
from nexustech.schemas.knowledge import ChunkOut, NotebookOut, TagOut

ContentTypeValue = Literal["chunk", "notebook", "tag", "conversationMessage"]
LocusTypeValue = Literal["nexus", "notebook"]


class ReorderContentItemsRequest(BaseModel):
    """Rewrite positions of one content type inside one group.

    Positions become list indexes. Unknown ids are ignored; items of that
    type missing from the list keep their current positions.
    """

    content_type: ContentTypeValue
    ordered_content_ids: list[str]
    parent_id: str | None = None


class MoveContentItemRequest(BaseModel):
    """Relocate one content item. Omitted position appends at the destination."""

    new_locus_id: str
    new_locus_type: LocusTypeValue
    new_parent_id: str | None = None
    new_position: int | None = Field(default=None, ge=0)


class ContentItemOut(BaseModel):
    id: UUID
    locus_id: str
    locus_type: LocusTypeValue
    content_type: ContentTypeValue
    content_id: str
    position: int
    parent_id: str | None
    owner_id: str | None
    created_at: int

    model_config = ConfigDict(from_attributes=True)


class EnrichedContentItemOut(BaseModel):
    """A content item together with the record it points at."""

    item: ContentItemOut
    content: ChunkOut | NotebookOut | TagOut | MessageOut
