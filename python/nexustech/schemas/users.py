"""User profile and preference schemas."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

PlacementValue = Literal["top", "bottom"]


class UpdatePreferencesRequest(BaseModel):
    """Partial preference update; omitted fields are unchanged."""

    fav_model: str | None = None
    is_dark_mode: bool | None = None
    add_chunk_placement: PlacementValue | None = None
    import_chunk_placement: PlacementValue | None = None
    research_chunk_placement: PlacementValue | None = None


class UserOut(BaseModel):
    id: UUID
    subject: str
    email: str | None
    name: str | None
    image_url: str | None
    fav_model: str | None
    is_dark_mode: bool
    is_paid: bool
    add_chunk_placement: PlacementValue | None
    import_chunk_placement: PlacementValue | None
    research_chunk_placement: PlacementValue | None
    shard_balance: float
    created_at: int

    model_config = ConfigDict(from_attributes=True)
