"""Current user endpoints: profile, preferences and shard summary."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nexustech.api.deps import get_db, get_user_viewer
from nexustech.auth.middleware import Viewer
from nexustech.responses import success_response
from nexustech.schemas.users import UpdatePreferencesRequest
from nexustech.services import shards as shards_service
from nexustech.services import users as users_service

router = APIRouter()


@router.get("/me")
def get_me(
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get the signed-in user's profile and preferences."""
    result = users_service.get_me(db, viewer.subject)
    return success_response(result.model_dump(mode="json"))


@router.patch("/me/preferences")
def update_preferences(
    body: UpdatePreferencesRequest,
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Update preferences. Omitted fields are unchanged."""
    result = users_service.update_preferences(db, viewer.subject, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/me/shards")
def get_my_shards(
    viewer: Annotated[Viewer, Depends(get_user_viewer)],
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(description="Recent transactions (clamped to 1..100)")] = 25,
) -> dict:
    """Balance, allowance and the most recent ledger rows, newest first."""
    result = shards_service.get_shard_summary(db, viewer.subject, limit=limit)
    return success_response(result.model_dump(mode="json"))
