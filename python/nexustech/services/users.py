"""User bootstrap and preference service.

ensure_user is called by the auth middleware on every signed-in request. On
first sight it creates the users row and grants the welcome bonus in the
same transaction, so a user never exists without their bonus ledger row.
Concurrent first requests race on the unique subject; the loser rolls back
and reads the winner's row.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nexustech.db.models import Placement, User, now_ms
from nexustech.db.session import transaction
from nexustech.errors import ApiErrorCode, NotFoundError
from nexustech.logging import get_logger
from nexustech.schemas.users import UpdatePreferencesRequest, UserOut
from nexustech.services.shards import get_user_by_subject, record_welcome_bonus

logger = get_logger(__name__)

# Placement hint -> the users column holding the preference for it
PLACEMENT_PREFERENCE_COLUMNS = {
    "add": "add_chunk_placement",
    "import": "import_chunk_placement",
    "research": "research_chunk_placement",
}
DEFAULT_PLACEMENT = Placement.top


def ensure_user(db: Session, subject: str, claims: dict[str, Any] | None = None) -> UUID:
    """Return the users.id for `subject`, creating the user on first sight.

    Profile fields (email, name, picture) are copied from the token claims
    when the row is created. last_active_at is refreshed on every call.
    """
    claims = claims or {}
    user = get_user_by_subject(db, subject)
    if user is not None:
        with transaction(db):
            user.last_active_at = now_ms()
        return user.id

    try:
        with transaction(db):
            user = User(
                subject=subject,
                email=claims.get("email"),
                name=claims.get("name"),
                image_url=claims.get("picture"),
                last_active_at=now_ms(),
            )
            db.add(user)
            db.flush()
            record_welcome_bonus(db, user)
        logger.info("user_created", subject=subject)
        return user.id
    except IntegrityError:
        existing = get_user_by_subject(db, subject)
        if existing is None:
            raise
        logger.info("user_bootstrap_race_recovered", subject=subject)
        return existing.id


def get_user_or_404(db: Session, subject: str) -> User:
    user = get_user_by_subject(db, subject)
    if user is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    return user


def get_me(db: Session, subject: str) -> UserOut:
    return UserOut.model_validate(get_user_or_404(db, subject))


def update_preferences(
    db: Session, subject: str, request: UpdatePreferencesRequest
) -> UserOut:
    """Apply the fields present in the request; omitted fields are unchanged."""
    user = get_user_or_404(db, subject)
    changes = request.model_dump(exclude_unset=True)
    # Placement and model preferences may be cleared; the dark-mode flag may not.
    if changes.get("is_dark_mode", False) is None:
        del changes["is_dark_mode"]
    with transaction(db):
        for field, value in changes.items():
            setattr(user, field, value)
    logger.info("preferences_updated", fields=sorted(changes))
    return UserOut.model_validate(user)


def placement_for(db: Session, subject: str | None, placement_hint: str) -> Placement:
    """Where a chunk created with `placement_hint` lands for this user.

    Guests, unknown users, unknown hints and unset preferences all get the default (top).
    """
    column = PLACEMENT_PREFERENCE_COLUMNS.get(placement_hint)
    if subject is None or column is None:
        return DEFAULT_PLACEMENT
    user = get_user_by_subject(db, subject)
    if user is None:
        return DEFAULT_PLACEMENT
    value = getattr(user, column)
    return Placement(value) if value else DEFAULT_PLACEMENT
