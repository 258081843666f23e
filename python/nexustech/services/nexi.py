"""Nexus service layer.

Service functions correspond 1:1 with route handlers. Nexus order on the
home page uses the legacy `order` column (not content items): new nexi are
appended, reorder rewrites `order` from list indexes.

Guests get at most one nexus per guest session. It has no owner and is
visible only to that session; the public manual has no owner and is
visible to everyone.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.auth.permissions import is_guest_nexus_of, is_public_manual
from nexustech.config import get_settings
from nexustech.db.models import Nexus
from nexustech.db.session import run_in_transaction
from nexustech.errors import ApiErrorCode, ConflictError, InvalidRequestError
from nexustech.logging import get_logger
from nexustech.schemas.knowledge import CreateNexusRequest, NexusOut, UpdateNexusRequest
from nexustech.services import cascade
from nexustech.services.scoping import get_nexus_for_viewer_or_404, nexus_is_shared_for

logger = get_logger(__name__)


def _to_out(nexus: Nexus, viewer: Viewer) -> NexusOut:
    out = NexusOut.model_validate(nexus)
    out.is_shared = nexus_is_shared_for(nexus, viewer)
    return out


def _home_sort_key(nexus: Nexus) -> tuple:
    return (nexus.order is None, nexus.order or 0, nexus.created_at)


def list_nexi(db: Session, viewer: Viewer) -> list[NexusOut]:
    """Nexi for the home page: the public manual first, then the viewer's own by `order`.

    Guests see the manual and their guest nexus.
    """
    manual_name = get_settings().shared_manual_nexus_name
    manuals = [
        nexus
        for nexus in db.scalars(
            select(Nexus).where(Nexus.owner_id.is_(None), Nexus.name == manual_name)
        ).all()
        if is_public_manual(nexus, manual_name)
    ]

    if viewer.is_guest:
        own = db.scalars(
            select(Nexus).where(
                Nexus.owner_id.is_(None), Nexus.guest_session_id == viewer.guest_session_id
            )
        ).all()
    else:
        own = db.scalars(select(Nexus).where(Nexus.owner_id == viewer.subject)).all()

    return [_to_out(nexus, viewer) for nexus in manuals + sorted(own, key=_home_sort_key)]


def get_nexus(db: Session, viewer: Viewer, nexus_id: UUID) -> NexusOut:
    return _to_out(get_nexus_for_viewer_or_404(db, viewer, nexus_id), viewer)


def create_nexus(db: Session, viewer: Viewer, request: CreateNexusRequest) -> NexusOut:
    """Create a nexus at the end of the viewer's home ordering.

    Guests are routed to create_guest_nexus.
    """
    if viewer.is_guest:
        return create_guest_nexus(db, viewer, request)

    def work() -> Nexus:
        next_order = db.scalar(
            select(func.count()).select_from(Nexus).where(Nexus.owner_id == viewer.subject)
        )
        nexus = Nexus(
            name=request.name,
            description=request.description,
            order=next_order,
            owner_id=viewer.subject,
        )
        db.add(nexus)
        db.flush()
        return nexus

    nexus = run_in_transaction(db, work)
    logger.info("nexus_created", nexus_id=str(nexus.id))
    return _to_out(nexus, viewer)


def create_guest_nexus(db: Session, viewer: Viewer, request: CreateNexusRequest) -> NexusOut:
    """Create the single guest nexus for a guest session.

    Raises:
        InvalidRequestError(E_INVALID_REQUEST): The viewer is signed in.
        ConflictError(E_GUEST_NEXUS_LIMIT): The session already has one.
    """
    if not viewer.is_guest:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Guest nexi require a guest session"
        )
    guest_session_id = viewer.guest_session_id

    def work() -> Nexus:
        existing = db.scalar(
            select(Nexus).where(
                Nexus.owner_id.is_(None), Nexus.guest_session_id == guest_session_id
            )
        )
        if existing is not None and is_guest_nexus_of(existing, guest_session_id):
            raise ConflictError(
                ApiErrorCode.E_GUEST_NEXUS_LIMIT, "Guests may create only one nexus"
            )
        nexus = Nexus(
            name=request.name,
            description=request.description,
            order=0,
            owner_id=None,
            guest_session_id=guest_session_id,
        )
        db.add(nexus)
        db.flush()
        return nexus

    nexus = run_in_transaction(db, work)
    logger.info("guest_nexus_created", nexus_id=str(nexus.id))
    return _to_out(nexus, viewer)


def reorder_nexi(db: Session, viewer: Viewer, nexus_ids: list[UUID]) -> list[NexusOut]:
    """Rewrite `order` of the viewer's own nexi from list indexes.

    Ids that are not the viewer's are ignored.
    """
    index_of = {nexus_id: index for index, nexus_id in enumerate(nexus_ids)}

    def work() -> None:
        if viewer.is_guest:
            return
        for nexus in db.scalars(
            select(Nexus).where(Nexus.owner_id == viewer.subject, Nexus.id.in_(nexus_ids))
        ).all():
            nexus.order = index_of[nexus.id]

    run_in_transaction(db, work)
    return list_nexi(db, viewer)


def update_nexus(
    db: Session, viewer: Viewer, nexus_id: UUID, request: UpdateNexusRequest
) -> NexusOut:
    nexus = get_nexus_for_viewer_or_404(db, viewer, nexus_id, write=True)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("name", "") is None:
        del changes["name"]

    def work() -> Nexus:
        for field, value in changes.items():
            setattr(nexus, field, value)
        db.flush()
        return nexus

    return _to_out(run_in_transaction(db, work), viewer)


def delete_nexus(db: Session, viewer: Viewer, nexus_id: UUID) -> None:
    """Delete a nexus with all of its notebooks and their contents."""
    get_nexus_for_viewer_or_404(db, viewer, nexus_id, write=True)
    run_in_transaction(db, lambda: cascade.delete_nexus(db, nexus_id))
