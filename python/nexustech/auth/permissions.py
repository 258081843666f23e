"""Ownership scoping predicates.

These predicates are the single source of truth for visibility. They are
pure: callers load the records and pass them in, and get a boolean back.
Services turn a False into a not-found error so existence never leaks.

Rules:
- A record with an owner is visible only to that owner.
- A record without an owner is visible when its containing nexus is shared.
- A nexus is shared when it has no owner and is either the public manual
  (matched by name, never a guest nexus) or the guest nexus of the
  requesting guest session.
- The public manual is read-only through the API; guest nexi are writable
  by their session.
"""

from nexustech.db.models import Nexus


def is_visible(owner_id: str | None, requester_id: str | None, container_shared: bool) -> bool:
    """Whether a record owned by `owner_id` is visible to `requester_id`.

    An anonymous requester (None) never matches an owned record.
    """
    if owner_id is not None:
        return requester_id is not None and owner_id == requester_id
    return container_shared


def is_public_manual(nexus: Nexus, manual_name: str) -> bool:
    """The seeded shared manual: ownerless, not a guest nexus, well-known name."""
    return nexus.owner_id is None and nexus.guest_session_id is None and nexus.name == manual_name


def is_guest_nexus_of(nexus: Nexus, guest_session_id: str | None) -> bool:
    """Whether `nexus` is the guest nexus created by `guest_session_id`."""
    return (
        nexus.owner_id is None
        and guest_session_id is not None
        and nexus.guest_session_id == guest_session_id
    )


def is_shared_nexus(nexus: Nexus, guest_session_id: str | None, manual_name: str) -> bool:
    """Whether ownerless records inside `nexus` are visible to this requester."""
    return is_public_manual(nexus, manual_name) or is_guest_nexus_of(nexus, guest_session_id)


def can_read_nexus(
    nexus: Nexus, subject: str | None, guest_session_id: str | None, manual_name: str
) -> bool:
    return is_visible(
        nexus.owner_id, subject, is_shared_nexus(nexus, guest_session_id, manual_name)
    )


def can_write_nexus(
    nexus: Nexus, subject: str | None, guest_session_id: str | None
) -> bool:
    """Owners write their nexi; guests write only their own guest nexus."""
    if nexus.owner_id is not None:
        return subject is not None and nexus.owner_id == subject
    return is_guest_nexus_of(nexus, guest_session_id)
