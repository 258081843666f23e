"""Test data factories.

Centralizes helper functions that create database rows for tests.
Each factory knows the full schema requirements for its table,
so individual tests don't need to track NOT NULL constraints.

Factories commit, so rows are visible to the app's own sessions
when a test goes on to call the API.
"""

from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session

from nexustech.auth.middleware import Viewer
from nexustech.config import get_settings
from nexustech.db.models import (
    Chunk,
    ContentType,
    Conversation,
    LocusType,
    Nexus,
    Notebook,
    PromptTemplate,
    ShardTransaction,
    ShardTransactionType,
    User,
)
from nexustech.services.content_items import append_content_item
from nexustech.services.users import ensure_user
from tests.helpers import create_test_subject

# =============================================================================
# Users
# =============================================================================


def create_test_user(session: Session, subject: str | None = None) -> Viewer:
    """Bootstrap a user (with welcome bonus) and return their Viewer."""
    subject = subject or create_test_subject()
    user_id = ensure_user(session, subject, {"email": f"{subject}@example.com"})
    return Viewer(subject=subject, user_id=user_id)


def create_test_user_with_balance(
    session: Session, balance: float, subject: str | None = None
) -> Viewer:
    """Create a user whose balance and ledger both equal `balance`.

    The welcome bonus row is replaced by a single CREDIT row so ledger
    consistency holds from the start.
    """
    viewer = create_test_user(session, subject)
    user = session.get(User, viewer.user_id)
    session.execute(delete(ShardTransaction).where(ShardTransaction.user_id == user.id))
    user.shard_balance = balance
    session.add(
        ShardTransaction(
            user_id=user.id,
            type=ShardTransactionType.CREDIT.value,
            shard_amount=balance,
            reason="Test balance",
        )
    )
    session.commit()
    return viewer


def guest_viewer(guest_session_id: str = "guest-session-1") -> Viewer:
    return Viewer(subject=None, guest_session_id=guest_session_id)


# =============================================================================
# Containers
# =============================================================================


def create_test_nexus(
    session: Session,
    owner_id: str | None,
    name: str = "Test Nexus",
    guest_session_id: str | None = None,
    order: int | None = None,
) -> UUID:
    nexus = Nexus(name=name, owner_id=owner_id, guest_session_id=guest_session_id, order=order)
    session.add(nexus)
    session.commit()
    return nexus.id


def create_test_manual(session: Session) -> UUID:
    """Create the shared public manual (no owner, well-known name)."""
    return create_test_nexus(session, None, name=get_settings().shared_manual_nexus_name)


def create_test_notebook(
    session: Session, nexus_id: UUID, owner_id: str | None, name: str = "Test Notebook"
) -> UUID:
    """Create a notebook and place it at the end of its nexus."""
    notebook = Notebook(nexus_id=nexus_id, name=name, owner_id=owner_id)
    session.add(notebook)
    session.flush()
    append_content_item(
        session,
        locus_id=str(nexus_id),
        locus_type=LocusType.nexus,
        content_type=ContentType.notebook,
        content_id=str(notebook.id),
        owner_id=owner_id,
    )
    session.commit()
    return notebook.id


def create_test_notebook_for(session: Session, viewer: Viewer) -> tuple[UUID, UUID]:
    """Create a nexus with one notebook for a signed-in viewer.

    Returns (nexus_id, notebook_id).
    """
    nexus_id = create_test_nexus(session, viewer.subject)
    return nexus_id, create_test_notebook(session, nexus_id, viewer.subject)


# =============================================================================
# Content
# =============================================================================


def create_test_chunk(
    session: Session,
    notebook_id: UUID,
    owner_id: str | None,
    text: str = "Test chunk",
    placed: bool = True,
) -> UUID:
    """Create a chunk, appended to its notebook unless placed=False."""
    chunk = Chunk(notebook_id=notebook_id, original_text=text, owner_id=owner_id)
    session.add(chunk)
    session.flush()
    if placed:
        append_content_item(
            session,
            locus_id=str(notebook_id),
            locus_type=LocusType.notebook,
            content_type=ContentType.chunk,
            content_id=str(chunk.id),
            owner_id=owner_id,
        )
    session.commit()
    return chunk.id


def create_test_conversation(
    session: Session,
    owner_id: str | None,
    notebook_id: UUID | None = None,
    created_at: int | None = None,
) -> UUID:
    conversation = Conversation(owner_id=owner_id, notebook_id=notebook_id, title="Chat")
    if created_at is not None:
        conversation.created_at = created_at
        conversation.updated_at = created_at
    session.add(conversation)
    session.commit()
    return conversation.id


def create_test_prompt_template(
    session: Session,
    owner_id: str | None,
    name: str = "Summarize",
    is_active: bool = True,
    usage_count: int = 0,
    created_at: int | None = None,
) -> UUID:
    """Create a prompt template. owner_id=None makes it a system template."""
    template = PromptTemplate(
        name=name,
        template_content="Summarize [TOPIC]",
        is_system_defined=owner_id is None,
        is_active=is_active,
        usage_count=usage_count,
        owner_id=owner_id,
    )
    if created_at is not None:
        template.created_at = created_at
        template.updated_at = created_at
    session.add(template)
    session.commit()
    return template.id
