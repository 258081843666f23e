"""Database session management and transaction helpers.

Provides:
- Request-scoped database sessions via get_db() dependency
- transaction() context manager for simple mutations
- run_in_transaction() unit of work with bounded retry on lock/serialization failures
"""

from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from nexustech.db.engine import get_engine
from nexustech.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3


def create_session_factory(engine: Any = None) -> sessionmaker[Session]:
    """Create a session factory bound to an engine.

    Args:
        engine: SQLAlchemy engine. If None, uses the default engine.
    """
    if engine is None:
        engine = get_engine()

    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# Default session factory - created lazily
_SessionLocal: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the default session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = create_session_factory()
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that provides a database session.

    Usage:
        @app.get("/endpoint")
        def endpoint(db: Session = Depends(get_db)):
            ...
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit on success, roll back and re-raise on exception.

    Usage:
        with transaction(db):
            db.execute(...)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    attempts: int = DEFAULT_ATTEMPTS,
) -> T:
    """Run `work` as one unit of work and commit it.

    Every write made by `work` commits together or not at all. Lock and
    serialization failures (OperationalError) roll back and re-run `work`
    up to `attempts` times; any other exception rolls back and propagates
    unchanged.

    Args:
        db: The session that `work` writes through.
        work: Zero-argument callable performing the writes.
        attempts: Maximum executions of `work`.

    Returns:
        Whatever `work` returns.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except OperationalError as exc:
            db.rollback()
            if attempt >= attempts:
                logger.error("transaction_failed", attempts=attempt, error=str(exc.orig))
                raise
            logger.warning("transaction_retry", attempt=attempt, error=str(exc.orig))
        except Exception:
            db.rollback()
            raise

    raise RuntimeError("run_in_transaction requires attempts >= 1")
