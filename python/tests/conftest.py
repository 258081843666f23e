"""Pytest configuration and fixtures for Nexustech tests.

Test isolation strategy:
- Each test gets its own SQLite database file, created from the ORM metadata
- The app under test resolves the same engine through nexustech.db.engine,
  so rows committed by a test are visible to request handlers and vice versa
- Auth tests use the client fixture with tokens minted by tests.helpers
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

# Settings are read at import time by nexustech.celery; provide test defaults first
os.environ.setdefault("NEXUSTECH_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from nexustech.app import add_request_id_middleware, create_app
from nexustech.config import clear_settings_cache
from nexustech.db import session as session_module
from nexustech.db.engine import get_engine
from nexustech.db.models import Base
from nexustech.db.session import create_session_factory
from tests.helpers import create_test_subject
from tests.support.test_verifier import MockJwtVerifier


def _reset_engine_state() -> None:
    clear_settings_cache()
    get_engine.cache_clear()
    session_module._SessionLocal = None


@pytest.fixture
def engine(tmp_path, monkeypatch) -> Generator[Engine, None, None]:
    """Create a fresh database for one test.

    DATABASE_URL is pointed at a per-test SQLite file so every session
    (test code, request handlers, auth bootstrap) shares one database.
    """
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'nexustech.db'}")
    _reset_engine_state()

    engine = get_engine()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()
    _reset_engine_state()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    """Provide a session on the per-test database.

    Service functions commit through run_in_transaction; factories commit too.
    """
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(engine: Engine) -> FastAPI:
    """App with auth middleware (test verifier) and request-id middleware."""
    app = create_app(token_verifier=MockJwtVerifier())
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a FastAPI test client with auth middleware.

    Use auth_headers() or guest_headers() from tests.helpers for requests.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def public_client(engine: Engine) -> Generator[TestClient, None, None]:
    """Provide a test client without authentication middleware."""
    app = create_app(skip_auth_middleware=True)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def subject() -> str:
    """Random identity-provider subject for a test user."""
    return create_test_subject()


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
