"""
Shared pytest fixtures for the audit ledger test suite.

- An in-memory SQLite engine (``StaticPool`` so every session shares one
  connection) with the full schema created.
- A ``db_session`` playing the role of the caller's unit of work.
- A FastAPI ``TestClient`` whose ``get_db`` dependency reads the same engine.
"""
import os
import tempfile

# Settings are read once at import time; point them at throwaway locations
# before the application package is imported.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="audit-ledger-logs-"))

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from audit_ledger.database import get_db, init_db
from audit_ledger.main import app
from audit_ledger.models.user import User
from audit_ledger.services.audit_service import AuditService
from tests.factories import at


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database with the ledger schema."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """The caller's unit of work."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(session_factory) -> Generator[TestClient, None, None]:
    """TestClient bound to the test database."""

    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def seeded_ledger(db_session):
    """Committed entries for two tenants plus a small user directory.

    T1: wo-1 created (user-1), wo-1 updated (user-2), po-9 approved (user-1)
    T2: wo-1 created (user-3)
    """
    db_session.add_all([
        User(id="user-1", tenant_id="T1", first_name="Ada", last_name="Lovelace", email="ada@example.com"),
        User(id="user-2", tenant_id="T1", first_name="Grace", last_name="Hopper", email="grace@example.com"),
    ])
    AuditService.write_entry(
        db_session, "T1", "order.created", "work_order",
        entity_id="wo-1", actor_id="user-1", new_state={"status": "draft"},
        metadata={"source": "orders", "entityName": "Widget run"}, timestamp=at(0),
    )
    AuditService.write_entry(
        db_session, "T1", "order.updated", "work_order",
        entity_id="wo-1", actor_id="user-2",
        previous_state={"status": "draft"}, new_state={"status": "released"},
        metadata={"source": "orders"}, timestamp=at(60),
    )
    AuditService.write_entry(
        db_session, "T1", "purchase_order.approved", "purchase_order",
        entity_id="po-9", actor_id="user-1", metadata={"source": "procurement"}, timestamp=at(120),
    )
    AuditService.write_entry(
        db_session, "T2", "order.created", "work_order",
        entity_id="wo-1", actor_id="user-3", timestamp=at(30),
    )
    db_session.commit()
    return db_session
