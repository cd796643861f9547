"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fundadmin.core.approval.service import ApprovalService
from fundadmin.db.base import Base
from fundadmin.services.audit import InMemoryAuditSink
from fundadmin.store import InMemoryRequestStore

from tests.factories import FakeClock


@pytest.fixture
def clock():
    """Clock fixed at 2025-03-03 09:00 UTC; call ``advance`` to move it."""
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRequestStore()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def service(store, audit_sink, clock):
    """Approval service over an in-memory store."""
    return ApprovalService(store, audit_sink, clock=clock)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads and sessions."""
    import fundadmin.db.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def client(service):
    """Test client whose approval service is the in-memory ``service`` fixture."""
    from fundadmin.api.deps import get_approval_service
    from fundadmin.api.main import app

    app.dependency_overrides[get_approval_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
