"""Shared fixtures: a fresh SQLite record store per test and the workflow services."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from knowledge_hub.audit import AuditLog
from knowledge_hub.db.database import build_engine, build_session_maker, init_db
from knowledge_hub.db.store import RecordStore
from knowledge_hub.documents.lifecycle import DocumentLifecycleService
from knowledge_hub.documents.models import DocumentAction
from knowledge_hub.knowledge_requests.resolver import KnowledgeRequestResolver

FROZEN_NOW = datetime(2026, 3, 2, 9, 0, 0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def test_users():
    """Provide test user IDs representing different roles."""
    return {
        "author": "U_AUTHOR_001",
        "reviewer": "U_REVIEWER_001",
        "admin": "U_ADMIN_001",
        "employee": "U_EMPLOYEE_001",
    }


@pytest.fixture
def clock():
    return FrozenClock(FROZEN_NOW)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """File-backed SQLite engine with all tables created.

    Each test gets a fresh database for complete isolation. A file is used
    instead of :memory: so concurrent units of work get their own connections.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'knowledge_hub.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(test_db_engine):
    return RecordStore(build_session_maker(test_db_engine), timeout=5.0)


@pytest.fixture
def audit(store):
    return AuditLog(store)


@pytest.fixture
def lifecycle(store, audit, clock):
    return DocumentLifecycleService(store, audit, clock)


@pytest.fixture
def resolver(store, lifecycle, audit, clock):
    return KnowledgeRequestResolver(store, lifecycle, audit, clock)


@pytest_asyncio.fixture
async def draft_document(lifecycle, test_users):
    """A freshly created draft document."""
    return await lifecycle.create_document(
        title="Travel Policy",
        filename="travel_policy.pdf",
        created_by=test_users["author"],
        department="HR",
    )


@pytest_asyncio.fixture
async def approved_document(lifecycle, draft_document, test_users):
    """A document that went through submit and approve."""
    await lifecycle.change_status(draft_document.id, DocumentAction.SUBMIT, test_users["author"])
    return await lifecycle.change_status(
        draft_document.id, DocumentAction.APPROVE, test_users["reviewer"]
    )


@pytest_asyncio.fixture
async def open_request(resolver, test_users):
    """A knowledge request in status new."""
    return await resolver.submit_request(
        test_users["employee"], "How do I book a business trip?", department="HR"
    )
