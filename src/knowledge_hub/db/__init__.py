"""Database module for the knowledge hub."""

from knowledge_hub.db.database import async_session_maker, engine, init_db
from knowledge_hub.db.models import (
    ActivityLog,
    Base,
    Document,
    DocumentVersion,
    KnowledgeRequest,
)
from knowledge_hub.db.store import RecordStore

__all__ = [
    "Base",
    "Document",
    "DocumentVersion",
    "KnowledgeRequest",
    "ActivityLog",
    "RecordStore",
    "engine",
    "async_session_maker",
    "init_db",
]
