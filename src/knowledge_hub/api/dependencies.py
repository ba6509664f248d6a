"""FastAPI dependencies: record store, services and caller identity."""

from fastapi import Depends, Header, HTTPException

from knowledge_hub.audit import AuditLog
from knowledge_hub.db.database import async_session_maker
from knowledge_hub.db.store import RecordStore
from knowledge_hub.documents.lifecycle import DocumentLifecycleService
from knowledge_hub.knowledge_requests.resolver import KnowledgeRequestResolver

# One store per process so its per-entity locks are shared by all requests
_store: RecordStore | None = None


def get_store() -> RecordStore:
    global _store
    if _store is None:
        _store = RecordStore(async_session_maker)
    return _store


def get_audit_log(store: RecordStore = Depends(get_store)) -> AuditLog:
    return AuditLog(store)


def get_lifecycle(
    store: RecordStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
) -> DocumentLifecycleService:
    return DocumentLifecycleService(store, audit)


def get_resolver(
    store: RecordStore = Depends(get_store),
    audit: AuditLog = Depends(get_audit_log),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> KnowledgeRequestResolver:
    return KnowledgeRequestResolver(store, lifecycle, audit)


def require_actor(x_actor_id: str | None = Header(default=None)) -> str:
    """Caller identity for mutations.

    Authentication happens upstream; this only insists an actor id was passed.
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return x_actor_id.strip()
