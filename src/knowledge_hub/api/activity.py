"""Activity log API endpoint."""

from fastapi import APIRouter, Depends, Query

from knowledge_hub.api.dependencies import get_audit_log
from knowledge_hub.api.schemas import AuditEntryResponse
from knowledge_hub.audit import AuditLog

router = APIRouter(prefix="/api/v1", tags=["activity"])


@router.get("/activity", response_model=list[AuditEntryResponse])
async def list_activity(
    document_id: str | None = None,
    request_id: str | None = None,
    actor_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    audit: AuditLog = Depends(get_audit_log),
) -> list[AuditEntryResponse]:
    """Recent activity, newest first."""
    entries = await audit.list_entries(
        document_id=document_id,
        request_id=request_id,
        actor_id=actor_id,
        limit=limit,
    )
    return [AuditEntryResponse.from_entry(e) for e in entries]
