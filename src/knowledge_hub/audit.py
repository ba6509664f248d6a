"""Append-only activity log written alongside workflow mutations."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_hub.db.models import ActivityLog
from knowledge_hub.db.store import RecordStore

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Activity log vocabulary shown on the admin activity page."""

    UPLOAD = "Upload"
    VERSION_UPDATE = "Version Update"
    SUBMITTED_FOR_REVIEW = "Submitted For Review"
    DOCUMENT_APPROVED = "Document Approved"
    DEPRECATE = "Deprecate"
    METADATA_UPDATE = "Metadata Update"
    KNOWLEDGE_REQUEST = "Knowledge Request"
    REQUEST_IN_REVIEW = "Request In Review"
    RESOLVE_REQUEST = "Resolve Request"


@dataclass(frozen=True)
class AuditEntry:
    """Read-only view of an ActivityLog row."""

    id: int
    actor_id: str
    action: AuditAction
    created_at: datetime
    document_id: str | None = None
    document_title: str | None = None
    request_id: str | None = None
    details: str | None = None

    @classmethod
    def from_record(cls, row: ActivityLog) -> "AuditEntry":
        return cls(
            id=row.id,
            actor_id=row.actor_id,
            action=AuditAction(row.action),
            created_at=row.created_at,
            document_id=row.document_id,
            document_title=row.document_title,
            request_id=row.request_id,
            details=row.details,
        )


class AuditLog:
    """Writes and reads activity log entries.

    ``record`` only adds the entry to the caller's session, so the entry is
    committed (or rolled back) together with the mutation it describes.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def record(
        self,
        session: AsyncSession,
        *,
        actor_id: str,
        action: AuditAction,
        document_id: str | None = None,
        document_title: str | None = None,
        request_id: str | None = None,
        details: str | None = None,
    ) -> ActivityLog:
        """Append an entry to the current unit of work."""
        entry = ActivityLog(
            actor_id=actor_id,
            action=action.value,
            document_id=document_id,
            document_title=document_title,
            request_id=request_id,
            details=details,
        )
        session.add(entry)
        logger.debug(f"Audit entry queued: {action.value} by {actor_id}")
        return entry

    async def list_entries(
        self,
        document_id: str | None = None,
        request_id: str | None = None,
        actor_id: str | None = None,
        limit: int = 100,
    ) -> list[AuditEntry]:
        """List entries newest first, optionally filtered.

        Args:
            document_id: Only entries about this document
            request_id: Only entries about this knowledge request
            actor_id: Only entries written by this actor
            limit: Maximum entries

        Returns:
            List of AuditEntry
        """
        stmt = select(ActivityLog)
        if document_id:
            stmt = stmt.where(ActivityLog.document_id == document_id)
        if request_id:
            stmt = stmt.where(ActivityLog.request_id == request_id)
        if actor_id:
            stmt = stmt.where(ActivityLog.actor_id == actor_id)
        stmt = stmt.order_by(ActivityLog.id.desc()).limit(limit)

        async with self.store.read() as session:
            result = await session.execute(stmt)
            return [AuditEntry.from_record(row) for row in result.scalars().all()]
