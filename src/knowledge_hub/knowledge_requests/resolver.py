"""Resolution workflow for employee knowledge requests."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from knowledge_hub.audit import AuditAction, AuditLog
from knowledge_hub.db.models import Document, KnowledgeRequest, new_id, utcnow
from knowledge_hub.db.store import RecordStore, document_key, get_for_update, request_key
from knowledge_hub.documents.lifecycle import DocumentLifecycleService
from knowledge_hub.documents.models import DocumentStatus
from knowledge_hub.exceptions import (
    AlreadyResolvedError,
    InvalidPayloadError,
    InvalidTargetError,
    InvalidTransitionError,
    NotFoundError,
)
from knowledge_hub.knowledge_requests.models import (
    LinkedDocument,
    NewDocument,
    RequestSnapshot,
    RequestStats,
    RequestStatus,
    Resolution,
    ResolutionKind,
    WrittenAnswer,
    build_resolution,
    resolution_columns,
)

logger = logging.getLogger(__name__)


def _describe(resolution: Resolution) -> str:
    if isinstance(resolution, LinkedDocument):
        return f"Resolved knowledge request with linked_document {resolution.document_id}"
    if isinstance(resolution, NewDocument):
        return f"Resolved knowledge request with new_document {resolution.document_id}"
    return "Resolved knowledge request with written_answer"


class KnowledgeRequestResolver:
    """Manages knowledge requests from submission to resolution.

    Handles:
    - Submitting new requests
    - Moving requests into review
    - Resolving requests by link, new document or written answer
    - Listing requests and per-status counts
    """

    def __init__(
        self,
        store: RecordStore,
        documents: DocumentLifecycleService | None = None,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the resolver.

        Args:
            store: Transactional record store
            documents: Lifecycle service used to create documents for the
                new_document path (defaults to one sharing store and audit)
            audit: Audit log (defaults to one over the same store)
            clock: Source of the current naive UTC time
        """
        self.store = store
        self.audit = audit or AuditLog(store)
        self.documents = documents or DocumentLifecycleService(store, self.audit, clock)
        self.clock = clock

    async def submit_request(
        self,
        requested_by: str,
        question: str,
        department: str | None = None,
    ) -> RequestSnapshot:
        """Open a new knowledge request.

        Raises:
            InvalidPayloadError: If the question is blank
        """
        if not isinstance(question, str) or not question.strip():
            raise InvalidPayloadError("Question must not be empty")

        async with self.store.atomic() as session:
            request = KnowledgeRequest(
                id=new_id(),
                requested_by=requested_by,
                question=question.strip(),
                department=department,
                status=RequestStatus.NEW.value,
                created_at=self.clock(),
            )
            session.add(request)
            self.audit.record(
                session,
                actor_id=requested_by,
                action=AuditAction.KNOWLEDGE_REQUEST,
                request_id=request.id,
                details=question.strip()[:200],
            )
            snapshot = RequestSnapshot.from_record(request)

        logger.info(f"Knowledge request {snapshot.id} submitted by {requested_by}")
        return snapshot

    async def mark_in_review(self, request_id: str, reviewer_id: str) -> RequestSnapshot:
        """Move a request from new to in_review.

        Raises:
            NotFoundError: If the request does not exist
            InvalidTransitionError: If the request is not in status new
        """
        async with self.store.atomic(request_key(request_id)) as session:
            request = await self._load_for_update(session, request_id)
            if request.status != RequestStatus.NEW.value:
                logger.warning(
                    f"Rejected mark_in_review on request {request_id} in status {request.status}"
                )
                raise InvalidTransitionError(request.status, "mark_in_review", request_id)

            request.status = RequestStatus.IN_REVIEW.value
            self.audit.record(
                session,
                actor_id=reviewer_id,
                action=AuditAction.REQUEST_IN_REVIEW,
                request_id=request.id,
            )
            snapshot = RequestSnapshot.from_record(request)

        logger.info(f"Knowledge request {request_id} in review by {reviewer_id}")
        return snapshot

    async def resolve(
        self,
        request_id: str,
        resolver_id: str,
        kind: ResolutionKind | str,
        payload: Any,
    ) -> RequestSnapshot:
        """Resolve an open request.

        Args:
            request_id: Knowledge request ID
            resolver_id: Caller resolving the request
            kind: linked_document, new_document or written_answer
            payload: Target document id (linked/new document) or answer text

        Returns:
            Snapshot of the resolved request

        Raises:
            NotFoundError: If the request does not exist
            AlreadyResolvedError: If the request was resolved before
            InvalidPayloadError: If kind is unknown or payload does not fit it
            InvalidTargetError: If a linked document is missing or not
                approved, or a new_document id does not exist
        """
        keys = [request_key(request_id)]
        if kind != ResolutionKind.WRITTEN_ANSWER and isinstance(payload, str) and payload.strip():
            # Hold the target so its status cannot change under the check.
            keys.append(document_key(payload.strip()))

        async with self.store.atomic(*keys) as session:
            request = await self._load_open_request(session, request_id)
            resolution = build_resolution(kind, payload)
            await self._check_target(session, resolution)
            self._apply(session, request, resolver_id, resolution)
            snapshot = RequestSnapshot.from_record(request)

        logger.info(
            f"Knowledge request {request_id} resolved by {resolver_id} "
            f"({resolution.kind.value})"
        )
        return snapshot

    async def resolve_with_new_document(
        self,
        request_id: str,
        resolver_id: str,
        title: str,
        filename: str,
        **document_fields: Any,
    ) -> tuple[RequestSnapshot, str]:
        """Create a draft document and resolve the request with it in one commit.

        Args:
            request_id: Knowledge request ID
            resolver_id: Caller resolving the request (also the document creator)
            title: Title of the new document
            filename: Filename of the uploaded file
            **document_fields: Further create_document keyword arguments

        Returns:
            Tuple of (resolved request snapshot, new document id)
        """
        async with self.store.atomic(request_key(request_id)) as session:
            request = await self._load_open_request(session, request_id)
            if not document_fields.get("department") and request.department:
                document_fields["department"] = request.department
            document = self.documents.add_document(
                session,
                title=title,
                filename=filename,
                created_by=resolver_id,
                **document_fields,
            )
            # The document row must exist before the request references it.
            await session.flush()
            resolution = NewDocument(document_id=document.id)
            self._apply(session, request, resolver_id, resolution)
            snapshot = RequestSnapshot.from_record(request)

        logger.info(
            f"Knowledge request {request_id} resolved by {resolver_id} "
            f"with new document {document.id}"
        )
        return snapshot, document.id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_request(self, request_id: str) -> RequestSnapshot:
        """Get a request snapshot, raising NotFoundError if absent."""
        async with self.store.read() as session:
            request = await session.get(KnowledgeRequest, request_id)
            if request is None:
                raise NotFoundError("KnowledgeRequest", request_id)
            return RequestSnapshot.from_record(request)

    async def list_requests(
        self,
        status: RequestStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RequestSnapshot]:
        """List requests newest first, optionally filtered by status."""
        stmt = select(KnowledgeRequest)
        if status:
            stmt = stmt.where(KnowledgeRequest.status == RequestStatus(status).value)
        stmt = stmt.order_by(KnowledgeRequest.created_at.desc()).limit(limit).offset(offset)

        async with self.store.read() as session:
            result = await session.execute(stmt)
            return [RequestSnapshot.from_record(r) for r in result.scalars().all()]

    async def request_stats(self) -> RequestStats:
        """Count requests per status."""
        stmt = select(KnowledgeRequest.status, func.count(KnowledgeRequest.id)).group_by(
            KnowledgeRequest.status
        )
        async with self.store.read() as session:
            result = await session.execute(stmt)
            counts = {status: count for status, count in result.all()}

        return RequestStats(
            new=counts.get(RequestStatus.NEW.value, 0),
            in_review=counts.get(RequestStatus.IN_REVIEW.value, 0),
            resolved=counts.get(RequestStatus.RESOLVED.value, 0),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_for_update(self, session: AsyncSession, request_id: str) -> KnowledgeRequest:
        request = await get_for_update(session, KnowledgeRequest, request_id)
        if request is None:
            raise NotFoundError("KnowledgeRequest", request_id)
        return request

    async def _load_open_request(
        self, session: AsyncSession, request_id: str
    ) -> KnowledgeRequest:
        request = await self._load_for_update(session, request_id)
        if request.status == RequestStatus.RESOLVED.value:
            logger.warning(f"Rejected second resolution of request {request_id}")
            raise AlreadyResolvedError(request_id)
        return request

    async def _check_target(self, session: AsyncSession, resolution: Resolution) -> None:
        if isinstance(resolution, WrittenAnswer):
            return

        target = await get_for_update(session, Document, resolution.document_id)
        if target is None:
            raise InvalidTargetError(
                f"Document {resolution.document_id} does not exist",
                resolution.document_id,
            )
        if isinstance(resolution, LinkedDocument) and target.status != DocumentStatus.APPROVED.value:
            raise InvalidTargetError(
                f"Only approved documents can be linked "
                f"(document {target.id} is {target.status})",
                target.id,
            )

    def _apply(
        self,
        session: AsyncSession,
        request: KnowledgeRequest,
        resolver_id: str,
        resolution: Resolution,
    ) -> None:
        """Write status, stamp and resolution columns together."""
        request.status = RequestStatus.RESOLVED.value
        request.resolved_by = resolver_id
        request.resolved_at = self.clock()
        for column, value in resolution_columns(resolution).items():
            setattr(request, column, value)

        self.audit.record(
            session,
            actor_id=resolver_id,
            action=AuditAction.RESOLVE_REQUEST,
            request_id=request.id,
            document_id=None if isinstance(resolution, WrittenAnswer) else resolution.document_id,
            details=_describe(resolution),
        )
