"""Document lifecycle: status changes, version uploads and metadata edits."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from knowledge_hub.audit import AuditAction, AuditLog
from knowledge_hub.config import settings
from knowledge_hub.db.models import Document, DocumentVersion, new_id, utcnow
from knowledge_hub.db.store import RecordStore, document_key, get_for_update
from knowledge_hub.documents import expiry, transitions
from knowledge_hub.documents.models import (
    DocumentAction,
    DocumentSnapshot,
    DocumentStatus,
    ExpiryClass,
    Sensitivity,
    VersionSnapshot,
    check_length,
    parse_sensitivity,
    validate_metadata_patch,
)
from knowledge_hub.exceptions import (
    InvalidFieldError,
    InvalidTransitionError,
    NotFoundError,
    StaleWriteError,
)

logger = logging.getLogger(__name__)

# Audit vocabulary for each status a transition can enter
_TRANSITION_AUDIT = {
    DocumentStatus.IN_REVIEW: AuditAction.SUBMITTED_FOR_REVIEW,
    DocumentStatus.APPROVED: AuditAction.DOCUMENT_APPROVED,
    DocumentStatus.DEPRECATED: AuditAction.DEPRECATE,
}


def _require_text(value: str | None, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidFieldError(f"{field} must be a non-empty string", field=field)
    return check_length(value.strip(), field)


class DocumentLifecycleService:
    """Orchestrates document status changes and versioning against the record store.

    Handles:
    - Creating documents (draft, version 1)
    - Status transitions through the transition engine, with review stamping
    - Version uploads with gap-free numbering
    - Whitelisted metadata edits
    - Read accessors for display (state, history, expiry, review queue)
    """

    def __init__(
        self,
        store: RecordStore,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the lifecycle service.

        Args:
            store: Transactional record store
            audit: Audit log (defaults to one over the same store)
            clock: Source of the current naive UTC time
        """
        self.store = store
        self.audit = audit or AuditLog(store)
        self.clock = clock

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_document(
        self,
        title: str,
        filename: str,
        created_by: str,
        *,
        department: str | None = None,
        sensitivity: Sensitivity | str = Sensitivity.INTERNAL,
        notes: str | None = None,
        questions_answered: str | None = None,
        expires_at: datetime | None = None,
        ai_enabled: bool = True,
        file_path: str | None = None,
        file_size: int | None = None,
    ) -> DocumentSnapshot:
        """Create a draft document together with its first version.

        Returns:
            Snapshot of the created document

        Raises:
            InvalidFieldError: If title/filename are blank, sensitivity is
                unknown or expires_at carries a timezone
        """
        async with self.store.atomic() as session:
            document = self.add_document(
                session,
                title=title,
                filename=filename,
                created_by=created_by,
                department=department,
                sensitivity=sensitivity,
                notes=notes,
                questions_answered=questions_answered,
                expires_at=expires_at,
                ai_enabled=ai_enabled,
                file_path=file_path,
                file_size=file_size,
            )
            snapshot = DocumentSnapshot.from_record(document)

        logger.info(f"Created document {snapshot.id} ({snapshot.title!r}) by {created_by}")
        return snapshot

    def add_document(
        self,
        session: AsyncSession,
        *,
        title: str,
        filename: str,
        created_by: str,
        department: str | None = None,
        sensitivity: Sensitivity | str = Sensitivity.INTERNAL,
        notes: str | None = None,
        questions_answered: str | None = None,
        expires_at: datetime | None = None,
        ai_enabled: bool = True,
        file_path: str | None = None,
        file_size: int | None = None,
    ) -> Document:
        """Add a new draft document, its version 1 and the upload audit entry
        to an open unit of work. Used directly when document creation is part
        of a larger atomic operation.
        """
        title = _require_text(title, "title")
        filename = _require_text(filename, "filename")
        department = check_length((department or settings.DEFAULT_DEPARTMENT).strip(), "department")
        level = parse_sensitivity(sensitivity)
        if expires_at is not None and expires_at.tzinfo is not None:
            raise InvalidFieldError("expires_at must be timezone-naive", field="expires_at")

        now = self.clock()
        document = Document(
            id=new_id(),
            title=title,
            filename=filename,
            file_path=file_path,
            file_size=file_size,
            notes=notes,
            questions_answered=questions_answered,
            department=department,
            sensitivity=level.value,
            ai_enabled=ai_enabled,
            status=transitions.INITIAL_STATUS.value,
            current_version=1,
            expires_at=expires_at,
            created_by=created_by,
            created_at=now,
        )
        session.add(document)
        session.add(
            DocumentVersion(
                id=new_id(),
                document_id=document.id,
                version_number=1,
                file_path=file_path,
                file_size=file_size,
                uploaded_by=created_by,
                notes="Initial upload",
                created_at=now,
            )
        )
        self.audit.record(
            session,
            actor_id=created_by,
            action=AuditAction.UPLOAD,
            document_id=document.id,
            document_title=title,
            details=f"Uploaded {filename}",
        )
        return document

    async def change_status(
        self,
        document_id: str,
        action: DocumentAction | str,
        actor_id: str,
    ) -> DocumentSnapshot:
        """Apply a lifecycle action to a document.

        Args:
            document_id: Document ID
            action: submit, approve or deprecate
            actor_id: Caller performing the action

        Returns:
            Snapshot with the new status

        Raises:
            NotFoundError: If the document does not exist
            InvalidTransitionError: If the action is not legal from the
                current status
        """
        async with self.store.atomic(document_key(document_id)) as session:
            document = await self._load_for_update(session, document_id)
            current = DocumentStatus(document.status)

            try:
                target = transitions.next_state(current, action)
            except InvalidTransitionError as e:
                logger.warning(
                    f"Rejected '{e.action}' on document {document_id} in status {current.value}"
                )
                raise InvalidTransitionError(e.current, e.action, document_id) from None

            now = self.clock()
            document.status = target.value
            document.updated_by = actor_id
            document.updated_at = now
            if transitions.stamps_review(target):
                document.last_reviewed_at = now
                document.last_reviewed_by = actor_id

            self.audit.record(
                session,
                actor_id=actor_id,
                action=_TRANSITION_AUDIT[target],
                document_id=document.id,
                document_title=document.title,
                details=f"{current.value} -> {target.value}",
            )
            snapshot = DocumentSnapshot.from_record(document)

        logger.info(
            f"Document {document_id} moved {current.value} -> {target.value} by {actor_id}"
        )
        return snapshot

    @retry(
        stop=stop_after_attempt(settings.STORE_CONFLICT_RETRIES),
        wait=wait_exponential(multiplier=0.05, max=1),
        retry=retry_if_exception_type(StaleWriteError),
        reraise=True,
    )
    async def upload_version(
        self,
        document_id: str,
        uploader_id: str,
        notes: str | None = None,
        file_path: str | None = None,
        file_size: int | None = None,
    ) -> DocumentSnapshot:
        """Record a new version of a document.

        The new version number is always current_version + 1 and the counter
        moves in the same commit. Status is left untouched.

        Returns:
            Snapshot with the bumped current_version

        Raises:
            NotFoundError: If the document does not exist
            UnavailableError: If the store is unreachable, or a cross-process
                writer keeps winning the numbering race
        """
        async with self.store.atomic(document_key(document_id)) as session:
            document = await self._load_for_update(session, document_id)

            number = document.current_version + 1
            now = self.clock()
            session.add(
                DocumentVersion(
                    id=new_id(),
                    document_id=document.id,
                    version_number=number,
                    file_path=file_path,
                    file_size=file_size,
                    uploaded_by=uploader_id,
                    notes=notes,
                    created_at=now,
                )
            )
            document.current_version = number
            if file_path is not None:
                document.file_path = file_path
            if file_size is not None:
                document.file_size = file_size
            document.updated_by = uploader_id
            document.updated_at = now

            self.audit.record(
                session,
                actor_id=uploader_id,
                action=AuditAction.VERSION_UPDATE,
                document_id=document.id,
                document_title=document.title,
                details=f"Uploaded version {number}" + (f": {notes}" if notes else ""),
            )
            snapshot = DocumentSnapshot.from_record(document)

        logger.info(f"Document {document_id} now at version {number} (uploaded by {uploader_id})")
        return snapshot

    async def edit_metadata(
        self,
        document_id: str,
        patch: dict[str, Any],
        actor_id: str,
    ) -> DocumentSnapshot:
        """Apply whitelisted metadata changes to a document.

        Args:
            document_id: Document ID
            patch: Field name -> new value; see EDITABLE_FIELDS
            actor_id: Caller making the edit

        Returns:
            Updated snapshot

        Raises:
            InvalidFieldError: If any field is not editable or any value is
                malformed; the document is left unchanged
            NotFoundError: If the document does not exist
        """
        changes = validate_metadata_patch(patch)

        async with self.store.atomic(document_key(document_id)) as session:
            document = await self._load_for_update(session, document_id)

            changed = sorted(
                name for name, value in changes.items() if getattr(document, name) != value
            )
            for name, value in changes.items():
                setattr(document, name, value)
            document.updated_by = actor_id
            document.updated_at = self.clock()

            self.audit.record(
                session,
                actor_id=actor_id,
                action=AuditAction.METADATA_UPDATE,
                document_id=document.id,
                document_title=document.title,
                details=f"Changed: {', '.join(changed) or 'nothing'}",
            )
            snapshot = DocumentSnapshot.from_record(document)

        logger.info(f"Document {document_id} metadata edited by {actor_id}: {changed}")
        return snapshot

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> DocumentSnapshot:
        """Get a document snapshot, raising NotFoundError if absent."""
        async with self.store.read() as session:
            document = await session.get(Document, document_id)
            if document is None:
                raise NotFoundError("Document", document_id)
            return DocumentSnapshot.from_record(document)

    async def list_versions(self, document_id: str) -> list[VersionSnapshot]:
        """Version history of a document, oldest first."""
        async with self.store.read() as session:
            if await session.get(Document, document_id) is None:
                raise NotFoundError("Document", document_id)
            result = await session.execute(
                select(DocumentVersion)
                .where(DocumentVersion.document_id == document_id)
                .order_by(DocumentVersion.version_number)
            )
            return [VersionSnapshot.from_record(v) for v in result.scalars().all()]

    async def get_expiry(self, document_id: str, now: datetime | None = None) -> ExpiryClass:
        """Expiry classification of a document for display."""
        document = await self.get_document(document_id)
        return expiry.classify(document.expires_at, now or self.clock())

    async def allowed_actions(self, document_id: str) -> list[DocumentAction]:
        """Actions that are currently legal for a document."""
        document = await self.get_document(document_id)
        return transitions.allowed_actions(document.status)

    async def list_documents(
        self,
        status: DocumentStatus | str | None = None,
        department: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DocumentSnapshot]:
        """List documents, newest first, with optional filtering."""
        stmt = select(Document)
        if status:
            stmt = stmt.where(Document.status == DocumentStatus(status).value)
        if department:
            stmt = stmt.where(Document.department == department)
        stmt = stmt.order_by(Document.created_at.desc()).limit(limit).offset(offset)

        async with self.store.read() as session:
            result = await session.execute(stmt)
            return [DocumentSnapshot.from_record(d) for d in result.scalars().all()]

    async def review_queue(self, limit: int = 100) -> list[DocumentSnapshot]:
        """Documents waiting for a reviewer (draft or in_review), oldest first."""
        stmt = (
            select(Document)
            .where(
                Document.status.in_(
                    [DocumentStatus.DRAFT.value, DocumentStatus.IN_REVIEW.value]
                )
            )
            .order_by(Document.created_at)
            .limit(limit)
        )
        async with self.store.read() as session:
            result = await session.execute(stmt)
            return [DocumentSnapshot.from_record(d) for d in result.scalars().all()]

    async def expiring_documents(
        self,
        now: datetime | None = None,
    ) -> list[tuple[DocumentSnapshot, ExpiryClass]]:
        """Non-deprecated documents whose expiry should be surfaced, soonest first."""
        now = now or self.clock()
        stmt = (
            select(Document)
            .where(
                Document.expires_at.is_not(None),
                Document.status != DocumentStatus.DEPRECATED.value,
            )
            .order_by(Document.expires_at)
        )
        async with self.store.read() as session:
            result = await session.execute(stmt)
            documents = [DocumentSnapshot.from_record(d) for d in result.scalars().all()]

        flagged = []
        for document in documents:
            classification = expiry.classify(document.expires_at, now)
            if expiry.is_surfaced(classification):
                flagged.append((document, classification))
        return flagged

    async def _load_for_update(self, session: AsyncSession, document_id: str) -> Document:
        document = await get_for_update(session, Document, document_id)
        if document is None:
            raise NotFoundError("Document", document_id)
        return document
