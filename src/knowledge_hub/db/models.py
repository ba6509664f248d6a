"""SQLAlchemy models for the knowledge hub.

ACTIVE MODELS:
- Document, DocumentVersion: governed documents and their append-only history
- KnowledgeRequest: employee questions that existing documents did not answer
- ActivityLog: append-only audit trail written alongside every mutation
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the store's instant space)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Document(Base):
    """A governed knowledge artifact with an approval lifecycle."""

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'in_review', 'approved', 'deprecated')",
            name="ck_documents_status",
        ),
        CheckConstraint("current_version >= 1", name="ck_documents_current_version"),
        CheckConstraint(
            "sensitivity IN ('public', 'internal', 'restricted')",
            name="ck_documents_sensitivity",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    # Content
    title: Mapped[str] = mapped_column(String(512))
    filename: Mapped[str] = mapped_column(String(512))
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    questions_answered: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Governance
    department: Mapped[str] = mapped_column(String(64), default="Other", index=True)
    sensitivity: Mapped[str] = mapped_column(String(32), default="internal")
    ai_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(32), default="draft", index=True)
    current_version: Mapped[int] = mapped_column(Integer, default=1)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    # Review stamp (set only when entering approved)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Creator / update tracking
    created_by: Mapped[str] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    versions: Mapped[list["DocumentVersion"]] = relationship(
        "DocumentVersion",
        back_populates="document",
        order_by="DocumentVersion.version_number",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, title={self.title[:30]}..., status={self.status})>"


class DocumentVersion(Base):
    """Immutable upload record; version_number is unique per document."""

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_version"),
        CheckConstraint("version_number >= 1", name="ck_document_versions_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="RESTRICT"), index=True
    )
    version_number: Mapped[int] = mapped_column(Integer)
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    uploaded_by: Mapped[str] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    document: Mapped["Document"] = relationship(
        "Document", back_populates="versions", lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<DocumentVersion(doc={self.document_id}, v={self.version_number})>"


# Resolution columns are either all unset (open request) or set exactly as the
# resolution kind dictates. Enforced here so no writer can persist a mix.
_RESOLUTION_CONSISTENCY = """
(
    status IN ('new', 'in_review')
    AND resolved_by IS NULL AND resolved_at IS NULL AND resolution_type IS NULL
    AND resolution_document_id IS NULL AND resolution_answer IS NULL
    AND new_document_id IS NULL
)
OR (
    status = 'resolved'
    AND resolved_by IS NOT NULL AND resolved_at IS NOT NULL
    AND (
        (resolution_type = 'linked_document' AND resolution_document_id IS NOT NULL
         AND resolution_answer IS NULL AND new_document_id IS NULL)
        OR (resolution_type = 'new_document' AND new_document_id IS NOT NULL
         AND resolution_document_id IS NULL AND resolution_answer IS NULL)
        OR (resolution_type = 'written_answer' AND resolution_answer IS NOT NULL
         AND resolution_document_id IS NULL AND new_document_id IS NULL)
    )
)
"""


class KnowledgeRequest(Base):
    """An employee question flagged as unanswered by existing documents."""

    __tablename__ = "knowledge_requests"
    __table_args__ = (
        CheckConstraint(_RESOLUTION_CONSISTENCY, name="ck_knowledge_requests_resolution"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    requested_by: Mapped[str] = mapped_column(String(64), index=True)
    question: Mapped[str] = mapped_column(Text)
    department: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="new", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Resolution (written once, together with status = resolved)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    resolution_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    resolution_document_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="RESTRICT"), nullable=True
    )
    resolution_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_document_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="RESTRICT"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<KnowledgeRequest(id={self.id}, status={self.status})>"


class ActivityLog(Base):
    """Append-only audit entry. Never updated or deleted."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), index=True)
    action: Mapped[str] = mapped_column(String(64), index=True)
    document_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    document_title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<ActivityLog(action={self.action}, actor={self.actor_id})>"
