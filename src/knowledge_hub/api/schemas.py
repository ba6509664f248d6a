"""API request and response schemas."""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from knowledge_hub.audit import AuditEntry
from knowledge_hub.documents.expiry import classify, days_until
from knowledge_hub.documents.models import (
    DocumentAction,
    DocumentSnapshot,
    DocumentStatus,
    ExpiryClass,
    Sensitivity,
)
from knowledge_hub.documents.transitions import allowed_actions
from knowledge_hub.knowledge_requests.models import (
    RequestSnapshot,
    RequestStats,
    RequestStatus,
    ResolutionKind,
)


def _naive_utc(value: datetime | None) -> datetime | None:
    """Store timestamps as naive UTC; convert aware inputs."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


NaiveUtcDatetime = Annotated[datetime | None, AfterValidator(_naive_utc)]


# =============================================================================
# Documents
# =============================================================================


class DocumentCreate(BaseModel):
    """Create document request schema."""

    title: str = Field(..., min_length=1, description="Document title")
    filename: str = Field(..., min_length=1, description="Uploaded file name")
    department: str | None = Field(default=None, description="Owning department")
    sensitivity: Sensitivity = Field(default=Sensitivity.INTERNAL)
    notes: str | None = None
    questions_answered: str | None = Field(
        default=None, description="Questions this document answers"
    )
    expires_at: NaiveUtcDatetime = Field(default=None, description="Review-by date")
    ai_enabled: bool = Field(default=True, description="Allow AI assistants to use it")
    file_path: str | None = None
    file_size: int | None = Field(default=None, ge=0)

    model_config = {"json_schema_extra": {
        "example": {
            "title": "Travel Policy 2026",
            "filename": "travel_policy.pdf",
            "department": "HR",
            "sensitivity": "internal",
            "expires_at": "2026-12-31T00:00:00",
        }
    }}


class StatusChangeRequest(BaseModel):
    """Lifecycle action request schema."""

    action: DocumentAction = Field(..., description="submit, approve or deprecate")


class VersionUploadRequest(BaseModel):
    """New version request schema."""

    notes: str | None = Field(default=None, description="What changed")
    file_path: str | None = None
    file_size: int | None = Field(default=None, ge=0)


class MetadataPatchRequest(BaseModel):
    """Metadata edit request schema. Only the fields sent are changed."""

    title: str | None = None
    department: str | None = None
    notes: str | None = None
    questions_answered: str | None = None
    ai_enabled: bool | None = None
    sensitivity: Sensitivity | None = None
    expires_at: NaiveUtcDatetime = None

    model_config = {"extra": "forbid"}

    def to_patch(self) -> dict:
        return self.model_dump(exclude_unset=True)


class DocumentResponse(BaseModel):
    """Document state for display, with the actions the UI may offer."""

    id: str
    title: str
    filename: str
    status: DocumentStatus
    current_version: int
    department: str
    sensitivity: Sensitivity
    ai_enabled: bool
    notes: str | None = None
    questions_answered: str | None = None
    file_path: str | None = None
    file_size: int | None = None
    expires_at: datetime | None = None
    expiry: ExpiryClass
    days_until_expiry: int | None = None
    allowed_actions: list[DocumentAction]
    last_reviewed_at: datetime | None = None
    last_reviewed_by: str | None = None
    created_by: str
    created_at: datetime
    updated_by: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_snapshot(cls, document: DocumentSnapshot, now: datetime) -> "DocumentResponse":
        return cls(
            id=document.id,
            title=document.title,
            filename=document.filename,
            status=document.status,
            current_version=document.current_version,
            department=document.department,
            sensitivity=document.sensitivity,
            ai_enabled=document.ai_enabled,
            notes=document.notes,
            questions_answered=document.questions_answered,
            file_path=document.file_path,
            file_size=document.file_size,
            expires_at=document.expires_at,
            expiry=classify(document.expires_at, now),
            days_until_expiry=(
                days_until(document.expires_at, now) if document.expires_at else None
            ),
            allowed_actions=allowed_actions(document.status),
            last_reviewed_at=document.last_reviewed_at,
            last_reviewed_by=document.last_reviewed_by,
            created_by=document.created_by,
            created_at=document.created_at,
            updated_by=document.updated_by,
            updated_at=document.updated_at,
        )


class VersionResponse(BaseModel):
    """Single entry of a document's version history."""

    version_number: int
    uploaded_by: str
    created_at: datetime
    notes: str | None = None
    file_path: str | None = None
    file_size: int | None = None

    model_config = {"from_attributes": True}


# =============================================================================
# Knowledge requests
# =============================================================================


class KnowledgeRequestCreate(BaseModel):
    """Submit knowledge request schema."""

    question: str = Field(..., min_length=1, description="What the employee needs to know")
    department: str | None = None


class ResolveRequest(BaseModel):
    """Resolve knowledge request schema.

    ``document_id`` is the payload for linked_document and new_document,
    ``answer`` for written_answer.
    """

    kind: ResolutionKind
    document_id: str | None = None
    answer: str | None = None

    model_config = {"json_schema_extra": {
        "example": {"kind": "written_answer", "answer": "Use the travel portal."}
    }}

    @property
    def payload(self) -> str | None:
        if self.kind is ResolutionKind.WRITTEN_ANSWER:
            return self.answer
        return self.document_id


class KnowledgeRequestResponse(BaseModel):
    """Knowledge request state, including its resolution once resolved."""

    id: str
    requested_by: str
    question: str
    status: RequestStatus
    department: str | None = None
    created_at: datetime
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_kind: ResolutionKind | None = None
    resolution_document_id: str | None = None
    resolution_answer: str | None = None
    new_document_id: str | None = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_snapshot(cls, request: RequestSnapshot) -> "KnowledgeRequestResponse":
        return cls.model_validate(request)


class NewDocumentResolutionResponse(BaseModel):
    """Result of resolving a request by creating a document."""

    request: KnowledgeRequestResponse
    document_id: str


class RequestStatsResponse(BaseModel):
    """Knowledge request counts per status."""

    total: int
    new: int
    in_review: int
    resolved: int

    @classmethod
    def from_stats(cls, stats: RequestStats) -> "RequestStatsResponse":
        return cls(
            total=stats.total,
            new=stats.new,
            in_review=stats.in_review,
            resolved=stats.resolved,
        )


# =============================================================================
# Activity
# =============================================================================


class AuditEntryResponse(BaseModel):
    """Activity log entry."""

    id: int
    actor_id: str
    action: str
    created_at: datetime
    document_id: str | None = None
    document_title: str | None = None
    request_id: str | None = None
    details: str | None = None

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            created_at=entry.created_at,
            document_id=entry.document_id,
            document_title=entry.document_title,
            request_id=entry.request_id,
            details=entry.details,
        )


class ErrorResponse(BaseModel):
    """Body returned for every workflow error."""

    error: str = Field(..., description="Error kind, e.g. invalid_transition")
    detail: str
    retryable: bool = False
    entity_id: str | None = None
