"""Document lifecycle API endpoints."""

from fastapi import APIRouter, Depends, Query

from knowledge_hub.api.dependencies import get_lifecycle, require_actor
from knowledge_hub.api.schemas import (
    DocumentCreate,
    DocumentResponse,
    MetadataPatchRequest,
    StatusChangeRequest,
    VersionResponse,
    VersionUploadRequest,
)
from knowledge_hub.documents.lifecycle import DocumentLifecycleService
from knowledge_hub.documents.models import DocumentStatus

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


@router.post("", response_model=DocumentResponse, status_code=201)
async def create_document(
    body: DocumentCreate,
    actor_id: str = Depends(require_actor),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> DocumentResponse:
    """Create a draft document with its first version."""
    document = await lifecycle.create_document(
        title=body.title,
        filename=body.filename,
        created_by=actor_id,
        department=body.department,
        sensitivity=body.sensitivity,
        notes=body.notes,
        questions_answered=body.questions_answered,
        expires_at=body.expires_at,
        ai_enabled=body.ai_enabled,
        file_path=body.file_path,
        file_size=body.file_size,
    )
    return DocumentResponse.from_snapshot(document, lifecycle.clock())


@router.get("", response_model=list[DocumentResponse])
async def list_documents(
    status: DocumentStatus | None = None,
    department: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> list[DocumentResponse]:
    """List documents, newest first."""
    documents = await lifecycle.list_documents(
        status=status, department=department, limit=limit, offset=offset
    )
    now = lifecycle.clock()
    return [DocumentResponse.from_snapshot(d, now) for d in documents]


@router.get("/review-queue", response_model=list[DocumentResponse])
async def review_queue(
    limit: int = Query(default=100, ge=1, le=500),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> list[DocumentResponse]:
    """Documents waiting for review, oldest first."""
    documents = await lifecycle.review_queue(limit=limit)
    now = lifecycle.clock()
    return [DocumentResponse.from_snapshot(d, now) for d in documents]


@router.get("/expiring", response_model=list[DocumentResponse])
async def expiring_documents(
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> list[DocumentResponse]:
    """Expired, urgent and upcoming documents, soonest first."""
    now = lifecycle.clock()
    flagged = await lifecycle.expiring_documents(now=now)
    return [DocumentResponse.from_snapshot(document, now) for document, _ in flagged]


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> DocumentResponse:
    """Current state of a document."""
    document = await lifecycle.get_document(document_id)
    return DocumentResponse.from_snapshot(document, lifecycle.clock())


@router.patch("/{document_id}", response_model=DocumentResponse)
async def edit_metadata(
    document_id: str,
    body: MetadataPatchRequest,
    actor_id: str = Depends(require_actor),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> DocumentResponse:
    """Edit whitelisted metadata fields."""
    document = await lifecycle.edit_metadata(document_id, body.to_patch(), actor_id)
    return DocumentResponse.from_snapshot(document, lifecycle.clock())


@router.post("/{document_id}/status", response_model=DocumentResponse)
async def change_status(
    document_id: str,
    body: StatusChangeRequest,
    actor_id: str = Depends(require_actor),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> DocumentResponse:
    """Submit, approve or deprecate a document."""
    document = await lifecycle.change_status(document_id, body.action, actor_id)
    return DocumentResponse.from_snapshot(document, lifecycle.clock())


@router.get("/{document_id}/versions", response_model=list[VersionResponse])
async def list_versions(
    document_id: str,
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> list[VersionResponse]:
    """Version history, oldest first."""
    versions = await lifecycle.list_versions(document_id)
    return [VersionResponse.model_validate(v) for v in versions]


@router.post("/{document_id}/versions", response_model=DocumentResponse, status_code=201)
async def upload_version(
    document_id: str,
    body: VersionUploadRequest,
    actor_id: str = Depends(require_actor),
    lifecycle: DocumentLifecycleService = Depends(get_lifecycle),
) -> DocumentResponse:
    """Record a new version of a document."""
    document = await lifecycle.upload_version(
        document_id,
        actor_id,
        notes=body.notes,
        file_path=body.file_path,
        file_size=body.file_size,
    )
    return DocumentResponse.from_snapshot(document, lifecycle.clock())
