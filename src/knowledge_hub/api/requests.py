"""Knowledge request API endpoints."""

from fastapi import APIRouter, Depends, Query

from knowledge_hub.api.dependencies import get_resolver, require_actor
from knowledge_hub.api.schemas import (
    DocumentCreate,
    KnowledgeRequestCreate,
    KnowledgeRequestResponse,
    NewDocumentResolutionResponse,
    RequestStatsResponse,
    ResolveRequest,
)
from knowledge_hub.knowledge_requests.models import RequestStatus
from knowledge_hub.knowledge_requests.resolver import KnowledgeRequestResolver

router = APIRouter(prefix="/api/v1/requests", tags=["knowledge-requests"])


@router.post("", response_model=KnowledgeRequestResponse, status_code=201)
async def submit_request(
    body: KnowledgeRequestCreate,
    actor_id: str = Depends(require_actor),
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> KnowledgeRequestResponse:
    """Ask for knowledge that is missing from the hub."""
    request = await resolver.submit_request(actor_id, body.question, body.department)
    return KnowledgeRequestResponse.from_snapshot(request)


@router.get("", response_model=list[KnowledgeRequestResponse])
async def list_requests(
    status: RequestStatus | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> list[KnowledgeRequestResponse]:
    """List knowledge requests, newest first."""
    requests = await resolver.list_requests(status=status, limit=limit, offset=offset)
    return [KnowledgeRequestResponse.from_snapshot(r) for r in requests]


@router.get("/stats", response_model=RequestStatsResponse)
async def request_stats(
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> RequestStatsResponse:
    """Request counts per status."""
    return RequestStatsResponse.from_stats(await resolver.request_stats())


@router.get("/{request_id}", response_model=KnowledgeRequestResponse)
async def get_request(
    request_id: str,
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> KnowledgeRequestResponse:
    return KnowledgeRequestResponse.from_snapshot(await resolver.get_request(request_id))


@router.post("/{request_id}/review", response_model=KnowledgeRequestResponse)
async def mark_in_review(
    request_id: str,
    actor_id: str = Depends(require_actor),
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> KnowledgeRequestResponse:
    """Pick up a new request for review."""
    request = await resolver.mark_in_review(request_id, actor_id)
    return KnowledgeRequestResponse.from_snapshot(request)


@router.post("/{request_id}/resolve", response_model=KnowledgeRequestResponse)
async def resolve_request(
    request_id: str,
    body: ResolveRequest,
    actor_id: str = Depends(require_actor),
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> KnowledgeRequestResponse:
    """Resolve a request with a linked document, new document or written answer."""
    request = await resolver.resolve(request_id, actor_id, body.kind, body.payload)
    return KnowledgeRequestResponse.from_snapshot(request)


@router.post(
    "/{request_id}/resolve/new-document",
    response_model=NewDocumentResolutionResponse,
    status_code=201,
)
async def resolve_with_new_document(
    request_id: str,
    body: DocumentCreate,
    actor_id: str = Depends(require_actor),
    resolver: KnowledgeRequestResolver = Depends(get_resolver),
) -> NewDocumentResolutionResponse:
    """Create a draft document answering the request and resolve it in one step."""
    request, document_id = await resolver.resolve_with_new_document(
        request_id,
        actor_id,
        body.title,
        body.filename,
        **body.model_dump(exclude={"title", "filename"}, exclude_unset=True, exclude_none=True),
    )
    return NewDocumentResolutionResponse(
        request=KnowledgeRequestResponse.from_snapshot(request),
        document_id=document_id,
    )
