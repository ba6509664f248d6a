"""Data models for knowledge requests and their resolutions."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from knowledge_hub.exceptions import InvalidPayloadError

if TYPE_CHECKING:
    from knowledge_hub.db.models import KnowledgeRequest


class RequestStatus(str, Enum):
    """Knowledge request status. ``resolved`` is terminal."""

    NEW = "new"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


class ResolutionKind(str, Enum):
    """How a knowledge request was closed."""

    LINKED_DOCUMENT = "linked_document"
    NEW_DOCUMENT = "new_document"
    WRITTEN_ANSWER = "written_answer"


@dataclass(frozen=True)
class LinkedDocument:
    """Resolved by pointing at an existing approved document."""

    document_id: str
    kind = ResolutionKind.LINKED_DOCUMENT


@dataclass(frozen=True)
class NewDocument:
    """Resolved by creating a new document."""

    document_id: str
    kind = ResolutionKind.NEW_DOCUMENT


@dataclass(frozen=True)
class WrittenAnswer:
    """Resolved with an authored answer."""

    answer: str
    kind = ResolutionKind.WRITTEN_ANSWER


Resolution = LinkedDocument | NewDocument | WrittenAnswer


def build_resolution(kind: ResolutionKind | str, payload: Any) -> Resolution:
    """Build a resolution value from a kind and its single payload.

    Args:
        kind: Resolution kind (enum or string value)
        payload: Document ID for linked/new document kinds, answer text for
            written answers

    Returns:
        Resolution tagged value

    Raises:
        InvalidPayloadError: If the kind is unknown or the payload is not a
            non-empty string
    """
    try:
        kind = ResolutionKind(kind)
    except ValueError:
        raise InvalidPayloadError(f"Unknown resolution kind: {kind!r}") from None

    if not isinstance(payload, str) or not payload.strip():
        if kind is ResolutionKind.WRITTEN_ANSWER:
            raise InvalidPayloadError("A written answer must not be empty")
        raise InvalidPayloadError(f"{kind.value} requires a document id")

    if kind is ResolutionKind.LINKED_DOCUMENT:
        return LinkedDocument(document_id=payload.strip())
    if kind is ResolutionKind.NEW_DOCUMENT:
        return NewDocument(document_id=payload.strip())
    return WrittenAnswer(answer=payload)


def resolution_columns(resolution: Resolution) -> dict[str, str | None]:
    """Flatten a resolution into the request's storage columns.

    Exactly one payload column is populated; the others are explicitly None.
    """
    columns: dict[str, str | None] = {
        "resolution_type": resolution.kind.value,
        "resolution_document_id": None,
        "new_document_id": None,
        "resolution_answer": None,
    }
    if isinstance(resolution, LinkedDocument):
        columns["resolution_document_id"] = resolution.document_id
    elif isinstance(resolution, NewDocument):
        columns["new_document_id"] = resolution.document_id
    else:
        columns["resolution_answer"] = resolution.answer
    return columns


def resolution_from_record(request: "KnowledgeRequest") -> Resolution | None:
    """Rebuild the tagged resolution from stored columns (None while open)."""
    if request.resolution_type is None:
        return None
    kind = ResolutionKind(request.resolution_type)
    if kind is ResolutionKind.LINKED_DOCUMENT:
        return LinkedDocument(document_id=request.resolution_document_id)
    if kind is ResolutionKind.NEW_DOCUMENT:
        return NewDocument(document_id=request.new_document_id)
    return WrittenAnswer(answer=request.resolution_answer)


@dataclass(frozen=True)
class RequestSnapshot:
    """Read-only view of a KnowledgeRequest."""

    id: str
    requested_by: str
    question: str
    status: RequestStatus
    created_at: datetime
    department: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution: Resolution | None = None

    @property
    def resolution_kind(self) -> ResolutionKind | None:
        return self.resolution.kind if self.resolution else None

    @property
    def resolution_document_id(self) -> str | None:
        """Linked document id; set only for linked_document resolutions."""
        if isinstance(self.resolution, LinkedDocument):
            return self.resolution.document_id
        return None

    @property
    def resolution_answer(self) -> str | None:
        """Authored answer; set only for written_answer resolutions."""
        if isinstance(self.resolution, WrittenAnswer):
            return self.resolution.answer
        return None

    @property
    def new_document_id(self) -> str | None:
        """Id of the document created to answer the request, if any."""
        if isinstance(self.resolution, NewDocument):
            return self.resolution.document_id
        return None

    @classmethod
    def from_record(cls, request: "KnowledgeRequest") -> "RequestSnapshot":
        return cls(
            id=request.id,
            requested_by=request.requested_by,
            question=request.question,
            status=RequestStatus(request.status),
            created_at=request.created_at,
            department=request.department,
            resolved_by=request.resolved_by,
            resolved_at=request.resolved_at,
            resolution=resolution_from_record(request),
        )


@dataclass(frozen=True)
class RequestStats:
    """Counts of knowledge requests per status."""

    new: int = 0
    in_review: int = 0
    resolved: int = 0

    @property
    def total(self) -> int:
        return self.new + self.in_review + self.resolved
