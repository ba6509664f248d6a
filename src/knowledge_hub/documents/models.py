"""Data models and enums for the document lifecycle."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from knowledge_hub.exceptions import InvalidFieldError

if TYPE_CHECKING:
    from knowledge_hub.db.models import Document, DocumentVersion


class DocumentStatus(str, Enum):
    """Document approval status."""

    DRAFT = "draft"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    DEPRECATED = "deprecated"


class DocumentAction(str, Enum):
    """Actions that move a document between statuses."""

    SUBMIT = "submit"
    APPROVE = "approve"
    DEPRECATE = "deprecate"


class Sensitivity(str, Enum):
    """Document sensitivity levels."""

    PUBLIC = "public"
    INTERNAL = "internal"
    RESTRICTED = "restricted"


class ExpiryClass(str, Enum):
    """How urgently a document's expiry should be surfaced."""

    NONE = "none"  # Expires later than the upcoming window, not surfaced
    EXPIRED = "expired"
    URGENT = "urgent"
    UPCOMING = "upcoming"
    NOT_APPLICABLE = "not_applicable"  # No expiry set


# Fields that edit_metadata may change. Everything else (status, versioning,
# review stamp, creator/audit fields) only moves through dedicated operations.
EDITABLE_FIELDS = frozenset(
    {
        "title",
        "department",
        "notes",
        "questions_answered",
        "ai_enabled",
        "sensitivity",
        "expires_at",
    }
)

_NULLABLE_TEXT_FIELDS = {"notes", "questions_answered"}

# Column sizes of the documents table
MAX_TEXT_LENGTHS = {"title": 512, "filename": 512, "department": 64}


def check_length(value: str, field: str) -> str:
    """Reject ``value`` if it does not fit the column backing ``field``."""
    limit = MAX_TEXT_LENGTHS[field]
    if len(value) > limit:
        raise InvalidFieldError(f"{field} must be at most {limit} characters", field=field)
    return value


def validate_metadata_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Check a metadata patch against the whitelist and normalize its values.

    Args:
        patch: Mapping of field name to new value

    Returns:
        Normalized patch, safe to apply attribute by attribute

    Raises:
        InvalidFieldError: If the patch is empty, names a non-editable field,
            or carries a value of the wrong shape. Nothing is applied then.
    """
    if not patch:
        raise InvalidFieldError("Metadata patch is empty")

    forbidden = sorted(set(patch) - EDITABLE_FIELDS)
    if forbidden:
        raise InvalidFieldError(
            f"Fields not editable through metadata edits: {', '.join(forbidden)}",
            field=forbidden[0],
        )

    normalized: dict[str, Any] = {}
    for name, value in patch.items():
        if name == "title":
            if not isinstance(value, str) or not value.strip():
                raise InvalidFieldError("Title must be a non-empty string", field=name)
            normalized[name] = check_length(value.strip(), name)
        elif name == "department":
            if not isinstance(value, str) or not value.strip():
                raise InvalidFieldError("Department must be a non-empty string", field=name)
            normalized[name] = check_length(value.strip(), name)
        elif name in _NULLABLE_TEXT_FIELDS:
            if value is not None and not isinstance(value, str):
                raise InvalidFieldError(f"{name} must be text or null", field=name)
            normalized[name] = value
        elif name == "ai_enabled":
            if not isinstance(value, bool):
                raise InvalidFieldError("ai_enabled must be a boolean", field=name)
            normalized[name] = value
        elif name == "sensitivity":
            normalized[name] = parse_sensitivity(value).value
        elif name == "expires_at":
            if value is not None and not isinstance(value, datetime):
                raise InvalidFieldError("expires_at must be a datetime or null", field=name)
            if value is not None and value.tzinfo is not None:
                raise InvalidFieldError("expires_at must be timezone-naive", field=name)
            normalized[name] = value
    return normalized


def parse_sensitivity(value: Sensitivity | str) -> Sensitivity:
    """Convert a sensitivity label (case-insensitive) to the enum."""
    if isinstance(value, Sensitivity):
        return value
    if isinstance(value, str):
        try:
            return Sensitivity(value.strip().lower())
        except ValueError:
            pass
    raise InvalidFieldError(f"Unknown sensitivity: {value!r}", field="sensitivity")


@dataclass(frozen=True)
class VersionSnapshot:
    """Read-only view of one DocumentVersion."""

    id: str
    document_id: str
    version_number: int
    uploaded_by: str
    created_at: datetime
    notes: str | None = None
    file_path: str | None = None
    file_size: int | None = None

    @classmethod
    def from_record(cls, version: "DocumentVersion") -> "VersionSnapshot":
        return cls(
            id=version.id,
            document_id=version.document_id,
            version_number=version.version_number,
            uploaded_by=version.uploaded_by,
            created_at=version.created_at,
            notes=version.notes,
            file_path=version.file_path,
            file_size=version.file_size,
        )


@dataclass(frozen=True)
class DocumentSnapshot:
    """Read-only view of a Document, detached from any session."""

    id: str
    title: str
    filename: str
    department: str
    sensitivity: Sensitivity
    status: DocumentStatus
    current_version: int
    ai_enabled: bool
    created_by: str
    created_at: datetime
    expires_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    last_reviewed_by: str | None = None
    notes: str | None = None
    questions_answered: str | None = None
    file_path: str | None = None
    file_size: int | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, document: "Document") -> "DocumentSnapshot":
        return cls(
            id=document.id,
            title=document.title,
            filename=document.filename,
            department=document.department,
            sensitivity=Sensitivity(document.sensitivity),
            status=DocumentStatus(document.status),
            current_version=document.current_version,
            ai_enabled=document.ai_enabled,
            created_by=document.created_by,
            created_at=document.created_at,
            expires_at=document.expires_at,
            last_reviewed_at=document.last_reviewed_at,
            last_reviewed_by=document.last_reviewed_by,
            notes=document.notes,
            questions_answered=document.questions_answered,
            file_path=document.file_path,
            file_size=document.file_size,
            updated_by=document.updated_by,
            updated_at=document.updated_at,
        )
