"""Knowledge request module: employee questions and how they are resolved."""

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
)
from knowledge_hub.knowledge_requests.resolver import KnowledgeRequestResolver

__all__ = [
    "KnowledgeRequestResolver",
    "LinkedDocument",
    "NewDocument",
    "RequestSnapshot",
    "RequestStats",
    "RequestStatus",
    "Resolution",
    "ResolutionKind",
    "WrittenAnswer",
    "build_resolution",
]
