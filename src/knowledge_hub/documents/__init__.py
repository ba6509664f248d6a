"""Document lifecycle module for the knowledge hub.

This module provides functionality for:
- The document status state machine (draft, in_review, approved, deprecated)
- Expiry classification for review-by dates
- Status changes, version uploads and metadata edits against the record store
"""

from knowledge_hub.documents.expiry import classify, days_until
from knowledge_hub.documents.lifecycle import DocumentLifecycleService
from knowledge_hub.documents.models import (
    EDITABLE_FIELDS,
    DocumentAction,
    DocumentSnapshot,
    DocumentStatus,
    ExpiryClass,
    Sensitivity,
    VersionSnapshot,
)
from knowledge_hub.documents.transitions import allowed_actions, next_state

__all__ = [
    # Service
    "DocumentLifecycleService",
    # Transition engine
    "allowed_actions",
    "next_state",
    # Expiry policy
    "classify",
    "days_until",
    # Models
    "EDITABLE_FIELDS",
    "DocumentAction",
    "DocumentSnapshot",
    "DocumentStatus",
    "ExpiryClass",
    "Sensitivity",
    "VersionSnapshot",
]
