"""Expiry classification for documents with a review-by date."""

import math
from datetime import datetime, timedelta

from knowledge_hub.config import settings
from knowledge_hub.documents.models import ExpiryClass

ONE_DAY = timedelta(days=1)


def days_until(expires_at: datetime, now: datetime) -> int:
    """Whole days until expiry, rounded up.

    A document expiring in 0.1 days yields 1, one that expired 0.1 days ago
    yields 0; both sides use the same ceiling so day boundaries are stable.
    """
    return math.ceil((expires_at - now) / ONE_DAY)


def classify(
    expires_at: datetime | None,
    now: datetime,
    urgent_days: int | None = None,
    upcoming_days: int | None = None,
) -> ExpiryClass:
    """Classify a document's expiry relative to ``now``.

    Args:
        expires_at: Expiry instant (naive), or None when no expiry is set
        now: Reference instant in the same naive instant space
        urgent_days: Upper bound of the urgent window (default from settings)
        upcoming_days: Upper bound of the upcoming window (default from settings)

    Returns:
        ExpiryClass for display and reporting
    """
    if expires_at is None:
        return ExpiryClass.NOT_APPLICABLE

    urgent = settings.EXPIRY_URGENT_DAYS if urgent_days is None else urgent_days
    upcoming = settings.EXPIRY_UPCOMING_DAYS if upcoming_days is None else upcoming_days

    days = days_until(expires_at, now)
    if days <= 0:
        return ExpiryClass.EXPIRED
    if days <= urgent:
        return ExpiryClass.URGENT
    if days <= upcoming:
        return ExpiryClass.UPCOMING
    return ExpiryClass.NONE


def is_surfaced(expiry: ExpiryClass) -> bool:
    """Whether the classification warrants a warning to reviewers."""
    return expiry in (ExpiryClass.EXPIRED, ExpiryClass.URGENT, ExpiryClass.UPCOMING)
