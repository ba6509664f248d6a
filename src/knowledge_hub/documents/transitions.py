"""Document status state machine.

draft --submit--> in_review --approve--> approved
  \\                 |                      |
   +----deprecate----+------deprecate-------+--> deprecated (terminal)

Nothing moves back to draft, and an approved document is re-reviewed by
uploading a new version, not by moving it back to in_review.
"""

from knowledge_hub.documents.models import DocumentAction, DocumentStatus
from knowledge_hub.exceptions import InvalidTransitionError

TRANSITIONS: dict[tuple[DocumentStatus, DocumentAction], DocumentStatus] = {
    (DocumentStatus.DRAFT, DocumentAction.SUBMIT): DocumentStatus.IN_REVIEW,
    (DocumentStatus.IN_REVIEW, DocumentAction.APPROVE): DocumentStatus.APPROVED,
    (DocumentStatus.DRAFT, DocumentAction.DEPRECATE): DocumentStatus.DEPRECATED,
    (DocumentStatus.IN_REVIEW, DocumentAction.DEPRECATE): DocumentStatus.DEPRECATED,
    (DocumentStatus.APPROVED, DocumentAction.DEPRECATE): DocumentStatus.DEPRECATED,
}

INITIAL_STATUS = DocumentStatus.DRAFT
TERMINAL_STATUSES = frozenset({DocumentStatus.DEPRECATED})


def _coerce(
    current: DocumentStatus | str,
    action: DocumentAction | str,
) -> tuple[DocumentStatus, DocumentAction]:
    try:
        status = DocumentStatus(current)
        act = DocumentAction(action)
    except ValueError as e:
        raise InvalidTransitionError(
            getattr(current, "value", current), getattr(action, "value", action)
        ) from e
    return status, act


def next_state(
    current: DocumentStatus | str,
    action: DocumentAction | str,
) -> DocumentStatus:
    """Return the status reached by applying ``action`` in ``current``.

    Args:
        current: Current document status
        action: Requested action

    Returns:
        Resulting status

    Raises:
        InvalidTransitionError: If the pair is not a legal transition,
            including unknown status or action values
    """
    status, act = _coerce(current, action)
    try:
        return TRANSITIONS[(status, act)]
    except KeyError:
        raise InvalidTransitionError(status.value, act.value) from None


def allowed_actions(current: DocumentStatus | str) -> list[DocumentAction]:
    """List the actions that are legal from ``current``, in declaration order."""
    status = DocumentStatus(current)
    return [action for action in DocumentAction if (status, action) in TRANSITIONS]


def is_terminal(status: DocumentStatus | str) -> bool:
    return DocumentStatus(status) in TERMINAL_STATUSES


def stamps_review(target: DocumentStatus) -> bool:
    """Whether entering ``target`` stamps last-reviewed metadata."""
    return target is DocumentStatus.APPROVED
