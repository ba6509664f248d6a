"""Typed workflow errors surfaced to callers."""


class WorkflowError(Exception):
    """Base exception for document and knowledge-request workflow operations."""

    kind = "workflow_error"
    retryable = False

    def __init__(self, message: str, entity_id: str | None = None):
        self.message = message
        self.entity_id = entity_id
        super().__init__(message)


class NotFoundError(WorkflowError):
    """Referenced entity does not exist."""

    kind = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        super().__init__(f"{entity_type} {entity_id} not found", entity_id)


class InvalidTransitionError(WorkflowError):
    """Status/action pair is not in the legal transition set."""

    kind = "invalid_transition"

    def __init__(self, current: str, action: str, entity_id: str | None = None):
        self.current = current
        self.action = action
        super().__init__(
            f"Cannot apply '{action}' to an entity in status '{current}'",
            entity_id,
        )


class InvalidFieldError(WorkflowError):
    """A metadata patch names a field that may not be edited, or a bad value."""

    kind = "invalid_field"

    def __init__(self, message: str, field: str | None = None, entity_id: str | None = None):
        self.field = field
        super().__init__(message, entity_id)


class InvalidPayloadError(WorkflowError):
    """Resolution payload does not match its kind."""

    kind = "invalid_payload"


class InvalidTargetError(WorkflowError):
    """Resolution target document is missing or not eligible."""

    kind = "invalid_target"


class ConstraintViolationError(WorkflowError):
    """The store rejected a write that no concurrent writer caused.

    Raised for CHECK, foreign key and value-size violations. Retrying the same
    call fails the same way.
    """

    kind = "constraint_violation"


class AlreadyResolvedError(WorkflowError):
    """Knowledge request has already been resolved."""

    kind = "already_resolved"

    def __init__(self, request_id: str):
        super().__init__(f"Knowledge request {request_id} is already resolved", request_id)


class UnavailableError(WorkflowError):
    """Record store or audit sink unreachable or timed out.

    The only kind where retrying the identical call is safe: the unit of work
    was rolled back and left no partial state.
    """

    kind = "unavailable"
    retryable = True


class StaleWriteError(UnavailableError):
    """A concurrent writer committed first and a uniqueness check failed."""

    kind = "unavailable"
