"""Mapping of workflow errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from knowledge_hub.api.schemas import ErrorResponse
from knowledge_hub.exceptions import WorkflowError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[str, int] = {
    "not_found": 404,
    "invalid_transition": 409,
    "already_resolved": 409,
    "invalid_field": 422,
    "invalid_payload": 422,
    "invalid_target": 422,
    "constraint_violation": 422,
    "unavailable": 503,
}


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """Render a WorkflowError as a typed JSON body."""
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    body = ErrorResponse(
        error=exc.kind,
        detail=exc.message,
        retryable=exc.retryable,
        entity_id=exc.entity_id,
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(WorkflowError, workflow_error_handler)
