"""Health check endpoints for the knowledge hub API."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text

from knowledge_hub.api.dependencies import get_store
from knowledge_hub.db.store import RecordStore
from knowledge_hub.exceptions import UnavailableError

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check - returns ok if the service is running."""
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    """
    Readiness check - verifies the record store answers queries.
    """
    services: dict[str, str] = {}
    all_ok = True

    try:
        async with store.read() as session:
            await session.execute(text("SELECT 1"))
        services["database"] = "ok"
    except UnavailableError as e:
        services["database"] = f"error: {e.message}"
        all_ok = False

    status = "ready" if all_ok else "degraded"
    return {"status": status, "services": services}
