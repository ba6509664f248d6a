"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knowledge_hub.api.activity import router as activity_router
from knowledge_hub.api.documents import router as documents_router
from knowledge_hub.api.errors import register_exception_handlers
from knowledge_hub.api.health import router as health_router
from knowledge_hub.api.requests import router as requests_router
from knowledge_hub.config import settings

app = FastAPI(
    title=settings.APP_NAME,
    description="Document approval lifecycle and knowledge request resolution",
    version="0.1.0",
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(health_router)
app.include_router(documents_router)
app.include_router(requests_router)
app.include_router(activity_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic application info."""
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }
