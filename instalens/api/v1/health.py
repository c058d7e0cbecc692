"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from instalens.api.v1.scrape import get_dispatcher, get_job_store
from instalens.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health, configured backends and credentials."""
    store = get_job_store()
    dispatcher = get_dispatcher()
    return {
        "status": "healthy",
        "job_store": store.backend if store is not None else None,
        "dispatch_mode": dispatcher.mode if dispatcher is not None else None,
        "apify_configured": bool(settings.apify_token),
        "openai_configured": bool(settings.openai_api_key),
        "openai_model": settings.openai_model,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
