"""
Health check endpoint.
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from mindenu.config import APP_VERSION

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "ok": True,
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
    }
