"""
Health check endpoints
"""

from fastapi import APIRouter, Depends
from datetime import datetime, timezone

from core.config import settings
from services.session_manager import SessionManager, get_session_manager

router = APIRouter()


@router.get("/status")
async def health_status(manager: SessionManager = Depends(get_session_manager)):
    """Get detailed health status"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "version": settings.VERSION,
        "active_sessions": len(manager)
    }


@router.get("/ready")
async def readiness_check(manager: SessionManager = Depends(get_session_manager)):
    """Readiness probe; not ready once the session limit is reached"""
    return {"ready": len(manager) < manager.max_sessions}
