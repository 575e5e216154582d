"""Health check API endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from imagefile.core.config import settings
from imagefile.core.logging_config import get_logger
from imagefile.db.models import ImageFile
from imagefile.db.session import get_session


logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/")
async def health_check():
    """Basic health check endpoint.

    Use for load balancer liveness checks.
    """
    return {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/ready")
async def readiness_check(session: AsyncSession = Depends(get_session)):
    """Readiness check: the database must answer a trivial query.

    Returns:
        dict: Readiness with stored image count, or 503 when the database is down
    """
    try:
        await session.execute(text("SELECT 1"))
        image_count = await session.scalar(select(func.count(ImageFile.id)))
    except Exception as exc:
        logger.error(
            "readiness_check_failed",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "database": "unreachable"},
        )

    return {
        "status": "ready",
        "database": "ok",
        "images_stored": image_count,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
