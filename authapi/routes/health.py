"""
Health check routes
"""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from authapi.utils.dependencies import StoreDep
from authapi.utils.errors import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health check"""
    return {
        "success": True,
        "message": "API is running",
        "data": {"timestamp": datetime.now(timezone.utc).isoformat()}
    }


@router.get("/health/database")
async def database_health_check(store: StoreDep):
    """Database connection health check"""
    try:
        healthy = await store.ping()
    except StoreError as e:
        logger.error(f"Database health check failed: {e}")
        healthy = False

    if not healthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "message": "Database connection failed"}
        )

    return {
        "success": True,
        "message": "Database connected",
        "data": {"timestamp": datetime.now(timezone.utc).isoformat()}
    }
