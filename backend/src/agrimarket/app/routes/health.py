"""Liveness and readiness probes."""

import logging
import time

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket import __version__
from agrimarket.app.config import get_settings
from agrimarket.app.responses import error_response, success_response
from agrimarket.domain.errors import ErrorCode
from agrimarket.infra.database import check_connection, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_STARTED = time.monotonic()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Service status including a database round-trip."""
    info = {
        "version": __version__,
        "environment": get_settings().environment,
        "uptime": round(time.monotonic() - _STARTED, 3),
    }
    try:
        await check_connection(db)
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        return error_response(
            ErrorCode.INTERNAL_ERROR,
            "Service unhealthy",
            details={**info, "status": "unhealthy", "database": "disconnected"},
        )
    return success_response({**info, "status": "healthy", "database": "connected"})


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_db)):
    try:
        await check_connection(db)
    except Exception as exc:
        logger.error("Readiness check failed: %s", exc)
        return error_response(
            ErrorCode.INTERNAL_ERROR,
            "Service not ready",
            details={"status": "not ready", "database": "disconnected"},
        )
    return success_response({"status": "ready"})


@router.get("/live")
async def liveness():
    return success_response({"status": "alive"})
