"""
Health check API endpoints.
Provides health status and service information.
"""

import time

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ...core.config import Settings
from ...core.dependencies import get_ledger_client, get_settings
from ...db.mongo import DatabaseDep
from ...services.blockchain_service import LedgerClient
from ...utils.logger import get_logger

logger = get_logger("health")

router = APIRouter(
    prefix="/api",
    tags=["health"],
    responses={
        404: {"description": "Not found"},
        500: {"description": "Internal server error"}
    }
)


@router.get(
    "/health",
    summary="Health Check",
    description="Returns the health status of the SkillBadge Backend service",
    response_description="Service health information"
)
async def health_check(
    db: AsyncIOMotorDatabase = DatabaseDep,
    settings: Settings = Depends(get_settings),
    ledger: LedgerClient = Depends(get_ledger_client)
):
    """
    Health check endpoint that returns service status and basic information.

    Returns:
        Dictionary containing service status, database state and ledger mode
    """
    base = {
        "service": settings.service_name,
        "timestamp": int(time.time()),
        "version": settings.version,
        "ledger": ledger.network_info()
    }
    try:
        await db.command("ping")
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {**base, "status": "error", "database": "disconnected", "error": str(e)}

    return {**base, "status": "ok", "database": "connected"}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Returns readiness status for container health checks",
    response_description="Service readiness information"
)
async def readiness_check(
    db: AsyncIOMotorDatabase = DatabaseDep,
    settings: Settings = Depends(get_settings)
):
    """
    Readiness check endpoint for container orchestration.
    The ledger is not probed: simulation mode is a valid ready state.
    """
    try:
        await db.command("ping")
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return {
            "status": "not_ready",
            "service": settings.service_name,
            "timestamp": int(time.time()),
            "dependencies": {"database": "unhealthy", "api": "healthy"},
            "error": str(e)
        }

    return {
        "status": "ready",
        "service": settings.service_name,
        "timestamp": int(time.time()),
        "dependencies": {"database": "healthy", "api": "healthy"}
    }


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Returns liveness status for container health checks",
    response_description="Service liveness information"
)
async def liveness_check(settings: Settings = Depends(get_settings)):
    return {
        "status": "alive",
        "service": settings.service_name,
        "timestamp": int(time.time())
    }
