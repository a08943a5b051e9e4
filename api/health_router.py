"""
Health and Monitoring Router.

Public, unauthenticated endpoints for liveness probes and store diagnostics.

Endpoints Provided:
- `/healthcheck`: lightweight liveness check.
- `/monitoring/ping`: connectivity check.
- `/monitoring/database`: runs a query against the engagement store and
  reports its connection details with credentials masked.
"""

from datetime import datetime, timezone
from typing import Dict, Any
from fastapi import APIRouter, Depends

from core.database import EngagementStore
from core.logging_config import get_logger
from .dependencies import get_store

logger = get_logger(__name__)

SERVICE_NAME = "Video Engagement API"
VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])

monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


@health_router.get("/healthcheck")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint (no authentication required)

    Returns:
        Dict with status, timestamp, and version info
    """
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/ping")
async def ping() -> Dict[str, str]:
    """Simple ping endpoint for connectivity testing"""
    return {
        "message": "pong",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


@monitoring_router.get("/database")
async def database_health(store: EngagementStore = Depends(get_store)) -> Dict[str, Any]:
    """Store connectivity and pool information"""
    health = await store.health_check()
    if health["status"] != "healthy":
        logger.warning(f"Store health check failed: {health.get('error')}")
    return {**health, "info": store.info()}
