"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from src.actuator.runtime import get_runtime
from src.config import get_settings
from src.services.database import fetchval, pool_ready

router = APIRouter(tags=["system"])
logger = logging.getLogger("neurolink.health")


@router.get("/health")
async def health_check() -> dict:
    """Liveness probe. Returns 200 if the process is up.

    Reports "degraded" when the database is unreachable or the device link is
    not connected; the link keeps retrying on its own either way.
    """
    settings = get_settings()

    if not pool_ready():
        database = "not_configured"
    else:
        database = "unreachable"
        try:
            await fetchval("SELECT 1")
            database = "connected"
        except Exception as exc:
            logger.warning("Health check DB probe failed: %s", exc)

    runtime = get_runtime()
    actuator = runtime.status() if runtime else None
    device_ok = bool(actuator and actuator["device"]["state"] == "connected")

    return {
        "status": "healthy" if device_ok and database != "unreachable" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": database,
        "actuator": actuator,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
