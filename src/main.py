"""NeuroLink actuator service — FastAPI application entry point.

The only HTTP surface is ``/health``; the actuator link itself runs in the
background from the lifespan hook.

Run locally:
    uvicorn src.main:app --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.actuator.runtime import shutdown_medicine_led, start_medicine_led
from src.config import get_settings
from src.routers import health
from src.services.database import close_pool, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("neurolink")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting NeuroLink actuator service v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    if settings.database_url:
        await init_pool(settings)
    if settings.actuator_enabled:
        start_medicine_led(settings)
    else:
        logger.warning("Actuator link disabled by configuration")
    yield
    await shutdown_medicine_led()
    await close_pool()
    logger.info("NeuroLink actuator service shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="NeuroLink Actuator Service",
        description="Lights the medication box when a scheduled dose comes due.",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    return app


app = create_app()
