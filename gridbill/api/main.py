"""
FastAPI application entry point for the gridbill API.

Provides the root health endpoint and wires the billing, insights and
health routers. Settings are loaded and validated at startup; METER_TOKENS
are parsed into a BearerAuth instance stored on app.state for route
handlers.

CHANGELOG:
- 2026-10-17: Register insights router (STORY-029)
- 2026-10-16: Register billing router, load ApiSettings at startup (STORY-028)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gridbill.api.billing import router as billing_router
from gridbill.api.health import router as health_router
from gridbill.api.insights import router as insights_router
from gridbill.auth.bearer import BearerAuth, parse_meter_tokens
from gridbill.config import load_settings
from gridbill.db.session import dispose_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup validation and shutdown cleanup.

    Startup:
        - Loads and validates ApiSettings.
        - Builds BearerAuth from METER_TOKENS.

    Shutdown:
        - Disposes the database engine if one was created.
    """
    settings = load_settings()
    app.state.settings = settings

    token_map = parse_meter_tokens(settings.meter_tokens)
    if not token_map:
        raise RuntimeError(
            "METER_TOKENS parsed but contains no valid token:meter_id entries"
        )
    app.state.auth = BearerAuth(token_map)
    logger.info("Parsed %d meter token(s) from METER_TOKENS", len(token_map))

    logger.info("Settings validated, gridbill API ready")
    yield
    await dispose_engine()
    logger.info("gridbill API shutting down")


app = FastAPI(
    title="gridbill API",
    description="Tariff billing and usage insights for three-phase meters.",
    version="0.1.0",
    lifespan=lifespan,
)


# Bearer tokens only, no cookies, so any dashboard origin may call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(health_router)
app.include_router(billing_router)
app.include_router(insights_router)


@app.get("/")
async def root() -> dict:
    """Root health check endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
