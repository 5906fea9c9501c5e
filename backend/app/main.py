"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity (creating the schema on SQLite,
    where Alembic is not used), start the daily blocklist refresh loop.
  • On shutdown: stop the loop, dispose the engine cleanly.

Routers (all under /api/v1):
  • /check           — disposable email check (API key or website origin)
  • /keys            — key registration + usage lookup
  • /stats, /report  — public counters, community reports
  • /admin/*         — admin-secret protected account management
  • /health          — shallow liveness probe
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.auth.dependencies import ADMIN_SECRET_HEADER
from app.core.config import settings
from app.core.database import Base, engine
from app.core.kv_store import StorageError
from app.models import kv_entry  # noqa: F401  (registers the table on Base)
from app.routers.admin import router as admin_router
from app.routers.check import router as check_router
from app.routers.keys import router as keys_router
from app.routers.stats import router as stats_router
from app.services.domain_list import (
    BlocklistUpdateError,
    blocklist_refresh_loop,
    get_domain_blocklist,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if engine.dialect.name == "sqlite":
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    # Startup — keep the blocklist fresh (first fetch happens lazily)
    refresh_task = asyncio.create_task(
        blocklist_refresh_loop(get_domain_blocklist(), settings.BLOCKLIST_REFRESH_HOURS)
    )
    logger.info(
        "Blocklist refresh loop started (every %d hours)",
        settings.BLOCKLIST_REFRESH_HOURS,
    )

    yield  # ← application runs here

    # Shutdown — stop background work, clean up connection pool
    refresh_task.cancel()
    with suppress(asyncio.CancelledError):
        await refresh_task
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Free API to check if an email address is from a disposable email provider.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key", ADMIN_SECRET_HEADER],
    max_age=86400,
)


# ── Infrastructure failures ─────────────────────────────────
@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"error": "Storage temporarily unavailable", "code": "STORAGE_UNAVAILABLE"}},
    )


@app.exception_handler(BlocklistUpdateError)
async def blocklist_error_handler(request: Request, exc: BlocklistUpdateError) -> JSONResponse:
    logger.error("Blocklist unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"error": "Domain list temporarily unavailable", "code": "BLOCKLIST_UNAVAILABLE"}},
    )


# Mount routers
app.include_router(check_router, prefix=API_PREFIX)
app.include_router(keys_router, prefix=API_PREFIX)
app.include_router(stats_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=f"{API_PREFIX}/admin")


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy"}
