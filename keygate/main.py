"""keygate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()                → app.state.config
  2. create_row_store()           → app.state.store   (NullRowStore if unconfigured)
  3. CredentialRegistry.create()  → app.state.registry (empty if hydration fails)
  4. run_registry_refresher()     → background task when refresh_interval_s > 0
  5. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → cancel refresher → close store
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.routing import APIRouter
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from keygate.admin.middleware import ADMIN_PREFIX, AdminLocalhostMiddleware
from keygate.auth.limiter import limiter
from keygate.auth.registry import CredentialRegistry, run_registry_refresher
from keygate.auth.router import router as admin_keys_router
from keygate.config import Config, load_config
from keygate.gate import router as gate_router
from keygate.health import router as health_router
from keygate.store.factory import create_row_store
from keygate.store.protocol import RowStore
from keygate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)

root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "keygate",
        "authorize": "/authorize",
        "health": "/health",
        "admin": ADMIN_PREFIX + "/keys",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("keygate starting up...")

    # ── Step 1: Load configuration (SystemExit on invalid file) ──────────────
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Open the store (RuntimeError on incompatible schema) ─────────
    store: RowStore = await create_row_store(config)
    app.state.store = store

    # ── Step 3: Hydrate the registry (never raises) ──────────────────────────
    registry = await CredentialRegistry.create(store)
    app.state.registry = registry

    # ── Step 4: Optional periodic refresher ──────────────────────────────────
    refresh_task: asyncio.Task[None] | None = None
    if config.registry.refresh_interval_s > 0:
        refresh_task = asyncio.create_task(
            run_registry_refresher(registry, store, config.registry.refresh_interval_s)
        )
    else:
        logger.debug("Registry refresher disabled (refresh_interval_s=0)")

    # ── Step 5: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info("keygate ready", active_keys=len(registry))

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("keygate shutting down...")
    app.state.ready = False

    if refresh_task is not None and not refresh_task.done():
        refresh_task.cancel()
        try:
            await refresh_task
        except asyncio.CancelledError:
            pass

    await store.close()
    logger.info("keygate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the keygate FastAPI application.

    Call this function directly in tests to get an isolated app instance.
    The module-level `app` is created at import time for uvicorn:
        uvicorn keygate.main:app --host 127.0.0.1 --port 8420
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="keygate",
        description="Query-parameter credential gate backed by a durable key registry",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # In Starlette the LAST-added middleware is OUTERMOST (runs first).
    application.add_middleware(AdminLocalhostMiddleware, prefix=ADMIN_PREFIX)
    application.add_middleware(SlowAPIMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(gate_router)
    application.include_router(admin_keys_router, prefix=ADMIN_PREFIX)

    return application


app = create_app()
