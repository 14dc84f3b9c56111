"""Account status service FastAPI application factory + lifespan.

  - create_app() - testable application factory
  - lifespan     - @asynccontextmanager startup/shutdown sequence
  - app = create_app() - module-level instance for uvicorn

Startup sequence:
  1. load_config()          → app.state.config
  2. UserStore.initialize() → app.state.user_store
  3. app.state.ready = True

Shutdown (reverse): ready = False → close user store.

Every 403 raised for a blocked account goes through one exception handler,
so all gated routes emit the same blocked response (header + body).
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from blockgate.config import Config, load_config
from blockgate.models.blocked import build_blocked_response
from blockgate.server.auth import AccountBlocked
from blockgate.server.health import router as health_router
from blockgate.server.limiter import limiter
from blockgate.server.router import router as account_router
from blockgate.server.users import UserStore
from blockgate.utils.logger import configure_logging_from_env, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = configure_logging_from_env(json_default=True)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the user store, then mark the app ready; reverse on shutdown.

    load_config() raises SystemExit on an invalid config file, and
    UserStore.initialize() raises RuntimeError on a schema version mismatch.
    Either way ready=True is never set.
    """
    logger.info("Account status service starting up...")

    config: Config = load_config()
    app.state.config = config

    user_store = UserStore(db_path=config.server.db_path)
    await user_store.initialize()
    app.state.user_store = user_store

    app.state.ready = True
    logger.info("Account status service ready", host=config.server.host, port=config.server.port)

    yield

    logger.info("Account status service shutting down...")
    app.state.ready = False
    await user_store.close()
    logger.info("Account status service shutdown complete")


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: HTTP 503 until app.state.ready is True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "Account status service is starting up."},
        )


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the account status FastAPI application.

    Tests call this directly and set ``app.state.user_store`` / ``app.state.ready``
    themselves instead of running the lifespan.
    """
    application = FastAPI(
        title="blockgate account status service",
        description="Blocked-account status, profile, logout and admin block toggling",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # 503 from /health and require_ready until startup completes.
    application.state.ready = False

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_middleware(SlowAPIMiddleware)

    application.include_router(health_router)
    application.include_router(account_router, dependencies=[Depends(require_ready)])

    @application.exception_handler(AccountBlocked)
    async def account_blocked_handler(request: Request, exc: AccountBlocked) -> JSONResponse:
        logger.info("Blocked account rejected", user_id=exc.user.id, path=str(request.url.path))
        return build_blocked_response(exc.user.block_reason, exc.user.blocked_at)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
