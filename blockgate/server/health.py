"""Health endpoint for the account status service.

  GET /health - 503 {"status": "starting"} until lifespan startup completes,
                then 200 with the user store's health.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness/readiness probe.

    Response body (200):
        {"status": "ok" | "degraded", "user_store": "healthy" | "error"}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "Account status service is starting up."},
        )

    store = getattr(request.app.state, "user_store", None)
    store_ok = store is not None and await store.health_check()
    return {
        "status": "ok" if store_ok else "degraded",
        "user_store": "healthy" if store_ok else "error",
    }
