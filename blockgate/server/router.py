"""Account status API routes.

Provides:
  GET   /api/users/status                       - am I blocked? (never gated)
  GET   /api/users/profile                      - profile (gated: blocked → 403 blocked response)
  POST  /api/auth/logout                        - revoke session + clear cookie (never gated)
  PATCH /api/admin/users/{user_id}/toggle-block - admin block/unblock

/status and /logout depend on authenticate_request only: a
blocked user must still be able to learn they were unblocked and to sign out.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from blockgate.constants import SESSION_COOKIE_NAME
from blockgate.server.auth import (
    authenticate_request,
    get_user_store,
    require_active_user,
    require_admin,
)
from blockgate.server.limiter import ADMIN_ACTION_RATE_LIMIT, LOGOUT_RATE_LIMIT, limiter
from blockgate.server.users import UserNotFoundError, UserRecord
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["account-status"])


# ─── Request Models ───────────────────────────────────────────────────────────


class ToggleBlockRequest(BaseModel):
    """Request body for PATCH /api/admin/users/{user_id}/toggle-block."""

    reason: Optional[str] = None
    """Shown to the user on the gate. Ignored when the toggle unblocks."""


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.get("/api/users/status")
async def get_status(user: UserRecord = Depends(authenticate_request)) -> dict:
    """Lightweight blocked-status check polled by gated clients.

    Returns:
        JSON: {success, isBlocked, blockReason?, blockedAt?}
    """
    body: dict = {"success": True, "isBlocked": user.is_blocked}
    if user.is_blocked:
        body["blockReason"] = user.block_reason
        body["blockedAt"] = user.blocked_at.isoformat() if user.blocked_at else None
    return body


@router.get("/api/users/profile")
async def get_profile(user: UserRecord = Depends(require_active_user)) -> dict:
    return {"success": True, "data": user.to_public_dict()}


@router.post("/api/auth/logout")
@limiter.limit(LOGOUT_RATE_LIMIT)
async def logout(
    request: Request,
    response: Response,
    user: UserRecord = Depends(authenticate_request),
) -> dict:
    """Revoke the calling session and clear the ``token`` cookie."""
    store = get_user_store(request)
    await store.revoke_session(request.state.session_token)
    response.delete_cookie(SESSION_COOKIE_NAME)
    logger.info("User logged out", user_id=user.id)
    return {"success": True, "message": "Logged out successfully"}


@router.patch("/api/admin/users/{user_id}/toggle-block")
@limiter.limit(ADMIN_ACTION_RATE_LIMIT)
async def toggle_user_block(
    user_id: str,
    request: Request,
    body: Optional[ToggleBlockRequest] = None,
    admin: UserRecord = Depends(require_admin),
) -> dict:
    """Block an active user or unblock a blocked one.

    Raises:
        HTTP 404: No such user.
    """
    store = get_user_store(request)
    reason = body.reason if body is not None else None
    try:
        updated = await store.toggle_block(user_id, reason=reason, admin_id=admin.id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail="User not found") from exc

    action = "blocked" if updated.is_blocked else "unblocked"
    logger.info("Admin toggled user block", admin_id=admin.id, user_id=user_id, action=action)
    return {
        "success": True,
        "message": f"User {action} successfully",
        "data": {
            "userId": updated.id,
            "isBlocked": updated.is_blocked,
            "blockReason": updated.block_reason,
        },
    }
