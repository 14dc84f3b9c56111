"""Session authentication and the blocked-account guard for the status service.

Dependency chain (FastAPI Depends):

    authenticate_request  → UserRecord        401 if no/invalid session
    require_active_user   → UserRecord        403 blocked response if blocked (non-admin)
    require_admin         → UserRecord        403 if role != admin

Token extraction precedence:
  1. ``token`` cookie                     (what the web frontend sends)
  2. ``Authorization: Bearer wz-<ulid>``  (API clients, blockgate client)

Only ``wz-`` bearer tokens are consumed; anything else is treated as missing.

Admins are never gated by require_active_user, matching the client policy that
admins are exempt from the blocked-account flow.
"""

from __future__ import annotations

import re
from typing import Optional

from fastapi import Depends, HTTPException, Request

from blockgate.constants import ROLE_ADMIN, SESSION_COOKIE_NAME
from blockgate.server.users import UserRecord, UserStore
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)

_BEARER_WZ_RE = re.compile(r"^Bearer\s+(wz-\S+)", re.IGNORECASE)


class AccountBlocked(Exception):
    """Raised by require_active_user; rendered by the app's exception handler
    as the HTTP 403 blocked-account response."""

    def __init__(self, user: UserRecord) -> None:
        super().__init__(f"Account {user.id} is blocked")
        self.user = user


def extract_session_token(request: Request) -> Optional[str]:
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if cookie:
        return cookie
    authorization = request.headers.get("Authorization", "")
    if not authorization:
        return None
    match = _BEARER_WZ_RE.match(authorization.strip())
    return match.group(1) if match else None


def get_user_store(request: Request) -> UserStore:
    store = getattr(request.app.state, "user_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="User store not initialised")
    return store


async def authenticate_request(request: Request) -> UserRecord:
    """FastAPI dependency: resolve the session token to a user.

    Raises:
        HTTPException(401): Missing, invalid or revoked token, or the token's
                            user no longer exists.
    """
    token = extract_session_token(request)
    if not token:
        logger.warning("Authentication failed: no session token", path=str(request.url.path))
        raise HTTPException(status_code=401, detail="Not authenticated")

    store = get_user_store(request)
    user_id = await store.resolve_session(token)
    user = await store.get_user(user_id) if user_id else None
    if user is None:
        logger.warning("Authentication failed: invalid session", path=str(request.url.path))
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    request.state.session_token = token
    return user


async def require_active_user(user: UserRecord = Depends(authenticate_request)) -> UserRecord:
    """FastAPI dependency: reject blocked non-admin users with the blocked response."""
    if user.is_blocked and user.role != ROLE_ADMIN:
        logger.info("Blocked user rejected", user_id=user.id)
        raise AccountBlocked(user)
    return user


async def require_admin(user: UserRecord = Depends(require_active_user)) -> UserRecord:
    """FastAPI dependency: admin role only."""
    if user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
