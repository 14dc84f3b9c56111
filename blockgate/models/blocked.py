"""Blocked-account HTTP response builder and detector.

Both sides of the wire contract live here so they cannot drift:

  build_blocked_response():
      HTTP 403 sent by the account status service when a blocked (non-admin)
      user calls a guarded route. MUST include ``X-Account-Blocked: true``.

  is_blocked_signal():
      Used by the client interceptor on EVERY response to decide whether the
      Blocked-State Controller must be told the session is blocked.

Response body:

.. code-block:: json

    {
      "success": false,
      "isBlocked": true,
      "code": "account_blocked",
      "message": "Your account has been blocked by an administrator.",
      "blockReason": "<reason or null>",
      "blockedAt": "<iso8601 or null>"
    }

An ordinary 403 (wrong role, forbidden resource) is NOT a blocked signal:
it carries neither the header nor ``isBlocked``/``code`` in its body.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from fastapi.responses import JSONResponse

from blockgate.constants import (
    BLOCKED_ERROR_CODE,
    BLOCKED_HEADER,
    BLOCKED_STATUS_CODE,
)

BLOCKED_MESSAGE = "Your account has been blocked by an administrator."


def build_blocked_response(
    block_reason: Optional[str],
    blocked_at: Optional[datetime],
) -> JSONResponse:
    """Build the HTTP 403 blocked-account response.

    Args:
        block_reason: Reason recorded by the admin (may be None).
        blocked_at:   When the block was applied (may be None for legacy rows).

    Returns:
        JSONResponse with status_code=403 and ``X-Account-Blocked: true``.
    """
    response = JSONResponse(
        status_code=BLOCKED_STATUS_CODE,
        content={
            "success": False,
            "isBlocked": True,
            "code": BLOCKED_ERROR_CODE,
            "message": BLOCKED_MESSAGE,
            "blockReason": block_reason,
            "blockedAt": blocked_at.isoformat() if blocked_at else None,
        },
    )
    response.headers[BLOCKED_HEADER] = "true"
    return response


def is_blocked_signal(
    status_code: int,
    headers: Mapping[str, str],
    body: Any,
) -> bool:
    """Return True if a response tells the client its account is blocked.

    Only 403 responses qualify. The header is authoritative; the body check
    covers servers (or proxies) that strip custom headers.
    """
    if status_code != BLOCKED_STATUS_CODE:
        return False
    if str(headers.get(BLOCKED_HEADER, "")).lower() == "true":
        return True
    if not isinstance(body, Mapping):
        return False
    return body.get("isBlocked") is True or body.get("code") == BLOCKED_ERROR_CODE
