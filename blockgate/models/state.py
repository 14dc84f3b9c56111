"""Blocked-state data contracts shared by the client modules.

  - UserSummary - read-only projection of the signed-in user (never authoritative)
  - BlockInfo   - reason + timestamp of a suspension, plus any extra payload fields
  - BlockState  - what the Controller holds and the Mirror Store persists
  - PollResult  - transient outcome of one status check

JSON forms use the camelCase keys of the WasteZero API (``blockReason``,
``blockedAt``, ``isBlocked``, ``_id``) so payloads pass through unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from blockgate.constants import DEFAULT_BLOCK_REASON, ROLE_ADMIN

# Payload keys folded into BlockInfo.reason / blocked_at rather than extra.
_BLOCK_INFO_KEYS = frozenset({"blockReason", "blockedAt"})


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (``Z`` suffix accepted). Invalid → None."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class UserSummary:
    """Display copy of the authenticated user, cached for the Gate View."""

    id: str
    name: str = ""
    email: str = ""
    role: str = ""
    location: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["UserSummary"]:
        """Build from a cached/API user object.

        Anything but a mapping carrying ``_id`` or ``id`` is malformed → None.
        """
        if not isinstance(raw, Mapping):
            return None
        user_id = raw.get("_id") or raw.get("id")
        if not user_id:
            return None
        return cls(
            id=str(user_id),
            name=str(raw.get("name") or ""),
            email=str(raw.get("email") or ""),
            role=str(raw.get("role") or ""),
            location=str(raw.get("location") or ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "location": self.location,
        }


@dataclass(frozen=True)
class BlockInfo:
    """Why and when the account was suspended.

    ``extra`` keeps every other key of the payload that produced it, so the
    Gate View can show whatever the server sent (e.g. ``message``).
    """

    reason: str = DEFAULT_BLOCK_REASON
    blocked_at: Optional[datetime] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        previous: Optional["BlockInfo"] = None,
    ) -> "BlockInfo":
        """Merge a blocked payload onto ``previous`` (payload values win)."""
        extra = dict(previous.extra) if previous else {}
        extra.update({k: v for k, v in payload.items() if k not in _BLOCK_INFO_KEYS})

        reason = payload.get("blockReason") or (previous.reason if previous else None)
        blocked_at = parse_timestamp(payload.get("blockedAt"))
        if blocked_at is None and previous is not None:
            blocked_at = previous.blocked_at

        return cls(
            reason=str(reason) if reason else DEFAULT_BLOCK_REASON,
            blocked_at=blocked_at,
            extra=extra,
        )

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["BlockInfo"]:
        """Restore from the persisted JSON form; anything but a mapping → None."""
        if not isinstance(raw, Mapping):
            return None
        return cls.from_payload(raw)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "blockReason": self.reason,
            "blockedAt": format_timestamp(self.blocked_at),
        }


@dataclass
class BlockState:
    """In-memory blocked state of one client session.

    Invariant: ``toast_shown`` is only True if ``is_blocked`` has been True at
    least once since the last clear.
    """

    is_blocked: bool = False
    block_info: Optional[BlockInfo] = None
    cached_user: Optional[UserSummary] = None
    toast_shown: bool = False


@dataclass(frozen=True)
class PollResult:
    """Outcome of one status check.

    ``is_blocked`` is None when the server answer was inconclusive
    (``success`` False, or no boolean ``isBlocked`` in the body).
    """

    success: bool
    is_blocked: Optional[bool] = None
    block_reason: Optional[str] = None
    blocked_at: Optional[str] = None

    @classmethod
    def failure(cls) -> "PollResult":
        return cls(success=False)

    @classmethod
    def from_body(cls, body: Any) -> "PollResult":
        """Parse ``{success, isBlocked, blockReason?, blockedAt?}``."""
        if not isinstance(body, Mapping):
            return cls.failure()
        is_blocked = body.get("isBlocked")
        return cls(
            success=body.get("success") is True,
            is_blocked=is_blocked if isinstance(is_blocked, bool) else None,
            block_reason=body.get("blockReason"),
            blocked_at=body.get("blockedAt"),
        )

    def as_payload(self) -> dict[str, Any]:
        """Blocked payload suitable for BlockedStateController.handle_blocked()."""
        payload: dict[str, Any] = {"isBlocked": self.is_blocked}
        if self.block_reason:
            payload["blockReason"] = self.block_reason
        if self.blocked_at:
            payload["blockedAt"] = self.blocked_at
        return payload
