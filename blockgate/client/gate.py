"""Gate View - what the user sees instead of the app while blocked.

render() is pure: it reads block_info / cached_user from the Controller and
returns text. sign_out() is the one consequential action:

  1. best-effort server logout - ANY failure is logged and ignored
  2. controller.clear()
  3. navigate to the login route - always, even if step 1 failed, so a user
     can never be stuck on the gate
"""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import quote

from blockgate.client.controller import BlockedStateController
from blockgate.constants import (
    APPEAL_SUBJECT,
    GATE_FALLBACK_REASON,
    LOGIN_ROUTE,
    SUPPORT_EMAIL,
    SUPPORT_PHONE,
)
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)

LogoutCall = Callable[[], Awaitable[None]]


class Navigator(Protocol):
    def navigate(self, route: str) -> None:
        ...


class HistoryNavigator:
    """Records navigations; ``current`` is the last route visited."""

    def __init__(self, start: str = "/") -> None:
        self.history: list[str] = [start]

    @property
    def current(self) -> str:
        return self.history[-1]

    def navigate(self, route: str) -> None:
        logger.debug("Navigating", route=route)
        self.history.append(route)


def format_blocked_at(value: Optional[datetime]) -> str:
    """``March 5, 2025, 02:30 PM`` style; ``Unknown`` when absent."""
    if value is None:
        return "Unknown"
    return f"{value:%B} {value.day}, {value.year}, {value:%I:%M %p}"


class GateView:
    """Full-screen replacement for the application while the account is blocked."""

    def __init__(
        self,
        controller: BlockedStateController,
        logout: LogoutCall,
        navigator: Navigator,
    ) -> None:
        self._controller = controller
        self._logout = logout
        self._navigator = navigator

    def should_render(self) -> bool:
        """True whenever the session is blocked; the gate preempts every route."""
        return self._controller.is_blocked

    def render(self) -> str:
        info = self._controller.block_info
        user = self._controller.cached_user

        lines = [
            "Account Suspended",
            "Your account has been temporarily suspended by the admin.",
            "",
            "Suspension Details",
            f"  Reason: {info.reason if info and info.reason else GATE_FALLBACK_REASON}",
        ]
        if info is not None and info.blocked_at is not None:
            lines.append(f"  Suspended on: {format_blocked_at(info.blocked_at)}")

        lines += [
            "",
            "Need Help? Contact Admin",
            "  If you believe this suspension is in error or if you'd like to appeal",
            "  this decision, please contact our admin team:",
            f"  Email: {SUPPORT_EMAIL}",
            f"  Phone: {SUPPORT_PHONE}",
        ]

        if user is not None:
            lines += [
                "",
                "Account Information",
                f"  Name: {user.name}",
                f"  Email: {user.email}",
                f"  Role: {user.role.capitalize()}",
                f"  Account ID: {user.id}",
            ]

        lines += [
            "",
            "If unblocked by an admin, your access will be restored automatically.",
        ]
        return "\n".join(lines)

    def appeal_link(self) -> str:
        """``mailto:`` link for the contact/appeal action."""
        user = self._controller.cached_user
        body = (
            "Hello, I would like to appeal my account suspension.\n\n"
            f"Account ID: {user.id if user else ''}\n"
            f"Name: {user.name if user else ''}\n"
            f"Email: {user.email if user else ''}\n\n"
            "Please review my case."
        )
        return f"mailto:{SUPPORT_EMAIL}?subject={quote(APPEAL_SUBJECT)}&body={quote(body)}"

    async def sign_out(self) -> None:
        try:
            await self._logout()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Server logout failed - signing out locally", error=str(exc))
        try:
            self._controller.clear()
        finally:
            self._navigator.navigate(LOGIN_ROUTE)
        logger.info("Signed out from gate view")
