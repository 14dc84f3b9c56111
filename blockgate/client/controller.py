"""Blocked-State Controller - single source of truth for whether the gate shows.

One controller exists per client session; it is built by
blockgate.client.session.open_session() and handed to everything that needs
it. There is no module-level instance.

State transitions:
  handle_blocked(payload)  not-blocked → blocked (or refresh while blocked)
  clear()                  any → not-blocked, all persisted keys removed
  verify()                 asks the server and applies one of the above

Every transition bumps ``generation``. verify() records the generation before
its request and discards the answer if a transition happened while the request
was in flight (e.g. the user signed out mid-check), so a stale answer can never
undo a newer local decision.

Listeners registered with subscribe() are called synchronously with the new
``is_blocked`` value whenever it flips; the StatusPoller uses this to start and
stop polling.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from blockgate.client.api import APIError
from blockgate.client.notifier import Notification, Notifier
from blockgate.client.storage import MirrorStore
from blockgate.constants import BLOCKED_TOAST_MESSAGE, UNBLOCKED_TOAST_MESSAGE
from blockgate.models.state import BlockInfo, BlockState, PollResult, UserSummary
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)

StatusSource = Callable[[], Awaitable[PollResult]]
BlockListener = Callable[[bool], None]
UserHint = Union[UserSummary, Mapping[str, Any], None]


class BlockedStateController:
    """Holds the session's BlockState and mirrors it into durable storage.

    Args:
        mirror:        Mirror Store the state is restored from and persisted to.
        notifier:      Receives the suspension / reinstatement notifications.
        status_source: Async callable returning the server's PollResult
                       (normally StatusAPIClient.check_user_status).
        on_cleared:    Called at the end of every clear() - used to re-arm the
                       HTTP interceptor.
    """

    def __init__(
        self,
        mirror: MirrorStore,
        notifier: Notifier,
        status_source: StatusSource,
        on_cleared: Optional[Callable[[], None]] = None,
    ) -> None:
        self._mirror = mirror
        self._notifier = notifier
        self._status_source = status_source
        self._on_cleared = on_cleared
        self._listeners: list[BlockListener] = []
        self._verifying = False
        self._generation = 0
        self._state = mirror.load_state()
        self._restore()

    def _restore(self) -> None:
        """Apply start-up policy to the state read from storage.

        Admins are never gated: a restored blocked state for an admin is
        cleared. A blocked flag without block info is kept as-is; the gate
        renders its fallback text and the first verify() fills in the rest.
        """
        state = self._state
        logger.info(
            "Blocked state restored",
            is_blocked=state.is_blocked,
            has_block_info=state.block_info is not None,
            has_user=state.cached_user is not None,
        )
        if state.cached_user is not None and state.cached_user.is_admin and state.is_blocked:
            logger.info("Admin session restored as blocked - clearing")
            self.clear()

    # ── Read access ───────────────────────────────────────────────────────────

    @property
    def state(self) -> BlockState:
        """A copy of the current state."""
        return replace(self._state)

    @property
    def is_blocked(self) -> bool:
        return self._state.is_blocked

    @property
    def block_info(self) -> Optional[BlockInfo]:
        return self._state.block_info

    @property
    def cached_user(self) -> Optional[UserSummary]:
        return self._state.cached_user

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def verifying(self) -> bool:
        return self._verifying

    # ── Listeners ─────────────────────────────────────────────────────────────

    def subscribe(self, listener: BlockListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, is_blocked: bool) -> None:
        for listener in list(self._listeners):
            listener(is_blocked)

    # ── Transitions ───────────────────────────────────────────────────────────

    def _resolve_user(self, user_hint: UserHint) -> Optional[UserSummary]:
        if isinstance(user_hint, UserSummary):
            return user_hint
        if user_hint is not None:
            return UserSummary.from_dict(user_hint)
        return self._mirror.read_user() or self._state.cached_user

    def handle_blocked(self, payload: Mapping[str, Any], user_hint: UserHint = None) -> None:
        """Enter (or refresh) the blocked state from a blocked payload.

        No-op for admins, whatever the payload says. The persistent suspension
        notification is emitted only on the first call since the last clear().
        """
        user = self._resolve_user(user_hint)
        if user is not None and user.is_admin:
            logger.info("Blocked signal ignored for admin user", user_id=user.id)
            return

        was_blocked = self._state.is_blocked
        info = BlockInfo.from_payload(payload, previous=self._state.block_info)

        self._state.is_blocked = True
        self._state.block_info = info
        self._mirror.write_blocked()
        self._mirror.write_block_info(info)
        if user is not None:
            self._state.cached_user = user
            self._mirror.write_user(user)
        self._generation += 1

        logger.warning(
            "Account blocked",
            reason=info.reason,
            blocked_at=info.blocked_at.isoformat() if info.blocked_at else None,
            user_id=user.id if user else None,
            already_blocked=was_blocked,
        )

        if not self._state.toast_shown:
            self._state.toast_shown = True
            self._mirror.write_toast_shown()
            self._notifier.notify(
                Notification(level="error", message=BLOCKED_TOAST_MESSAGE, persistent=True)
            )

        if not was_blocked:
            self._emit(True)

    def clear(self) -> None:
        """Reset to not-blocked and remove every persisted blocked-state key.

        Idempotent. Also used on logout.
        """
        was_blocked = self._state.is_blocked
        self._state = BlockState()
        self._mirror.clear_block_state()
        self._generation += 1
        if self._on_cleared is not None:
            self._on_cleared()
        logger.info("Blocked state cleared", was_blocked=was_blocked)
        if was_blocked:
            self._emit(False)

    async def verify(self) -> Optional[PollResult]:
        """Re-check the blocked status with the server and reconcile.

        Returns the PollResult, or None when skipped (another verify() in
        flight) or failed (API error - logged, state untouched).
        """
        if self._verifying:
            logger.debug("verify() skipped - a status check is already in flight")
            return None

        self._verifying = True
        generation = self._generation
        try:
            result = await self._status_source()
        except APIError as exc:
            logger.warning("Status verification failed - keeping local state", error=str(exc))
            return None
        finally:
            self._verifying = False

        if generation != self._generation:
            logger.info(
                "Discarding stale status result",
                started_generation=generation,
                current_generation=self._generation,
            )
            return result

        if not result.success:
            logger.info("Status verification inconclusive - keeping local state")
            return result

        if result.is_blocked is False and self._state.is_blocked:
            logger.info("Server reports account unblocked")
            self.clear()
            self._notifier.notify(Notification(level="success", message=UNBLOCKED_TOAST_MESSAGE))
        elif result.is_blocked is True and not self._state.is_blocked:
            logger.info("Server reports account blocked")
            self.handle_blocked(result.as_payload())

        return result
