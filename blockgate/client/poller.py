"""Status Poller - re-checks server truth only while the session is blocked.

Two-state machine driven by the Controller's block transitions:

    IDLE     --blocked-->    POLLING   (one immediate verify, then every interval)
    POLLING  --unblocked-->  IDLE      (timer task cancelled)

Any other (state, event) pair is ignored. The poll loop lives in a single
asyncio.Task whose lifetime equals the POLLING state. Each check runs in its
own task that the loop awaits through asyncio.shield, so cancelling the loop
never cancels a verify() that is already awaiting the server. A stale answer
is discarded by the Controller's generation check. A loop started while an
earlier check is still pending joins that check instead of starting another.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Callable, Optional

from blockgate.client.controller import BlockedStateController
from blockgate.constants import STATUS_POLL_INTERVAL_S
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)


class PollerState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"


# (current state, controller reports blocked?) → next state
TRANSITIONS: dict[tuple[PollerState, bool], PollerState] = {
    (PollerState.IDLE, True): PollerState.POLLING,
    (PollerState.POLLING, False): PollerState.IDLE,
}


class StatusPoller:
    """Drives BlockedStateController.verify() on a fixed cadence while blocked.

    Usage::

        poller = StatusPoller(controller, interval_s=30)
        await poller.start()   # polls immediately if restored state is blocked
        ...
        await poller.stop()    # teardown

    Must be started from inside a running event loop; block transitions that
    arrive through the subscription create the poll task on that loop.
    """

    def __init__(
        self,
        controller: BlockedStateController,
        interval_s: float = STATUS_POLL_INTERVAL_S,
    ) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")
        self._controller = controller
        self._interval_s = interval_s
        self._state = PollerState.IDLE
        self._task: Optional[asyncio.Task[None]] = None
        self._inflight: Optional[asyncio.Task[None]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.checks_run = 0

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> None:
        """Subscribe to block transitions; start polling if already blocked."""
        if self.running:
            return
        self._unsubscribe = self._controller.subscribe(self._on_block_changed)
        logger.debug("Status poller started", interval_s=self._interval_s)
        if self._controller.is_blocked:
            self._on_block_changed(True)

    @property
    def checking(self) -> bool:
        """True while a status check started by the poller is still running."""
        return self._inflight is not None and not self._inflight.done()

    async def stop(self) -> None:
        """Unsubscribe, cancel the poll task and let a running check finish.

        The HTTP client is closed after the poller during session teardown,
        so a pending status request is awaited rather than abandoned.
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task = self._task
        self._enter_idle()
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            await inflight
        logger.debug("Status poller stopped")

    def _on_block_changed(self, is_blocked: bool) -> None:
        next_state = TRANSITIONS.get((self._state, is_blocked))
        if next_state is None:
            return
        logger.info("Status poller transition", previous=self._state.value, next=next_state.value)
        if next_state is PollerState.POLLING:
            self._enter_polling()
        else:
            self._enter_idle()

    def _enter_polling(self) -> None:
        self._state = PollerState.POLLING
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    def _enter_idle(self) -> None:
        self._state = PollerState.IDLE
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _poll_loop(self) -> None:
        while True:
            if self._inflight is None or self._inflight.done():
                self._inflight = asyncio.get_running_loop().create_task(self._check_once())
            # Cancelling the loop must not reach the status request.
            await asyncio.shield(self._inflight)
            await asyncio.sleep(self._interval_s)

    async def _check_once(self) -> None:
        self.checks_run += 1
        try:
            await self._controller.verify()
        except Exception as exc:  # noqa: BLE001
            # Keep polling: the next tick may succeed.
            logger.error(
                "Unexpected error during status poll",
                error=str(exc),
                error_type=type(exc).__name__,
            )
