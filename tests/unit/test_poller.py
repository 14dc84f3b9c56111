"""Unit tests for the StatusPoller IDLE/POLLING state machine."""

from __future__ import annotations

import asyncio
import json

import pytest

from blockgate.client.controller import BlockedStateController
from blockgate.client.poller import TRANSITIONS, PollerState, StatusPoller
from blockgate.constants import STORAGE_KEY_BLOCKED, STORAGE_KEY_BLOCK_INFO
from blockgate.models.state import PollResult

INTERVAL_S = 0.01

STILL_BLOCKED = PollResult(success=True, is_blocked=True)
UNBLOCKED = PollResult(success=True, is_blocked=False)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(INTERVAL_S / 2)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def make_poller(mirror, notifier, fake_status_source):
    def _make(*results, gate=None):
        source = fake_status_source(*results, gate=gate)
        controller = BlockedStateController(mirror, notifier, status_source=source)
        poller = StatusPoller(controller, interval_s=INTERVAL_S)
        return poller, controller, source

    return _make


def _seed_blocked(kv) -> None:
    kv.set(STORAGE_KEY_BLOCKED, "true")
    kv.set(STORAGE_KEY_BLOCK_INFO, json.dumps({"blockReason": "Spam"}))


class TestTransitions:
    def test_table(self) -> None:
        assert TRANSITIONS == {
            (PollerState.IDLE, True): PollerState.POLLING,
            (PollerState.POLLING, False): PollerState.IDLE,
        }

    def test_rejects_non_positive_interval(self, mirror, notifier, fake_status_source) -> None:
        controller = BlockedStateController(mirror, notifier, status_source=fake_status_source())
        with pytest.raises(ValueError):
            StatusPoller(controller, interval_s=0)


class TestStatusPoller:
    async def test_idle_when_not_blocked(self, make_poller) -> None:
        poller, _, source = make_poller(UNBLOCKED)
        await poller.start()
        await asyncio.sleep(INTERVAL_S * 3)
        assert poller.state is PollerState.IDLE
        assert source.calls == 0
        await poller.stop()

    async def test_restored_blocked_polls_immediately(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        poller, _, source = make_poller(STILL_BLOCKED)
        await poller.start()
        assert poller.state is PollerState.POLLING
        await _wait_for(lambda: source.calls >= 1)
        await poller.stop()

    async def test_polls_repeatedly_while_blocked(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        poller, controller, source = make_poller(STILL_BLOCKED)
        await poller.start()
        await _wait_for(lambda: source.calls >= 3)
        assert controller.is_blocked is True
        assert poller.state is PollerState.POLLING
        await poller.stop()

    async def test_block_transition_starts_polling(self, make_poller) -> None:
        poller, controller, source = make_poller(STILL_BLOCKED)
        await poller.start()
        controller.handle_blocked({"blockReason": "Spam"})
        assert poller.state is PollerState.POLLING
        await _wait_for(lambda: source.calls >= 1)
        await poller.stop()

    async def test_unblock_returns_to_idle(self, kv, make_poller, notifier) -> None:
        _seed_blocked(kv)
        poller, controller, source = make_poller(STILL_BLOCKED, UNBLOCKED)
        await poller.start()
        await _wait_for(lambda: poller.state is PollerState.IDLE)

        assert controller.is_blocked is False
        calls = source.calls
        await asyncio.sleep(INTERVAL_S * 5)
        assert source.calls == calls
        assert len(notifier.of_level("success")) == 1
        await poller.stop()

    async def test_clear_stops_polling(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        poller, controller, _ = make_poller(STILL_BLOCKED)
        await poller.start()
        controller.clear()
        assert poller.state is PollerState.IDLE
        await poller.stop()

    async def test_stop_cancels_task(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        poller, controller, source = make_poller(STILL_BLOCKED)
        await poller.start()
        await _wait_for(lambda: source.calls >= 1)
        await poller.stop()

        assert poller.running is False
        assert poller.state is PollerState.IDLE
        calls = source.calls
        await asyncio.sleep(INTERVAL_S * 5)
        assert source.calls == calls

        # A stopped poller no longer reacts to transitions.
        controller.clear()
        controller.handle_blocked({})
        assert poller.state is PollerState.IDLE

    async def test_unexpected_error_keeps_polling(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        poller, _, source = make_poller(RuntimeError("boom"))
        await poller.start()
        await _wait_for(lambda: source.calls >= 2)
        assert poller.state is PollerState.POLLING
        assert poller.checks_run >= 2
        await poller.stop()

    async def test_start_twice_subscribes_once(self, kv, make_poller) -> None:
        poller, controller, _ = make_poller(STILL_BLOCKED)
        await poller.start()
        await poller.start()
        controller.handle_blocked({})
        controller.clear()
        assert poller.state is PollerState.IDLE
        await poller.stop()


class TestInflightCheck:
    async def test_clear_lets_pending_check_finish(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        gate = asyncio.Event()
        poller, controller, source = make_poller(STILL_BLOCKED, gate=gate)
        await poller.start()
        await _wait_for(lambda: source.calls == 1)

        controller.clear()
        assert poller.state is PollerState.IDLE
        assert poller.checking is True

        gate.set()
        await _wait_for(lambda: not poller.checking)

        assert source.completed == 1
        assert source.cancelled is False
        # The answer predates clear() and is discarded.
        assert controller.is_blocked is False
        assert kv.get(STORAGE_KEY_BLOCKED) is None
        await poller.stop()

    async def test_reblock_joins_pending_check(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        gate = asyncio.Event()
        poller, controller, source = make_poller(STILL_BLOCKED, gate=gate)
        await poller.start()
        await _wait_for(lambda: source.calls == 1)

        controller.clear()
        controller.handle_blocked({"blockReason": "Spam"})
        assert poller.state is PollerState.POLLING
        await asyncio.sleep(INTERVAL_S * 3)
        assert source.calls == 1

        gate.set()
        await _wait_for(lambda: source.calls >= 2)
        assert source.cancelled is False
        assert controller.is_blocked is True
        await poller.stop()

    async def test_stop_waits_for_pending_check(self, kv, make_poller) -> None:
        _seed_blocked(kv)
        gate = asyncio.Event()
        poller, _, source = make_poller(STILL_BLOCKED, gate=gate)
        await poller.start()
        await _wait_for(lambda: source.calls == 1)

        stopping = asyncio.create_task(poller.stop())
        await asyncio.sleep(INTERVAL_S * 2)
        assert not stopping.done()

        gate.set()
        await asyncio.wait_for(stopping, 2.0)
        assert source.completed == 1
        assert source.cancelled is False
        assert poller.checking is False
