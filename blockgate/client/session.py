"""Client session factory - builds and wires one blocked-state stack.

open_session() is the only place a BlockedStateController is created in
application code, which makes "one Controller per session" explicit:

    async with open_session(config.client) as session:
        if session.gate.should_render():
            print(session.gate.render())

Startup sequence:
  1. MirrorStore over the given store (default: JsonFileKeyValueStore)
  2. StatusAPIClient (shared httpx.AsyncClient)
  3. BlockedStateController (restores state from the Mirror Store)
  4. controller registered as the interceptor's blocked handler
  5. StatusPoller started (immediate verify if restored state is blocked)

Shutdown (reverse): stop poller → unregister handler → close HTTP client.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

import httpx

from blockgate.client.api import StatusAPIClient
from blockgate.client.controller import BlockedStateController
from blockgate.client.gate import GateView, HistoryNavigator, Navigator
from blockgate.client.notifier import LogNotifier, Notifier
from blockgate.client.poller import StatusPoller
from blockgate.client.storage import JsonFileKeyValueStore, KeyValueStore, MirrorStore
from blockgate.config import ClientConfig
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ClientSession:
    """Everything one signed-in client needs; built by open_session()."""

    mirror: MirrorStore
    api: StatusAPIClient
    controller: BlockedStateController
    poller: StatusPoller
    gate: GateView
    navigator: Navigator


@asynccontextmanager
async def open_session(
    config: ClientConfig,
    *,
    store: Optional[KeyValueStore] = None,
    notifier: Optional[Notifier] = None,
    navigator: Optional[Navigator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncGenerator[ClientSession, None]:
    """Open a client session; see module docstring for the wiring order."""
    mirror = MirrorStore(store if store is not None else JsonFileKeyValueStore(config.storage_path))
    api = StatusAPIClient(
        config.api_url,
        mirror,
        timeout_s=config.request_timeout_s,
        transport=transport,
    )
    controller = BlockedStateController(
        mirror,
        notifier if notifier is not None else LogNotifier(),
        status_source=api.check_user_status,
        on_cleared=api.reset_blocked_flag,
    )
    api.set_blocked_handler(controller.handle_blocked)
    poller = StatusPoller(controller, interval_s=config.poll_interval_s)
    nav = navigator if navigator is not None else HistoryNavigator()
    gate = GateView(controller, api.logout, nav)

    session = ClientSession(
        mirror=mirror,
        api=api,
        controller=controller,
        poller=poller,
        gate=gate,
        navigator=nav,
    )

    await poller.start()
    logger.info("Client session opened", api_url=config.api_url, blocked=controller.is_blocked)
    try:
        yield session
    finally:
        await poller.stop()
        api.set_blocked_handler(None)
        try:
            await api.aclose()
        except Exception as exc:  # noqa: BLE001
            logger.warning("HTTP client close error (non-fatal)", error=str(exc))
        logger.info("Client session closed")
