"""blockgate client package - blocked-account synchronization for one session.

Public API:
  - open_session()           - build + wire one session (ClientSession)
  - BlockedStateController   - handle_blocked() / clear() / verify()
  - StatusPoller             - IDLE/POLLING state machine driving verify()
  - GateView                 - render() / appeal_link() / sign_out()
  - StatusAPIClient          - httpx client with the blocked-account interceptor
  - MirrorStore              - typed view over a KeyValueStore
  - APIError, AccountBlockedError
"""

from __future__ import annotations

from blockgate.client.api import AccountBlockedError, APIError, StatusAPIClient
from blockgate.client.controller import BlockedStateController
from blockgate.client.gate import GateView, HistoryNavigator
from blockgate.client.notifier import LogNotifier, Notification, RecordingNotifier
from blockgate.client.poller import PollerState, StatusPoller
from blockgate.client.session import ClientSession, open_session
from blockgate.client.storage import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    MirrorStore,
)

__all__ = [
    "APIError",
    "AccountBlockedError",
    "BlockedStateController",
    "ClientSession",
    "GateView",
    "HistoryNavigator",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LogNotifier",
    "MemoryKeyValueStore",
    "MirrorStore",
    "Notification",
    "PollerState",
    "RecordingNotifier",
    "StatusAPIClient",
    "StatusPoller",
    "open_session",
]
