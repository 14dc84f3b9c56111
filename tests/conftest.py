"""Root test configuration for blockgate.

  - bcrypt cost lowered to 4 rounds (session hashing dominates test time otherwise)
  - rate limiter storage reset between tests
  - config search isolated from the developer's ~/.blockgate and environment
  - shared fixtures: Mirror Store, notifier, user store, server app
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncGenerator, Optional

import pytest
from fastapi import FastAPI

from blockgate.client.notifier import RecordingNotifier
from blockgate.client.storage import MemoryKeyValueStore, MirrorStore
from blockgate.models.state import PollResult
from blockgate.server.users import UserStore


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("blockgate.server.users._BCRYPT_ROUNDS", 4)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Prevent rate-limit bleed between tests hitting the same endpoint."""
    from blockgate.server.limiter import limiter

    limiter.reset()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """No test may read a real config file or BLOCKGATE_* variable."""
    monkeypatch.setattr("blockgate.config.DEFAULT_CONFIG_PATHS", [])
    for name in ("BLOCKGATE_CONFIG", "BLOCKGATE_API_URL", "BLOCKGATE_PORT", "BLOCKGATE_DB_PATH"):
        monkeypatch.delenv(name, raising=False)


# ─── Client fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def mirror(kv: MemoryKeyValueStore) -> MirrorStore:
    return MirrorStore(kv)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


class FakeStatusSource:
    """Scripted stand-in for StatusAPIClient.check_user_status.

    ``results`` are returned in order (the last one repeats). An Exception
    instance in the list is raised instead. If ``gate`` is set, each call
    waits for it before answering. ``completed`` counts calls that answered
    and ``cancelled`` records a call interrupted while waiting.
    """

    def __init__(self, *results: Any, gate: Optional[Any] = None) -> None:
        self.results: list[Any] = list(results) or [PollResult.failure()]
        self.gate = gate
        self.calls = 0
        self.completed = 0
        self.cancelled = False

    async def __call__(self) -> PollResult:
        self.calls += 1
        index = self.calls - 1
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        self.completed += 1
        result = self.results[min(index, len(self.results) - 1)]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_status_source():
    return FakeStatusSource


# ─── Server fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
async def user_store(tmp_path: Path) -> AsyncGenerator[UserStore, None]:
    store = UserStore(db_path=str(tmp_path / "users.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def server_app(user_store: UserStore) -> FastAPI:
    """The real application with its store attached and startup marked done."""
    from blockgate.server.main import create_app

    app = create_app()
    app.state.user_store = user_store
    app.state.ready = True
    return app
