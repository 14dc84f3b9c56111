"""Mirror Store - durable client-side key-value storage for blocked state.

Layout:
    KeyValueStore          - Protocol (get / set / remove / clear), string values
    MemoryKeyValueStore    - in-process dict; tests and throwaway sessions
    JsonFileKeyValueStore  - one JSON object on disk, atomic replace, mode 0600
    MirrorStore            - typed accessors for the five keys the blocked-state
                             flow reads and writes (see blockgate.constants)

Values are strings, as in browser localStorage: flags are ``"true"``/absent and
structured values are JSON text. A value that fails to parse is treated as
absent and logged - a corrupt cache must never crash the session.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from blockgate.constants import (
    BLOCK_STATE_KEYS,
    STORAGE_KEY_BLOCK_INFO,
    STORAGE_KEY_BLOCKED,
    STORAGE_KEY_TOAST_SHOWN,
    STORAGE_KEY_TOKEN,
    STORAGE_KEY_USER,
)
from blockgate.models.state import BlockInfo, BlockState, UserSummary
from blockgate.utils.logger import get_logger

logger = get_logger(__name__)


# ─── KeyValueStore Protocol ───────────────────────────────────────────────────


@runtime_checkable
class KeyValueStore(Protocol):
    """Durable string key-value storage (localStorage semantics)."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        """Remove ``key``. Removing an absent key is a no-op."""
        ...

    def clear(self) -> None:
        ...


# ─── MemoryKeyValueStore ──────────────────────────────────────────────────────


class MemoryKeyValueStore:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


# ─── JsonFileKeyValueStore ────────────────────────────────────────────────────


class JsonFileKeyValueStore:
    """Store persisted as a single JSON object file.

    Every write rewrites the whole file through a ``.tmp`` sibling and
    ``Path.replace()``, so a crash mid-write leaves the previous version intact.
    The file is chmod 0600: it holds the session token.

    A missing file is an empty store. A corrupt or non-object file is logged
    and treated as empty; the next write replaces it.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(os.path.expanduser(str(path)))
        self._data: dict[str, str] = self._read()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Mirror store file unreadable - starting empty", path=str(self.path), error=str(exc))
            return {}
        if not isinstance(raw, dict):
            logger.warning("Mirror store file is not a JSON object - starting empty", path=str(self.path))
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        os.chmod(tmp, 0o600)
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()

    def clear(self) -> None:
        self._data.clear()
        self._write()


assert isinstance(MemoryKeyValueStore(), KeyValueStore), (
    "MemoryKeyValueStore does not satisfy KeyValueStore protocol - implementation error"
)


# ─── MirrorStore ──────────────────────────────────────────────────────────────


class MirrorStore:
    """Typed view of the blocked-state keys over any KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def backend(self) -> KeyValueStore:
        return self._store

    def _read_json(self, key: str) -> Any:
        raw = self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed JSON in mirror store", key=key)
            return None

    # ── Reads ─────────────────────────────────────────────────────────────────

    def read_blocked(self) -> bool:
        return self._read_json(STORAGE_KEY_BLOCKED) is True

    def read_toast_shown(self) -> bool:
        return self._read_json(STORAGE_KEY_TOAST_SHOWN) is True

    def read_block_info(self) -> Optional[BlockInfo]:
        raw = self._read_json(STORAGE_KEY_BLOCK_INFO)
        info = BlockInfo.from_dict(raw)
        if raw is not None and info is None:
            logger.warning("Ignoring non-object block info in mirror store")
        return info

    def read_user(self) -> Optional[UserSummary]:
        raw = self._read_json(STORAGE_KEY_USER)
        user = UserSummary.from_dict(raw)
        if raw is not None and user is None:
            logger.warning("Ignoring malformed cached user in mirror store")
        return user

    def read_token(self) -> Optional[str]:
        return self._store.get(STORAGE_KEY_TOKEN) or None

    def load_state(self) -> BlockState:
        """Build a BlockState from whatever the store holds.

        A stored toast flag without a stored block flag is dropped, keeping
        the ``toast_shown`` invariant.
        """
        is_blocked = self.read_blocked()
        return BlockState(
            is_blocked=is_blocked,
            block_info=self.read_block_info(),
            cached_user=self.read_user(),
            toast_shown=is_blocked and self.read_toast_shown(),
        )

    # ── Writes ────────────────────────────────────────────────────────────────

    def write_blocked(self) -> None:
        self._store.set(STORAGE_KEY_BLOCKED, "true")

    def write_toast_shown(self) -> None:
        self._store.set(STORAGE_KEY_TOAST_SHOWN, "true")

    def write_block_info(self, info: BlockInfo) -> None:
        self._store.set(STORAGE_KEY_BLOCK_INFO, json.dumps(info.to_dict()))

    def write_user(self, user: UserSummary) -> None:
        self._store.set(STORAGE_KEY_USER, json.dumps(user.to_dict()))

    def write_session(self, token: str, user: UserSummary) -> None:
        """Store a freshly issued token and its user (sign-in only)."""
        self._store.set(STORAGE_KEY_TOKEN, token)
        self.write_user(user)

    def clear_block_state(self) -> None:
        """Remove the four blocked-state keys. The token is left alone."""
        for key in BLOCK_STATE_KEYS:
            self._store.remove(key)
