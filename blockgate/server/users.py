"""UserStore - aiosqlite-backed accounts and sessions for the status service.

Uses aiosqlite EXCLUSIVELY; no synchronous sqlite3 calls on the event loop.

Features:
  - WAL mode: PRAGMA journal_mode=WAL
  - Schema version guard: PRAGMA user_version=1 - RuntimeError on mismatch, refuse startup
  - Long-lived connection: opened in initialize(), closed in close()
  - Users: role ∈ {admin, volunteer, ngo}; block fields toggled by an admin
  - Sessions: opaque ``wz-<ULID>`` tokens, bcrypt-hashed, never stored in plaintext
  - Session validation LRU cache; cleared synchronously on revoke

Usage:
    store = UserStore(db_path="~/.blockgate/users.db")
    await store.initialize()
    user = await store.create_user("Ana", "ana@example.com", "volunteer")
    token = await store.create_session(user.id)
    user_id = await store.resolve_session(token)
    await store.close()
"""

from __future__ import annotations

import os
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import aiosqlite
import bcrypt

from blockgate.constants import SESSION_TOKEN_PREFIX, VALID_ROLES
from blockgate.models.state import parse_timestamp
from blockgate.utils.logger import get_logger
from blockgate.utils.ulid import generate_ulid

logger = get_logger(__name__)

#: bcrypt cost factor for session token hashes
_BCRYPT_ROUNDS: int = 12

#: LRU cache max size for session validation results
_CACHE_MAXSIZE: int = 1000

_SCHEMA_VERSION = 1

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    email           TEXT NOT NULL UNIQUE,
    role            TEXT NOT NULL CHECK(role IN ('admin', 'volunteer', 'ngo')),
    location        TEXT NOT NULL DEFAULT '',
    is_blocked      INTEGER NOT NULL DEFAULT 0,
    block_reason    TEXT,
    blocked_at      TEXT,
    blocked_by      TEXT,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id              TEXT PRIMARY KEY,
    token_hash      TEXT NOT NULL,
    user_id         TEXT NOT NULL REFERENCES users(id),
    created_at      TEXT NOT NULL,
    last_used_at    TEXT,
    active          INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_active
    ON sessions(user_id, active);

CREATE INDEX IF NOT EXISTS idx_users_blocked
    ON users(is_blocked);
"""


# ─── Exceptions ───────────────────────────────────────────────────────────────


class UserNotFoundError(Exception):
    """Raised when an operation references a user id that does not exist.

    HTTP mapping: 404 Not Found
    """

    def __init__(self, user_id: str) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class InvalidUserError(ValueError):
    """Raised on an unknown role or a duplicate email."""


# ─── UserRecord ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserRecord:
    """Authoritative user row (the client only ever sees a projection)."""

    id: str
    name: str
    email: str
    role: str
    location: str = ""
    is_blocked: bool = False
    block_reason: Optional[str] = None
    blocked_at: Optional[datetime] = None
    blocked_by: Optional[str] = None

    def to_public_dict(self) -> dict[str, Any]:
        """JSON form returned by the profile route (WasteZero field names)."""
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "location": self.location,
            "isBlocked": self.is_blocked,
            "blockReason": self.block_reason,
            "blockedAt": self.blocked_at.isoformat() if self.blocked_at else None,
        }


def _row_to_user(row: aiosqlite.Row) -> UserRecord:
    return UserRecord(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        role=row["role"],
        location=row["location"],
        is_blocked=bool(row["is_blocked"]),
        block_reason=row["block_reason"],
        blocked_at=parse_timestamp(row["blocked_at"]),
        blocked_by=row["blocked_by"],
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── UserStore ────────────────────────────────────────────────────────────────


class UserStore:
    """Async SQLite account store using aiosqlite exclusively."""

    def __init__(self, db_path: str = "~/.blockgate/users.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        # token (plaintext) → user_id
        self._session_cache: OrderedDict[str, str] = OrderedDict()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL mode, and create/verify the schema.

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute("PRAGMA foreign_keys=ON;")

        async with self._db.execute("PRAGMA user_version;") as cursor:
            row = await cursor.fetchone()
        version = row[0] if row else 0

        if version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info("User store schema created", db_path=self._db_path)
        elif version != _SCHEMA_VERSION:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"User store schema version {version} is not supported "
                f"(expected {_SCHEMA_VERSION}). Refusing to start: {self._db_path}"
            )

        logger.info("User store ready", db_path=self._db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
        self._session_cache.clear()

    async def health_check(self) -> bool:
        """True if a trivial query succeeds. Must not raise."""
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                await cursor.fetchone()
            return True
        except Exception as exc:  # noqa: BLE001
            logger.warning("User store health check failed", error=str(exc))
            return False

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("UserStore.initialize() has not been called")
        return self._db

    # ── Users ─────────────────────────────────────────────────────────────────

    async def create_user(
        self,
        name: str,
        email: str,
        role: str,
        location: str = "",
    ) -> UserRecord:
        """Insert a user and return it.

        Raises:
            InvalidUserError: Unknown role or email already registered.
        """
        if role not in VALID_ROLES:
            raise InvalidUserError(f"Unknown role '{role}'. Valid roles: {sorted(VALID_ROLES)}")
        user_id = generate_ulid()
        try:
            await self.db.execute(
                "INSERT INTO users (id, name, email, role, location, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, name, email.lower(), role, location, _now()),
            )
            await self.db.commit()
        except aiosqlite.IntegrityError as exc:
            raise InvalidUserError(f"Email already registered: {email}") from exc

        logger.info("User created", user_id=user_id, role=role)
        return UserRecord(id=user_id, name=name, email=email.lower(), role=role, location=location)

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,)) as cursor:
            row = await cursor.fetchone()
        return _row_to_user(row) if row is not None else None

    async def toggle_block(
        self,
        user_id: str,
        reason: Optional[str],
        admin_id: str,
    ) -> UserRecord:
        """Flip the user's block flag.

        Blocking records reason, timestamp and the acting admin; unblocking
        clears all three.

        Raises:
            UserNotFoundError: No such user.
        """
        user = await self.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if user.is_blocked:
            params: tuple[Any, ...] = (0, None, None, None, user_id)
        else:
            params = (1, reason, _now(), admin_id, user_id)
        await self.db.execute(
            "UPDATE users SET is_blocked = ?, block_reason = ?, blocked_at = ?, blocked_by = ? "
            "WHERE id = ?",
            params,
        )
        await self.db.commit()

        updated = await self.get_user(user_id)
        assert updated is not None
        logger.info(
            "User block toggled",
            user_id=user_id,
            is_blocked=updated.is_blocked,
            admin_id=admin_id,
        )
        return updated

    # ── Sessions ──────────────────────────────────────────────────────────────

    async def create_session(self, user_id: str) -> str:
        """Issue a new session token for ``user_id``. Returns the plaintext ONCE.

        Raises:
            UserNotFoundError: No such user.
        """
        if await self.get_user(user_id) is None:
            raise UserNotFoundError(user_id)

        session_id = generate_ulid()
        plaintext = f"{SESSION_TOKEN_PREFIX}{session_id}"
        token_hash = bcrypt.hashpw(plaintext.encode(), bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)).decode()

        await self.db.execute(
            "INSERT INTO sessions (id, token_hash, user_id, created_at, active) "
            "VALUES (?, ?, ?, ?, 1)",
            (session_id, token_hash, user_id, _now()),
        )
        await self.db.commit()
        logger.info("Session created", user_id=user_id, session_id=session_id)
        return plaintext

    async def resolve_session(self, token: str) -> Optional[str]:
        """Return the user_id for an active session token, else None."""
        prefix_len = len(SESSION_TOKEN_PREFIX)
        if not token or not token.startswith(SESSION_TOKEN_PREFIX) or len(token) <= prefix_len:
            return None

        cached = self._session_cache.get(token)
        if cached is not None:
            self._session_cache.move_to_end(token)
            return cached

        session_id = token[prefix_len:]
        async with self.db.execute(
            "SELECT token_hash, user_id FROM sessions WHERE id = ? AND active = 1",
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None

        try:
            if not bcrypt.checkpw(token.encode(), row["token_hash"].encode()):
                return None
        except ValueError as exc:
            logger.warning("bcrypt verify error", error=str(exc))
            return None

        if len(self._session_cache) >= _CACHE_MAXSIZE:
            self._session_cache.popitem(last=False)
        self._session_cache[token] = row["user_id"]

        await self.db.execute(
            "UPDATE sessions SET last_used_at = ? WHERE id = ?",
            (_now(), session_id),
        )
        await self.db.commit()
        return row["user_id"]

    async def revoke_session(self, token: str) -> bool:
        """Deactivate a session. Returns False if it was unknown or already revoked.

        The validation cache is cleared before returning.
        """
        self._session_cache.clear()
        if not token.startswith(SESSION_TOKEN_PREFIX):
            return False
        cursor = await self.db.execute(
            "UPDATE sessions SET active = 0 WHERE id = ? AND active = 1",
            (token[len(SESSION_TOKEN_PREFIX):],),
        )
        await self.db.commit()
        revoked = cursor.rowcount > 0
        logger.info("Session revoked", revoked=revoked)
        return revoked
