"""Unit tests for session extraction and the auth dependencies."""

from __future__ import annotations

from typing import Optional

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from blockgate.server.auth import (
    AccountBlocked,
    extract_session_token,
    require_active_user,
    require_admin,
)
from blockgate.server.users import UserRecord


def _request(cookie: Optional[str] = None, authorization: Optional[str] = None) -> Request:
    headers: list[tuple[bytes, bytes]] = []
    if cookie is not None:
        headers.append((b"cookie", f"token={cookie}".encode()))
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestExtractSessionToken:
    def test_cookie(self) -> None:
        assert extract_session_token(_request(cookie="wz-cookie")) == "wz-cookie"

    def test_bearer(self) -> None:
        assert extract_session_token(_request(authorization="Bearer wz-abc")) == "wz-abc"

    def test_cookie_wins(self) -> None:
        request = _request(cookie="wz-cookie", authorization="Bearer wz-header")
        assert extract_session_token(request) == "wz-cookie"

    @pytest.mark.parametrize("authorization", ["Bearer sk-other", "Basic abc", "wz-abc", ""])
    def test_other_credentials_ignored(self, authorization: str) -> None:
        assert extract_session_token(_request(authorization=authorization)) is None

    def test_nothing(self) -> None:
        assert extract_session_token(_request()) is None


class TestGuards:
    async def test_active_user_passes(self) -> None:
        user = UserRecord(id="u1", name="Ana", email="a@x", role="volunteer")
        assert await require_active_user(user) is user

    async def test_blocked_user_rejected(self) -> None:
        user = UserRecord(id="u1", name="Ana", email="a@x", role="volunteer", is_blocked=True)
        with pytest.raises(AccountBlocked) as exc_info:
            await require_active_user(user)
        assert exc_info.value.user is user

    async def test_blocked_admin_passes(self) -> None:
        admin = UserRecord(id="a1", name="Root", email="r@x", role="admin", is_blocked=True)
        assert await require_active_user(admin) is admin

    async def test_require_admin(self) -> None:
        admin = UserRecord(id="a1", name="Root", email="r@x", role="admin")
        assert await require_admin(admin) is admin
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(UserRecord(id="u1", name="Ana", email="a@x", role="ngo"))
        assert exc_info.value.status_code == 403
