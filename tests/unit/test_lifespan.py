"""Unit tests for the service application factory and lifespan."""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from blockgate.config import Config
from blockgate.server.main import create_app
from blockgate.server.users import UserStore


def _patch_load_config(monkeypatch: pytest.MonkeyPatch, db_path: Path) -> None:
    config = Config.defaults()
    config.server.db_path = str(db_path)
    monkeypatch.setattr("blockgate.server.main.load_config", lambda: config)


class TestCreateApp:
    def test_returns_independent_instances(self) -> None:
        app1, app2 = create_app(), create_app()
        assert isinstance(app1, FastAPI)
        assert app1 is not app2

    def test_ready_false_before_lifespan(self) -> None:
        assert create_app().state.ready is False

    def test_docs_disabled_by_default(self) -> None:
        application = create_app()
        assert application.docs_url is None
        assert application.openapi_url is None


class TestLifespan:
    def test_startup_and_shutdown(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _patch_load_config(monkeypatch, tmp_path / "users.db")
        application = create_app()

        with TestClient(application) as client:
            assert application.state.ready is True
            assert isinstance(application.state.user_store, UserStore)
            response = client.get("/health")
            assert response.status_code == 200
            assert response.json()["status"] == "ok"

        assert application.state.ready is False
        assert (tmp_path / "users.db").exists()

    def test_schema_mismatch_refuses_startup(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        db_path = tmp_path / "users.db"

        async def _seed() -> None:
            async with aiosqlite.connect(str(db_path)) as db:
                await db.execute("PRAGMA user_version = 99;")
                await db.commit()

        asyncio.run(_seed())
        _patch_load_config(monkeypatch, db_path)
        application = create_app()

        with pytest.raises(RuntimeError):
            with TestClient(application):
                pass
        assert application.state.ready is False
