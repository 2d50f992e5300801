"""
Shared test fixtures.

Provides a FastAPI TestClient wired to:
  • an in-memory Redis double with a manual clock
  • a temporary SQLite database (via app lifespan)
  • a captured outbox instead of real email delivery

The `client` fixture runs the full lifespan (DB init / shutdown) so that
user and refresh-token endpoints backed by SQLite work correctly in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app import db
from app.main import app
from app.redis_client import set_redis
from tests.mocks.fake_redis import FakeRedis


# ── Helpers ────────────────────────────────────────────────────────────────


@dataclass
class SentEmail:
    to: str
    subject: str
    template: str
    data: dict[str, Any]


@dataclass
class Outbox:
    """Records every email the app tries to send."""

    messages: list[SentEmail] = field(default_factory=list)
    fail: bool = False

    async def send(self, to: str, subject: str, template: str, data: dict[str, Any]) -> bool:
        if self.fail:
            return False
        self.messages.append(SentEmail(to, subject, template, data))
        return True

    @property
    def last_otp(self) -> str:
        return str(self.messages[-1].data["otp"])


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def fake_redis() -> FakeRedis:
    r = FakeRedis()
    set_redis(r)
    yield r
    set_redis(None)


@pytest.fixture()
def outbox(monkeypatch) -> Outbox:
    box = Outbox()
    monkeypatch.setattr("app.services.otp.send_email", box.send)
    return box


@pytest.fixture()
def _test_env(monkeypatch, tmp_path, fake_redis, outbox):
    """
    Internal fixture that points the app at a temp database, the fake
    Redis and the captured outbox.
    """
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))

    # ── Disable rate limiting in tests ────────────────────────────────
    from app.rate_limit import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)


@pytest.fixture()
async def database(monkeypatch, tmp_path):
    """Open a temp SQLite database for service-level tests (no HTTP)."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    await db.init_db()
    yield
    await db.close_db()


@pytest.fixture()
def client(_test_env) -> TestClient:
    """
    FastAPI TestClient with fake Redis, temp DB and captured emails.

    Uses a context manager so the lifespan runs (DB init/shutdown).
    """
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc

    app.dependency_overrides.clear()
