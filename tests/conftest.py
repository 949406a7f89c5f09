"""
Shared fixtures for the test suite.

Every test gets a fresh application backed by its own SQLite file and an
in-memory fake Redis server, so tests never touch real infrastructure.
"""

from collections.abc import Callable, Generator

import fakeredis
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.context import AppContext
from app.main import create_app


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        log_level="WARNING",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        secret_key="test-secret",
        encryption_key="MySecretEncryptionKey!",
        upload_dir=str(tmp_path / "uploads"),
        rate_limit_enabled=False,
    )


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def redis_inspect(redis_server) -> fakeredis.FakeRedis:
    """Synchronous view of the same fake server the app writes to."""
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def app(settings, redis_server) -> FastAPI:
    redis = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    return create_app(settings, redis=redis)


@pytest.fixture
def context(app) -> AppContext:
    return app.state.context


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """The TestClient runs the lifespan, so tables exist and the cache is connected."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client) -> Callable[..., int]:
    def _register(username: str, password: str = "secret123", email: str | None = None) -> int:
        response = client.post(
            "/register",
            json={
                "username": username,
                "email": email or f"{username}@mail.com",
                "password": password,
            },
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]["id"]

    return _register


@pytest.fixture
def login(client) -> Callable[..., dict]:
    """Log in and return ready-to-use request headers."""

    def _login(username: str, password: str = "secret123") -> dict:
        response = client.post("/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['data']['token']}"}

    return _login


@pytest.fixture
def admin_headers(context) -> dict:
    """Admin rights come from the token claims alone, no stored admin row is needed."""
    token = context.tokens.issue(9999, "admin")
    return {"Authorization": f"Bearer {token}"}
