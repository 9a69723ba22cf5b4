"""Pytest configuration and shared fixtures"""

import pytest
from app.config import Settings
from app.main import create_app
from fastapi.testclient import TestClient
from starlette.requests import Request

TEST_SECRET_KEY = "test-secret-key-for-testing"

VALID_CONTACT = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "message": "Hello, I would like to talk about a project.",
    "gdprConsent": True,
}


class FakeClock:
    """Controllable time source in epoch seconds"""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides) -> Settings:
    """Settings for tests, independent of the process environment"""
    values = {
        "secret_key": TEST_SECRET_KEY,
        "environment": "development",
        "csrf_debug_stats": False,
        "cors_origins": "",
    }
    values.update(overrides)
    return Settings(**values)


def make_request(
    method: str = "POST",
    path: str = "/api/contact",
    headers: dict[str, str] | None = None,
) -> Request:
    """Build a bare Starlette request with the given headers"""
    raw_headers = [
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "root_path": "",
        "scheme": "http",
        "query_string": b"",
        "headers": raw_headers,
        "server": ("testserver", 80),
    }
    return Request(scope)


def fetch_csrf_headers(client: TestClient) -> dict[str, str]:
    """Request a token; the double-submit cookie lands in the client's jar"""
    response = client.get("/api/csrf")
    assert response.status_code == 200
    data = response.json()
    return {"X-CSRF-Token": data["token"], "X-Session-ID": data["sessionId"]}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app():
    return create_app(make_settings())


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
