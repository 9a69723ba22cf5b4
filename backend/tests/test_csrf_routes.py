"""Tests for CSRF token endpoints"""

from datetime import datetime

from app.main import create_app
from fastapi.testclient import TestClient
from tests.conftest import fetch_csrf_headers, make_settings


def test_issue_token_body(client):
    """Test token issuance returns token metadata"""
    response = client.get("/api/csrf")

    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["sessionId"]
    assert data["expiresIn"] == 3600
    assert data["algorithm"] == "HMAC-SHA256"
    assert data["version"] == "2.0"
    datetime.fromisoformat(data["issued"])


def test_issue_token_headers_and_cookie(client):
    response = client.get("/api/csrf")

    assert response.headers["X-Session-ID"] == response.json()["sessionId"]
    assert response.headers["X-CSRF-Version"] == "2.0"
    assert (
        response.headers["Cache-Control"]
        == "no-store, no-cache, must-revalidate, proxy-revalidate"
    )
    assert response.headers["Pragma"] == "no-cache"
    assert response.headers["Expires"] == "0"

    set_cookie = response.headers["set-cookie"]
    assert set_cookie.startswith("_csrf=")
    assert "HttpOnly" in set_cookie
    assert "Path=/" in set_cookie
    assert "samesite=lax" in set_cookie.lower()
    assert "Secure" not in set_cookie


def test_issue_token_cookie_secure_in_production():
    app = create_app(make_settings(environment="production", secret_key="prod-secret"))
    with TestClient(app) as client:
        response = client.get("/api/csrf")

    assert "Secure" in response.headers["set-cookie"]


def test_issue_tokens_are_unique(client):
    tokens = {client.get("/api/csrf").json()["token"] for _ in range(5)}
    assert len(tokens) == 5


def test_issue_token_same_origin(client):
    response = client.get("/api/csrf", headers={"Origin": "http://testserver"})
    assert response.status_code == 200


def test_issue_token_cross_origin_rejected(client):
    response = client.get("/api/csrf", headers={"Origin": "https://evil.example"})

    assert response.status_code == 403
    assert response.json()["error"] == "Cross-origin requests not allowed"


def test_issue_token_invalid_origin(client):
    response = client.get("/api/csrf", headers={"Origin": "http://[::1"})
    assert response.status_code == 400


def test_validate_endpoint_requires_fields(client):
    response = client.post("/api/csrf", json={"token": "abc"})

    assert response.status_code == 400
    assert response.json()["valid"] is False


def test_validate_endpoint_valid_then_spent(client):
    headers = fetch_csrf_headers(client)
    payload = {"token": headers["X-CSRF-Token"], "sessionId": headers["X-Session-ID"]}

    first = client.post("/api/csrf", json=payload)
    assert first.status_code == 200
    assert first.json()["valid"] is True
    assert first.json()["newToken"]
    datetime.fromisoformat(first.json()["timestamp"])

    # Rotation-on-use: the first token no longer validates
    second = client.post("/api/csrf", json=payload)
    assert second.json()["valid"] is False
    assert second.json()["error"] == "TOKEN_MISMATCH"


def test_stats_hidden_by_default(client):
    response = client.options("/api/csrf")
    assert response.status_code == 404


def test_stats_when_enabled():
    app = create_app(make_settings(csrf_debug_stats=True))
    with TestClient(app) as client:
        client.get("/api/csrf")
        response = client.options("/api/csrf")

    assert response.status_code == 200
    data = response.json()
    assert data["size"] == 1
    assert data["config"]["cookieName"] == "_csrf"
    assert "token" not in data
