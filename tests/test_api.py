"""Tests for the response envelope and application-wide behaviour."""

import uuid

from fastapi.testclient import TestClient

from akadeo.main import create_app


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "environment": "test"}


def test_success_envelope(client):
    response = client.get("/api/auth/session")
    body = response.json()
    assert body["ok"] is True
    assert set(body["meta"]) == {"requestId", "ts"}
    assert response.headers["X-Request-ID"] == body["meta"]["requestId"]
    uuid.UUID(body["meta"]["requestId"])


def test_responses_are_not_cached(client):
    response = client.get("/api/plans")
    assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate, max-age=0"


def test_unknown_route(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == {
        "type": "NOT_FOUND",
        "message": "API route not found.",
        "code": "E_ROUTE_NOT_FOUND",
        "details": None,
    }
    assert body["meta"]["requestId"] == response.headers["X-Request-ID"]


def test_wrong_method(client):
    response = client.get("/api/auth/login")
    assert response.status_code == 405
    assert response.json()["error"]["type"] == "METHOD_NOT_ALLOWED"
    assert response.json()["error"]["code"] == "E_METHOD_NOT_ALLOWED"
    assert response.headers["Allow"] == "POST"


def test_invalid_json(client):
    response = client.post(
        "/api/auth/login", content=b'{"email": ', headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E_INVALID_JSON"


def test_wrong_field_type(client):
    response = client.post("/api/auth/login", json={"email": 5, "password": "x"})
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "E_INVALID_INPUT"
    assert error["details"] == {"field": "email"}


def test_unexpected_error_outside_production(settings, database):
    app = create_app(settings, database)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database on fire")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/boom")
    assert response.status_code == 500
    assert response.json()["error"] == {
        "type": "INTERNAL",
        "message": "database on fire",
        "code": "E_INTERNAL",
        "details": None,
    }


def test_unexpected_error_is_hidden_in_production(settings, database):
    production = settings.model_copy(update={"environment": "production"})
    app = create_app(production, database)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database on fire")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/boom")
    assert response.status_code == 500
    assert response.json()["error"]["message"] == "Unexpected server error."


def test_cors_only_in_development(settings, database):
    origin = {"Origin": "http://localhost:5173"}
    with TestClient(create_app(settings, database)) as client:
        assert client.get("/health", headers=origin).headers["access-control-allow-origin"] == origin["Origin"]

    production = settings.model_copy(update={"environment": "production"})
    with TestClient(create_app(production, database)) as client:
        assert "access-control-allow-origin" not in client.get("/health", headers=origin).headers


def test_default_database_url_names_installed_driver():
    from akadeo.config import Settings

    assert Settings(_env_file=None).database_url.startswith("postgresql+psycopg2://")
