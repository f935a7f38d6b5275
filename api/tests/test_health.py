"""Tests for health endpoints."""

from fastapi.testclient import TestClient


def test_liveness(client: TestClient) -> None:
    """Test the liveness endpoint."""
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness(client: TestClient) -> None:
    """Readiness reports which backing services are wired."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert "environment" in data
    assert "debug" in data
    assert data["database"] is False
    assert data["signals_redis"] is False


def test_health(client: TestClient) -> None:
    """Test the general health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app_name"] == "learnpath"
    assert "version" in data
    assert "environment" in data


def test_root(client: TestClient) -> None:
    """Test the root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "Learnpath" in data["message"]
    assert "version" in data


def test_event_routes_unavailable_without_database(client: TestClient) -> None:
    """Event ingestion answers 503 until the database is wired."""
    response = client.post(
        "/v1/events/progress",
        json={
            "learner_id": "00000000-0000-0000-0000-000000000001",
            "part_id": "00000000-0000-0000-0000-000000000002",
            "position": 10,
        },
    )
    assert response.status_code == 503


def test_request_id_is_echoed(client: TestClient) -> None:
    """Caller-supplied request and correlation ids come back on the response."""
    response = client.get(
        "/health",
        headers={"X-Request-ID": "req-123", "X-Correlation-ID": "corr-9"},
    )
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Correlation-ID"] == "corr-9"


def test_request_id_is_generated(client: TestClient) -> None:
    response = client.get("/health/live")
    assert response.headers["X-Request-ID"]
