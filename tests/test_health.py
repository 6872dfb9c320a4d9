"""Tests for health check endpoints."""

from collections.abc import AsyncGenerator

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from storefront.infrastructure.database import get_session
from storefront.main import app


class UnreachableSession:
    """Session stand-in whose database is down."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))


def test_health_check(client: TestClient) -> None:
    """Test health endpoint returns healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "storefront-catalog"
    assert "version" in data


def test_readiness_check(client: TestClient) -> None:
    """Test readiness endpoint returns ready status."""
    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"


def test_readiness_check_without_database(client: TestClient) -> None:
    """Test readiness endpoint reports 503 when the database is down."""

    async def unreachable() -> AsyncGenerator[UnreachableSession, None]:
        yield UnreachableSession()

    app.dependency_overrides[get_session] = unreachable

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {"status": "unavailable"}
