"""Tests for the liveness, readiness and info endpoints."""

from unittest.mock import AsyncMock, Mock

import pytest
from cassandra.cluster import Session
from fastapi.testclient import TestClient

from src.config import get_settings
from src.core.store import TTLStore
from src.main import app


class TestReadiness:
    def test_reports_connected_backends(self, client: TestClient) -> None:
        app.state.cassandra_session = Mock(spec=Session)
        app.state.ttl_store = TTLStore()

        data = client.get("/health/ready").json()

        assert data["database"] is True
        assert data["store"] == "memory"

    def test_reports_redis_store(self, client: TestClient) -> None:
        app.state.ttl_store = TTLStore(redis=AsyncMock())

        data = client.get("/health/ready").json()

        assert data["store"] == "redis"
        assert data["database"] is False

    def test_answers_before_startup(self, client: TestClient) -> None:
        """Nothing is connected without lifespan; the endpoint still answers."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["database"] is False
        assert data["store"] == "unavailable"
        assert data["environment"] == get_settings().environment


class TestInfo:
    def test_process_alive(self, client: TestClient) -> None:
        assert client.get("/health/live").json() == {"status": "alive"}

    @pytest.mark.parametrize("path", ["/health", "/"])
    def test_reports_version(self, client: TestClient, path: str) -> None:
        response = client.get(path)

        assert response.status_code == 200
        assert "version" in response.json()

    def test_health_names_the_service(self, client: TestClient) -> None:
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["app_name"] == "learnhub"

    def test_root_points_at_the_api(self, client: TestClient) -> None:
        assert "LearnHub" in client.get("/").json()["message"]
