"""Tests for health check endpoints."""

from fastapi.testclient import TestClient

from toolstream import __version__
from toolstream.api.main import app
from toolstream.config import config

client = TestClient(app)


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_healthy_status(self):
        """Health check should return 200 with healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_includes_version(self):
        response = client.get("/health")
        assert response.json()["version"] == __version__

    def test_health_includes_model(self):
        """Health check reports the default upstream model."""
        response = client.get("/health")
        assert response.json()["model"] == config.upstream.model
