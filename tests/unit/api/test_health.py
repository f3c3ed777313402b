"""Unit tests for the health check endpoint."""

from fastapi.testclient import TestClient

from docbill.main import app


def test_health_check():
    """Test the health check endpoint returns status as healthy."""
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert "X-Request-ID" in response.headers
