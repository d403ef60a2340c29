"""Tests for the main FastAPI application."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from site_builder.main import app, create_app


@pytest.fixture
def client() -> TestClient:
    """Create a test client without running the lifespan."""
    return TestClient(create_app())


def test_health_check(client: TestClient) -> None:
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_build_routes_are_registered() -> None:
    site_id = uuid4()
    paths = app.openapi()["paths"]

    assert app.url_path_for("generate_content", site_id=str(site_id)) == (
        f"/api/sites/{site_id}/generate-content"
    )
    assert app.url_path_for("retry_build", site_id=str(site_id)) == (
        f"/api/sites/{site_id}/retry-build"
    )
    assert set(paths["/api/sites/{site_id}/status"]) == {"get", "patch"}
    assert "post" in paths["/api/sites/{site_id}/generate-content"]


def test_trigger_is_unavailable_before_startup(client: TestClient) -> None:
    """Without the lifespan there is no build runner to accept work."""
    response = client.post(f"/api/sites/{uuid4()}/generate-content")
    assert response.status_code == 503
    assert response.json()["detail"] == "Build runner is unavailable"
