"""Tests for the HTTP reporting endpoints."""

from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from page_complexity.repository.base import RepositoryError
from page_complexity.server import create_app


@pytest.fixture
def client(site_repo):
    return TestClient(create_app(site_repo))


class TestPageEndpoint:
    """Tests for GET /page."""

    def test_page(self, client):
        response = client.get("/page", params={"path": "/content/site/en/about"})

        assert response.status_code == 200
        body = response.json()
        assert body["nodeCount"] == 12
        assert body["complexity"] == "low"
        assert body["thresholds"] == {"high": 2048, "medium": 1024}

    def test_threshold_params(self, client):
        response = client.get(
            "/page",
            params={"path": "/content/site/en/about", "highThreshold": "10", "mediumThreshold": "5"},
        )

        assert response.json()["complexity"] == "high"

    def test_invalid_threshold_uses_default(self, client):
        response = client.get(
            "/page", params={"path": "/content/site/en/about", "highThreshold": "lots"}
        )

        assert response.status_code == 200
        assert response.json()["thresholds"]["high"] == 2048

    def test_missing_path(self, client):
        response = client.get("/page")

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Missing required parameter: 'path'",
        }

    def test_unknown_page(self, client):
        response = client.get("/page", params={"path": "/content/site/nope"})

        assert response.status_code == 404
        assert response.json()["error"] == "Page not found: /content/site/nope"

    def test_repository_error(self, client):
        with patch("page_complexity.server.analyze_page", side_effect=RepositoryError("down")):
            response = client.get("/page", params={"path": "/content/site/en"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Error: down"}


class TestPagesEndpoint:
    """Tests for GET /pages."""

    def test_pages(self, client):
        response = client.get("/pages", params={"rootPath": "/content/site", "limit": "3"})

        body = response.json()
        assert response.status_code == 200
        assert body["totalPages"] == 3
        assert body["limitReached"] is True

    def test_missing_root_param(self, client):
        assert client.get("/pages").status_code == 400

    def test_unknown_root(self, client):
        response = client.get("/pages", params={"rootPath": "/content/none"})

        assert response.status_code == 200
        assert response.json()["success"] is False


class TestInfoAndHealth:
    """Tests for GET /info and GET /health."""

    def test_info(self, client):
        response = client.get("/info", params={"path": "/content/site/en"})

        assert response.json() == {"complexity": {}}

    def test_info_missing_path(self, client):
        assert client.get("/info").status_code == 400

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert "version" in body
