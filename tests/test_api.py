"""Tests for the admin and cron REST routes."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from stephie import config as config_module
from stephie.api.app import create_api_app

SUCCESS = {
    "success": True,
    "duration_ms": 812,
    "resource_count": 12,
    "total_column_count": 333,
    "last_sync_timestamp": "2025-01-01T00:00:00+00:00",
}
FAILURE = {
    "success": False,
    "code": "TRANSPORT_ERROR",
    "error": "monday.com API responded with status: 502",
    "details": {"service": "monday", "status_code": 502},
}


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_api_app())


@pytest.fixture
def production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module.settings, "environment", "production")
    monkeypatch.setattr(config_module.settings, "admin_token", SecretStr("admin-secret"))


@pytest.fixture
def cron_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module.settings, "cron_secret", SecretStr("cron-secret"))


def mock_resync(payload: dict):
    return patch("stephie.api.routes.admin.resync_metadata", AsyncMock(return_value=payload))


class TestAdminSync:
    """POST /admin/sync-metadata."""

    def test_open_outside_production(self, client: TestClient) -> None:
        with mock_resync(SUCCESS) as resync:
            response = client.post("/admin/sync-metadata")

        assert response.status_code == 200
        assert response.json() == SUCCESS
        resync.assert_awaited_once()

    @pytest.mark.usefixtures("production")
    def test_production_requires_token(self, client: TestClient) -> None:
        with mock_resync(SUCCESS) as resync:
            missing = client.post("/admin/sync-metadata")
            wrong = client.post(
                "/admin/sync-metadata", headers={"Authorization": "Bearer nope"}
            )

        assert missing.status_code == 401
        assert wrong.status_code == 401
        resync.assert_not_awaited()

    @pytest.mark.usefixtures("production")
    def test_production_accepts_token(self, client: TestClient) -> None:
        with mock_resync(SUCCESS):
            response = client.post(
                "/admin/sync-metadata", headers={"Authorization": "Bearer admin-secret"}
            )

        assert response.status_code == 200

    def test_failure_maps_to_500(self, client: TestClient) -> None:
        with mock_resync(FAILURE):
            response = client.post("/admin/sync-metadata")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "TRANSPORT_ERROR"


class TestCronSync:
    """GET /cron/sync-metadata."""

    @pytest.mark.usefixtures("cron_secret")
    def test_requires_secret(self, client: TestClient) -> None:
        with mock_resync(SUCCESS) as resync:
            response = client.get("/cron/sync-metadata")

        assert response.status_code == 401
        resync.assert_not_awaited()

    def test_unconfigured_secret_rejects(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(config_module.settings, "cron_secret", SecretStr(""))
        with mock_resync(SUCCESS):
            response = client.get("/cron/sync-metadata", headers={"Authorization": "Bearer "})

        assert response.status_code == 401

    @pytest.mark.usefixtures("cron_secret")
    def test_runs_sync(self, client: TestClient) -> None:
        with mock_resync(SUCCESS) as resync:
            response = client.get(
                "/cron/sync-metadata", headers={"Authorization": "Bearer cron-secret"}
            )

        assert response.status_code == 200
        assert response.json()["resource_count"] == 12
        resync.assert_awaited_once()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}
