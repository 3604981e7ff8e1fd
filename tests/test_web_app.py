"""Tests for the dashboard HTTP API."""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from google.auth.exceptions import RefreshError

from reservation_exporter.activity_log import ActivityLog
from reservation_exporter.models import RunResult
from reservation_exporter.web import app as app_module


def iso(dt):
    return dt.isoformat().replace("+00:00", "Z")


@pytest.fixture
def activity_log(tmp_path, monkeypatch):
    log = ActivityLog(tmp_path / "data.json")
    log.ensure_exists()
    monkeypatch.setattr(app_module, "activity_log", log)
    return log


@pytest.fixture
def mailbox(monkeypatch):
    mailbox = MagicMock()
    mailbox.load_credentials.return_value = True
    mailbox.authorization_url.return_value = "https://accounts.google.com/o/oauth2/auth?x=1"
    monkeypatch.setattr(app_module, "mailbox", mailbox)
    return mailbox


@pytest.fixture
def client(activity_log, mailbox):
    return TestClient(app_module.app)


class TestApiData:
    def test_returns_last_hour_in_order(self, client, activity_log):
        now = datetime.now(timezone.utc)
        activity_log.path.write_text(json.dumps({"logs": [
            {"timestamp": iso(now - timedelta(hours=2)), "level": "INFO", "message": "old", "data": None},
            {"timestamp": iso(now - timedelta(minutes=5)), "level": "INFO", "message": "a", "data": None},
            {"timestamp": iso(now - timedelta(minutes=1)), "level": "DATA", "message": "b", "data": {"id": 1}},
        ]}))

        response = client.get("/api/data")

        assert response.status_code == 200
        assert [e["message"] for e in response.json()["logs"]] == ["a", "b"]


class TestApiExpedia:
    """Tests for the export trigger route."""

    def test_missing_credentials(self, client):
        response = client.get("/api/expedia", params={"email": "ops@example.com"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_mailbox_not_authorized(self, client, mailbox):
        mailbox.load_credentials.return_value = False

        response = client.get("/api/expedia", params={"email": "e", "password": "p"})

        assert response.status_code == 401

    def test_mailbox_error_reports_json_500(self, client, mailbox):
        mailbox.load_credentials.side_effect = RefreshError("invalid_grant: Token has been revoked")

        response = client.get("/api/expedia", params={"email": "a@b.c", "password": "x"})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "invalid_grant" in response.json()["message"]

    def test_failure_reports_500(self, client, monkeypatch):
        automation = MagicMock()
        automation.return_value.run_async = AsyncMock(side_effect=RuntimeError("login broke"))
        monkeypatch.setattr(app_module, "ReservationExportAutomation", automation)

        response = client.get("/api/expedia", params={"email": "e", "password": "p"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "login broke"}

    def test_success(self, client, monkeypatch, tmp_path):
        result = RunResult(output_path=tmp_path / "reservations_x.xlsx")
        automation = MagicMock()
        automation.return_value.run_async = AsyncMock(return_value=result)
        monkeypatch.setattr(app_module, "ReservationExportAutomation", automation)

        response = client.get(
            "/api/expedia", params={"email": "e", "password": "p", "propertyName": "P2"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert automation.call_args.kwargs["property_filter"] == "P2"
        assert automation.call_args.kwargs["email"] == "e"


class TestOAuthRoutes:
    def test_auth_redirects_to_consent(self, client):
        response = client.get("/auth", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://accounts.google.com/")

    def test_callback_without_code(self, client):
        response = client.get("/oauth2callback")

        assert response.status_code == 400

    def test_callback_exchanges_and_redirects(self, client, mailbox):
        response = client.get("/oauth2callback", params={"code": "abc"}, follow_redirects=False)

        assert response.status_code == 307
        mailbox.exchange_code.assert_called_once_with("abc")

    def test_callback_exchange_failure(self, client, mailbox):
        mailbox.exchange_code.side_effect = ValueError("invalid_grant")

        response = client.get("/oauth2callback", params={"code": "abc"})

        assert response.status_code == 500


class TestDashboard:
    def test_index_renders(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "EventSource" in response.text


class TestStream:
    """The push channel sends the document on connect and after changes."""

    @pytest.mark.asyncio
    async def test_sends_on_connect_and_on_change(self, activity_log, monkeypatch):
        monkeypatch.setattr(app_module, "STREAM_POLL_SECONDS", 0)
        monkeypatch.setattr(activity_log, "mtime", MagicMock(side_effect=[1.0, 1.0, 2.0]))
        request = MagicMock()
        request.is_disconnected = AsyncMock(side_effect=[False, False, True])

        response = await app_module.stream_logs(request)
        chunks = [chunk async for chunk in response.body_iterator]

        assert len(chunks) == 2
        assert all(chunk.startswith("data: ") for chunk in chunks)
        assert json.loads(chunks[0][len("data: "):]) == {"logs": []}


class TestCleanupLoop:
    @pytest.mark.asyncio
    async def test_trims_each_interval(self, activity_log, monkeypatch):
        trim = MagicMock(side_effect=[0, asyncio.CancelledError()])
        monkeypatch.setattr(activity_log, "trim", trim)

        with pytest.raises(asyncio.CancelledError):
            await app_module.cleanup_loop(interval_seconds=0)

        assert trim.call_count == 2
