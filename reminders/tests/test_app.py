"""Tests for the HTTP status endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient


def _client():
    # No `with` block: lifespan (scheduler, database) is not started
    from main import app

    return TestClient(app)


def test_health_reports_degraded_without_scheduler():
    with patch(
        "main.get_scheduler_status",
        return_value={"running": False, "armed_slots": 0, "reminder_jobs": 0, "next_sweep": None},
    ), patch("main.check_connection", AsyncMock(return_value=True)):
        response = _client().get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "degraded",
        "scheduler_running": False,
        "database_connected": True,
    }


def test_health_healthy_when_scheduler_and_database_up():
    with patch("main.get_scheduler_status", return_value={"running": True}), patch(
        "main.check_connection", AsyncMock(return_value=True)
    ):
        response = _client().get("/health")

    assert response.json()["status"] == "healthy"


def test_status_includes_scheduler_snapshot():
    snapshot = {"running": True, "armed_slots": 3, "reminder_jobs": 2, "next_sweep": None}
    with patch("main.get_scheduler_status", return_value=snapshot):
        response = _client().get("/api/status")

    assert response.json() == {"status": "ok", "scheduler": snapshot}


def test_cancel_requires_running_scheduler():
    with patch("main.get_scheduler_status", return_value={"running": False}):
        response = _client().post("/api/events/evt1/cancel-reminders")

    assert response.status_code == 503


def test_cancel_returns_counts():
    with patch("main.get_scheduler_status", return_value={"running": True}), patch(
        "main.cancel_event_reminders",
        AsyncMock(return_value={"jobs_removed": 2, "skipped": 5}),
    ) as mock_cancel:
        response = _client().post("/api/events/evt1/cancel-reminders")

    assert response.json() == {"jobs_removed": 2, "skipped": 5}
    mock_cancel.assert_awaited_once_with("evt1")
