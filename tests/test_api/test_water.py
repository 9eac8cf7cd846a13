"""
Tests for Water API
==================

Tests hydration settings, intake logging, the daily summary and reminder ticks.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient


# ==================== SETTINGS TESTS ====================

class TestWaterSettings:
    """Tests for the hydration settings endpoints"""

    @pytest.mark.api
    def test_get_defaults(self, client: TestClient):
        """Test defaults are served when nothing is stored"""
        response = client.get("/api/v1/water/settings")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["daily_goal"] == 2000
        assert data["reminder_interval"] == 60
        assert data["start_time"] == "07:00"
        assert data["end_time"] == "21:00"
        assert data["enabled"] is True
        assert data["last_fired_at"] is None

    @pytest.mark.api
    def test_partial_update(self, client: TestClient):
        response = client.put("/api/v1/water/settings", json={"daily_goal": 2500, "start_time": "8:00"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["daily_goal"] == 2500
        assert data["start_time"] == "08:00"
        assert data["end_time"] == "21:00"
        assert data["reminder_interval"] == 60

    @pytest.mark.api
    def test_invalid_time_rejected(self, client: TestClient):
        response = client.put("/api/v1/water/settings", json={"start_time": "25:00"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] is True

    @pytest.mark.api
    def test_inverted_window_rejected(self, client: TestClient):
        response = client.put("/api/v1/water/settings", json={"start_time": "22:00", "end_time": "06:00"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_zero_interval_rejected(self, client: TestClient):
        response = client.put("/api/v1/water/settings", json={"reminder_interval": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ==================== LOGGING TESTS ====================

class TestWaterLog:
    """Tests for logging water"""

    @pytest.mark.api
    def test_log_amount(self, client: TestClient):
        response = client.post("/api/v1/water/log", json={"amount_ml": 330})

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["amount_ml"] == 330

    @pytest.mark.api
    @pytest.mark.parametrize("preset,amount", [("glass", 250), ("bottle", 500), ("sip", 100)])
    def test_log_preset(self, client: TestClient, preset, amount):
        response = client.post(f"/api/v1/water/log/{preset}")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["amount_ml"] == amount

    @pytest.mark.api
    def test_unknown_preset(self, client: TestClient):
        response = client.post("/api/v1/water/log/bucket")
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_non_positive_amount(self, client: TestClient):
        response = client.post("/api/v1/water/log", json={"amount_ml": 0})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_summary(self, client: TestClient):
        client.post("/api/v1/water/log/glass")
        client.post("/api/v1/water/log/bottle")

        response = client.get("/api/v1/water/summary")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total_ml"] == 750
        assert data["goal_ml"] == 2000
        assert data["remaining_ml"] == 1250
        assert data["progress_pct"] == 38
        assert data["glasses_remaining"] == 5
        assert len(data["entries"]) == 2

    @pytest.mark.api
    def test_log_with_utc_offset(self, client: TestClient):
        """Test an offset-aware timestamp is accepted and later requests still work"""
        first = client.post("/api/v1/water/log", json={"amount_ml": 250, "at": "2024-03-04T09:00:00Z"})
        second = client.post("/api/v1/water/log", json={"amount_ml": 250})

        assert first.status_code == status.HTTP_201_CREATED
        assert not first.json()["timestamp"].endswith("Z")
        assert "+" not in first.json()["timestamp"]
        assert second.status_code == status.HTTP_201_CREATED
        assert client.get("/api/v1/water/summary").status_code == status.HTTP_200_OK
        assert client.get("/api/v1/adherence/report").status_code == status.HTTP_200_OK


# ==================== TICK TESTS ====================

class TestReminderTick:
    """Tests for reminder evaluation over HTTP"""

    @pytest.mark.api
    def test_tick_fires_then_cools_down(self, client: TestClient, sent):
        first = client.post("/api/v1/reminders/tick", json={"now": "2024-03-04T09:00:00"})
        second = client.post("/api/v1/reminders/tick", json={"now": "2024-03-04T09:30:00"})

        assert first.status_code == status.HTTP_200_OK
        assert first.json()["fired"] == 1
        assert first.json()["decisions"][0]["reason"] == "due"
        assert second.json()["fired"] == 0
        assert second.json()["decisions"][0]["reason"] == "cooldown"
        assert [n.title for n in sent] == ["Time to Drink Water!"]

        settings = client.get("/api/v1/water/settings").json()
        assert settings["last_fired_at"] == "2024-03-04T09:00:00"

    @pytest.mark.api
    def test_tick_without_body_uses_clock(self, client: TestClient):
        response = client.post("/api/v1/reminders/tick")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["evaluated_at"] == "2024-03-04T09:00:00"

    @pytest.mark.api
    def test_tick_outside_window(self, client: TestClient):
        response = client.post("/api/v1/reminders/tick", json={"now": "2024-03-04T22:00:00"})
        assert response.json()["decisions"][0]["reason"] == "outside_window"

    @pytest.mark.api
    def test_tick_with_utc_offset(self, client: TestClient):
        response = client.post("/api/v1/reminders/tick", json={"now": "2024-03-04T09:00:00+00:00"})

        assert response.status_code == status.HTTP_200_OK
        assert "+" not in response.json()["evaluated_at"]
        assert client.post("/api/v1/reminders/tick").status_code == status.HTTP_200_OK


class TestHealth:
    """Tests for the health endpoint"""

    @pytest.mark.api
    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["engine"] == {"medicines": 0, "occurrences": 0}
