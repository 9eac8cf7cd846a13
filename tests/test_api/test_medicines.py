"""
Tests for Medicines API
=======================

Tests medicine CRUD, conflict checks, dose recording and today's plan.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient


# ==================== FIXTURES ====================

@pytest.fixture
def medicine_create_data():
    """Sample data for creating a medicine"""
    return {
        "id": "metformin",
        "name": "Metformin",
        "times": ["20:00", "08:00"],
        "dosage": "500mg",
        "instructions": "Take with meals",
        "start_date": "2024-03-01",
    }


@pytest.fixture
def created_medicine(client: TestClient, medicine_create_data):
    response = client.post("/api/v1/medicines", json=medicine_create_data)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()["medicine"]


# ==================== CREATE TESTS ====================

class TestCreateMedicine:
    """Tests for medicine creation"""

    @pytest.mark.api
    def test_create_success(self, client: TestClient, medicine_create_data):
        response = client.post("/api/v1/medicines", json=medicine_create_data)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["medicine"]["times"] == ["08:00", "20:00"]
        assert data["medicine"]["frequency"] == 2
        assert data["check"]["has_warnings"] is False

    @pytest.mark.api
    def test_create_generates_id(self, client: TestClient, medicine_create_data):
        del medicine_create_data["id"]
        response = client.post("/api/v1/medicines", json=medicine_create_data)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["medicine"]["id"]

    @pytest.mark.api
    def test_close_times_same_medicine_rejected(self, client: TestClient, medicine_create_data):
        """Test 08:00 and 08:10 for one medicine is a validation error"""
        medicine_create_data["times"] = ["08:00", "08:10"]
        response = client.post("/api/v1/medicines", json=medicine_create_data)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_duplicate_times_rejected(self, client: TestClient, medicine_create_data):
        medicine_create_data["times"] = ["08:00", "08:00"]
        response = client.post("/api/v1/medicines", json=medicine_create_data)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_malformed_time_rejected(self, client: TestClient, medicine_create_data):
        medicine_create_data["times"] = ["8am"]
        response = client.post("/api/v1/medicines", json=medicine_create_data)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_conflict_warns_by_default(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines", json={
            "id": "aspirin", "name": "Aspirin", "times": ["08:10"], "start_date": "2024-03-01",
        })

        assert response.status_code == status.HTTP_201_CREATED
        conflicts = response.json()["check"]["conflicts"]
        assert len(conflicts) == 1
        assert conflicts[0]["conflicting_schedule_id"] == "metformin"
        assert conflicts[0]["gap_minutes"] == 10

    @pytest.mark.api
    def test_conflict_strict_returns_409(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines?strict=true", json={
            "id": "aspirin", "name": "Aspirin", "times": ["08:10"], "start_date": "2024-03-01",
        })

        assert response.status_code == status.HTTP_409_CONFLICT
        assert len(response.json()["conflicts"]) == 1
        assert client.get("/api/v1/medicines/aspirin").status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    def test_duplicate_id_rejected(self, client: TestClient, created_medicine, medicine_create_data):
        response = client.post("/api/v1/medicines", json=medicine_create_data)
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# ==================== READ / UPDATE / DELETE TESTS ====================

class TestMedicineCrud:
    """Tests for reading, updating and removing medicines"""

    @pytest.mark.api
    def test_list(self, client: TestClient, created_medicine):
        response = client.get("/api/v1/medicines")
        assert [m["id"] for m in response.json()] == ["metformin"]

    @pytest.mark.api
    def test_get_unknown(self, client: TestClient):
        response = client.get("/api/v1/medicines/unknown")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] is True

    @pytest.mark.api
    def test_update(self, client: TestClient, created_medicine, medicine_create_data):
        medicine_create_data["times"] = ["07:30"]
        response = client.put("/api/v1/medicines/metformin", json=medicine_create_data)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["medicine"]["times"] == ["07:30"]

    @pytest.mark.api
    def test_update_unknown(self, client: TestClient, medicine_create_data):
        response = client.put("/api/v1/medicines/unknown", json=medicine_create_data)
        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.api
    def test_delete(self, client: TestClient, created_medicine):
        response = client.delete("/api/v1/medicines/metformin")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert client.get("/api/v1/medicines").json() == []

    @pytest.mark.api
    def test_dry_run_conflict_check(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines/conflicts", json={
            "name": "metformin", "times": ["20:05"], "start_date": "2024-03-01",
        })

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["has_warnings"] is True
        assert data["name_collisions"] == ["metformin"]
        assert data["conflicts"][0]["conflicting_time"] == "20:00"
        assert len(client.get("/api/v1/medicines").json()) == 1


# ==================== DOSE TESTS ====================

class TestDoses:
    """Tests for dose recording"""

    @pytest.mark.api
    def test_mark_taken(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines/metformin/doses/08:00/taken")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "taken"
        assert data["scheduled_time"] == "08:00"
        assert data["scheduled_date"] == "2024-03-04"

    @pytest.mark.api
    def test_relog_keeps_one_record(self, client: TestClient, created_medicine):
        first = client.post("/api/v1/medicines/metformin/doses/08:00/missed").json()
        second = client.post("/api/v1/medicines/metformin/doses/08:00/skipped", json={"notes": "nausea"}).json()

        assert first["id"] == second["id"]
        assert second["status"] == "skipped"

    @pytest.mark.api
    def test_unknown_action(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines/metformin/doses/08:00/forgotten")
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_time_not_in_schedule(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines/metformin/doses/09:00/taken")
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_snooze(self, client: TestClient, created_medicine):
        response = client.post("/api/v1/medicines/metformin/doses/08:00/snooze", json={"minutes": 10})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "snoozed"
        assert data["snooze_count"] == 1
        assert data["snoozed_until"] == "2024-03-04T09:10:00"

    @pytest.mark.api
    def test_snooze_after_taken_rejected(self, client: TestClient, created_medicine):
        client.post("/api/v1/medicines/metformin/doses/08:00/taken")

        response = client.post("/api/v1/medicines/metformin/doses/08:00/snooze", json={"minutes": 10})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        slots = client.get("/api/v1/medicines/today").json()["slots"]
        assert slots[0]["state"] == "taken"

    @pytest.mark.api
    def test_dose_with_utc_offset(self, client: TestClient, created_medicine):
        response = client.post(
            "/api/v1/medicines/metformin/doses/08:00/taken",
            json={"at": "2024-03-04T08:05:00Z", "day": "2024-03-04"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert client.post("/api/v1/medicines/metformin/doses/20:00/skipped").status_code == status.HTTP_200_OK
        assert client.get("/api/v1/adherence/report").status_code == status.HTTP_200_OK

    @pytest.mark.api
    def test_today(self, client: TestClient, created_medicine):
        client.post("/api/v1/medicines/metformin/doses/08:00/taken")

        response = client.get("/api/v1/medicines/today")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["scheduled_date"] == "2024-03-04"
        assert data["completion_pct"] == 50
        assert [(s["scheduled_time"], s["state"]) for s in data["slots"]] == [
            ("08:00", "taken"),
            ("20:00", "upcoming"),
        ]
