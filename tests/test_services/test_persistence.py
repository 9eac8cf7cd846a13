"""
Tests for Persistence Service
Tests blob stores, versioned envelopes and fallback to defaults
"""

import json
import pytest
from datetime import date, datetime
from unittest.mock import MagicMock

from config import BlobKeys
from models import DoseStatus, StoredBlob
from services.occurrence_log import Occurrence
from services.persistence import (
    InMemoryBlobStore,
    PersistenceError,
    SqlBlobStore,
    StateStore,
)
from tools.schedule_registry import DoseSchedule, IntervalSchedule
from tools.time_of_day import TimeOfDay, Window


NOW = datetime(2024, 3, 4, 9, 0)


@pytest.fixture
def state_store(blob_store):
    return StateStore(blob_store, version=1)


def envelope(data, version: int = 1) -> str:
    return json.dumps({"version": version, "data": data})


# =============================================================================
# Test Blob Stores
# =============================================================================

class TestSqlBlobStore:
    """Tests for the SQL-backed blob store"""

    @pytest.mark.unit
    def test_get_missing(self, session_factory):
        assert SqlBlobStore(session_factory).get("settings") is None

    @pytest.mark.unit
    def test_put_then_get(self, session_factory):
        store = SqlBlobStore(session_factory)
        store.put("settings", "one")
        store.put("settings", "two")

        assert store.get("settings") == "two"
        session = session_factory()
        try:
            assert session.query(StoredBlob).count() == 1
        finally:
            session.close()

    @pytest.mark.unit
    def test_database_errors_wrapped(self):
        """Test SQLAlchemy failures surface as PersistenceError"""
        from sqlalchemy.exc import OperationalError

        session = MagicMock()
        session.get.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
        store = SqlBlobStore(session_factory=lambda: session)

        with pytest.raises(PersistenceError):
            store.get("settings")
        session.rollback.assert_called_once()


class TestInMemoryBlobStore:
    """Tests for the dict-backed blob store"""

    @pytest.mark.unit
    def test_round_trip(self):
        store = InMemoryBlobStore({"a": "1"})
        store.put("b", "2")
        assert store.get("a") == "1"
        assert store.get("b") == "2"
        assert store.get("c") is None


# =============================================================================
# Test Settings
# =============================================================================

class TestSettingsPersistence:
    """Tests for hydration settings persistence"""

    @pytest.mark.unit
    def test_missing_uses_defaults(self, state_store):
        """Test defaults: 2000 ml, 60 min, 07:00-21:00, enabled"""
        schedule, last_fired = state_store.load_settings()

        assert schedule.goal_amount == 2000
        assert schedule.interval_minutes == 60
        assert schedule.window == Window.parse("07:00", "21:00")
        assert schedule.enabled is True
        assert last_fired is None

    @pytest.mark.unit
    def test_save_and_load(self, state_store):
        schedule = IntervalSchedule(window=Window.parse("08:00", "20:00"), interval_minutes=45, goal_amount=2500, enabled=False)

        assert state_store.save_settings(schedule, last_fired_at=NOW)
        loaded, last_fired = state_store.load_settings()

        assert loaded == schedule
        assert last_fired == NOW

    @pytest.mark.unit
    def test_partial_blob_fills_defaults(self, blob_store, state_store):
        blob_store.put(BlobKeys.SETTINGS, envelope({"daily_goal": 1500}))
        schedule, _ = state_store.load_settings()
        assert schedule.goal_amount == 1500
        assert schedule.interval_minutes == 60

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps({"data": {}}),
        envelope({"daily_goal": 1500}, version=99),
        envelope({"start_time": "25:00"}),
        envelope({"start_time": "22:00", "end_time": "06:00"}),
        envelope({"reminder_interval": 0}),
    ])
    def test_bad_blob_uses_defaults(self, blob_store, state_store, raw):
        """Test malformed, mis-versioned or invalid blobs fall back to defaults"""
        blob_store.put(BlobKeys.SETTINGS, raw)
        schedule, last_fired = state_store.load_settings()
        assert schedule == IntervalSchedule.defaults()
        assert last_fired is None

    @pytest.mark.unit
    def test_store_failure_on_load(self):
        failing = MagicMock()
        failing.get.side_effect = PersistenceError("offline")
        schedule, _ = StateStore(failing).load_settings()
        assert schedule == IntervalSchedule.defaults()

    @pytest.mark.unit
    def test_store_failure_on_save(self):
        failing = MagicMock()
        failing.put.side_effect = PersistenceError("read-only")
        assert StateStore(failing).save_settings(IntervalSchedule.defaults()) is False


# =============================================================================
# Test Medicines and Occurrences
# =============================================================================

class TestMedicinePersistence:
    """Tests for medicine list persistence"""

    @pytest.mark.unit
    def test_round_trip(self, state_store, metformin, lisinopril):
        assert state_store.save_medicines([metformin, lisinopril])
        assert state_store.load_medicines() == [metformin, lisinopril]

    @pytest.mark.unit
    def test_missing_is_empty(self, state_store):
        assert state_store.load_medicines() == []

    @pytest.mark.unit
    def test_invalid_records_skipped(self, blob_store, state_store, metformin):
        good = {"id": "m", "name": "M", "times": ["08:00"], "start_date": "2024-03-01"}
        duplicate_times = {"id": "d", "name": "D", "times": ["08:00", "08:00"], "start_date": "2024-03-01"}
        blob_store.put(BlobKeys.MEDICINES, envelope([good, duplicate_times, {"id": "x"}]))

        assert [m.id for m in state_store.load_medicines()] == ["m"]

    @pytest.mark.unit
    def test_not_a_list(self, blob_store, state_store):
        blob_store.put(BlobKeys.MEDICINES, envelope({"id": "m"}))
        assert state_store.load_medicines() == []


class TestOccurrencePersistence:
    """Tests for occurrence log persistence"""

    @pytest.mark.unit
    def test_round_trip(self, state_store):
        eight = TimeOfDay.parse("08:00")
        occurrences = [
            Occurrence.amount("water", 250, NOW),
            Occurrence.dose("m", DoseStatus.TAKEN, eight, date(2024, 3, 4), NOW, notes="with food"),
            Occurrence.dose(
                "m", DoseStatus.SNOOZED, TimeOfDay.parse("20:00"), date(2024, 3, 4), NOW,
                snoozed_until=NOW, snooze_count=2,
            ),
        ]

        assert state_store.save_occurrences(occurrences)
        assert state_store.load_occurrences() == occurrences

    @pytest.mark.unit
    def test_invalid_records_skipped(self, blob_store, state_store):
        records = [
            {"id": "a", "schedule_id": "water", "timestamp": "2024-03-04T09:00:00", "amount_ml": 250},
            {"id": "b", "schedule_id": "water", "timestamp": "2024-03-04T09:00:00"},
            {"id": "c", "schedule_id": "m", "timestamp": "2024-03-04T09:00:00", "status": "taken"},
            {"id": "d", "schedule_id": "water", "timestamp": "2024-03-04T09:00:00", "amount_ml": 0},
        ]
        blob_store.put(BlobKeys.OCCURRENCE_LOG, envelope(records))

        assert [o.id for o in state_store.load_occurrences()] == ["a"]

    @pytest.mark.unit
    def test_envelope_format(self, blob_store, state_store):
        state_store.save_occurrences([])
        assert json.loads(blob_store.get(BlobKeys.OCCURRENCE_LOG)) == {"version": 1, "data": []}
