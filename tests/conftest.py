"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all CareCadence tests.
Fixtures include a controllable clock, in-memory stores, a SQLite-backed
session factory, a configured engine and an API test client.
"""

import os
import sys
from datetime import datetime, date, timedelta
from typing import Generator, List

# Keep the application database in memory for the whole test session
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base
from app import create_app
from services.care_engine import CareEngine
from services.occurrence_log import OccurrenceLog
from services.persistence import InMemoryBlobStore
from tools.notification_service import NotificationRequest, NotificationService
from tools.schedule_registry import DoseSchedule, IntervalSchedule, ScheduleRegistry
from tools.time_of_day import Window


# A Monday morning inside the default 07:00-21:00 window
TEST_NOW = datetime(2024, 3, 4, 9, 0)


class FixedClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


# ==================== CLOCK / STORE FIXTURES ====================

@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to TEST_NOW"""
    return FixedClock(TEST_NOW)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def sent() -> List[NotificationRequest]:
    """Notifications captured by the test notifier"""
    return []


@pytest.fixture
def notifier(sent) -> NotificationService:
    service = NotificationService()
    service.register_handler(sent.append)
    return service


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )


# ==================== DOMAIN FIXTURES ====================

@pytest.fixture
def water_schedule() -> IntervalSchedule:
    """Default hydration reminder: 07:00-21:00, every 60 min, 2000 ml"""
    return IntervalSchedule(
        window=Window.parse("07:00", "21:00"),
        interval_minutes=60,
        goal_amount=2000,
    )


@pytest.fixture
def registry() -> ScheduleRegistry:
    return ScheduleRegistry(min_gap_minutes=15)


@pytest.fixture
def occurrence_log() -> OccurrenceLog:
    return OccurrenceLog(retention_days=7)


@pytest.fixture
def metformin() -> DoseSchedule:
    return DoseSchedule(
        id="metformin",
        name="Metformin",
        dose_times=["08:00", "20:00"],
        start_date=date(2024, 3, 1),
        dosage="500mg",
        instructions="Take with meals",
    )


@pytest.fixture
def lisinopril() -> DoseSchedule:
    return DoseSchedule(
        id="lisinopril",
        name="Lisinopril",
        dose_times=["09:00"],
        start_date=date(2024, 3, 1),
        dosage="10mg",
        total_quantity=30,
        remaining_quantity=10,
    )


@pytest.fixture
def engine(blob_store, notifier, clock) -> CareEngine:
    """Engine over an in-memory store with a pinned clock"""
    return CareEngine(
        blob_store=blob_store,
        notifier=notifier,
        min_gap_minutes=15,
        retention_days=7,
        clock=clock,
    )


# ==================== API FIXTURES ====================

@pytest.fixture(scope="function")
def client(engine) -> Generator[TestClient, None, None]:
    """FastAPI test client serving the test engine, without the background ticker"""
    app = create_app(engine_factory=lambda: engine, tick_interval_seconds=0)

    with TestClient(app) as test_client:
        yield test_client
