"""
Persistence Service
Versioned, serialized state blobs behind an abstract key-value store
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import settings, BlobKeys
from database import SessionLocal, get_db_context
from models import DoseStatus, StoredBlob
from services.occurrence_log import AmountLogged, DoseEvent, Occurrence
from tools.schedule_registry import DoseSchedule, IntervalSchedule
from tools.time_of_day import TimeOfDay, Window


logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A blob could not be read or written"""


# ==================== BLOB STORES ====================

class BlobStore:
    """Key-value contract for opaque string blobs"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str) -> None:
        raise NotImplementedError


class InMemoryBlobStore(BlobStore):
    """Dict-backed store for tests and embedded use"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value


class SqlBlobStore(BlobStore):
    """Stores blobs as rows of the stored_blobs table"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        try:
            with get_db_context(self.session_factory) as db:
                row = db.get(StoredBlob, key)
                return row.payload if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read blob '{key}': {e}") from e

    def put(self, key: str, value: str) -> None:
        try:
            with get_db_context(self.session_factory) as db:
                row = db.get(StoredBlob, key)
                if row is None:
                    db.add(StoredBlob(key=key, payload=value, version=settings.STATE_VERSION))
                else:
                    row.payload = value
                    row.version = settings.STATE_VERSION
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write blob '{key}': {e}") from e


# ==================== SERIALIZED FORMS ====================

class Envelope(BaseModel):
    """Versioned wrapper around every persisted blob"""
    version: int
    data: Any


class WaterSettingsRecord(BaseModel):
    daily_goal: int = Field(default_factory=lambda: settings.DEFAULT_DAILY_GOAL_ML, ge=0)
    reminder_interval: int = Field(default_factory=lambda: settings.DEFAULT_REMINDER_INTERVAL_MINUTES, gt=0)
    start_time: str = Field(default_factory=lambda: settings.DEFAULT_WINDOW_START)
    end_time: str = Field(default_factory=lambda: settings.DEFAULT_WINDOW_END)
    enabled: bool = Field(default_factory=lambda: settings.DEFAULT_REMINDERS_ENABLED)
    last_fired_at: Optional[datetime] = None

    @classmethod
    def from_schedule(cls, schedule: IntervalSchedule, last_fired_at: Optional[datetime]) -> "WaterSettingsRecord":
        return cls(
            daily_goal=schedule.goal_amount,
            reminder_interval=schedule.interval_minutes,
            start_time=schedule.window.start.format(),
            end_time=schedule.window.end.format(),
            enabled=schedule.enabled,
            last_fired_at=last_fired_at,
        )

    def to_schedule(self) -> IntervalSchedule:
        return IntervalSchedule(
            window=Window.parse(self.start_time, self.end_time),
            interval_minutes=self.reminder_interval,
            enabled=self.enabled,
            goal_amount=self.daily_goal,
        )


class MedicineRecord(BaseModel):
    id: str
    name: str
    times: List[str]
    start_date: date
    end_date: Optional[date] = None
    is_ongoing: bool = True
    is_critical: bool = False
    dosage: str = ""
    instructions: str = ""
    total_quantity: Optional[int] = None
    remaining_quantity: Optional[int] = None
    refill_warning_days: Optional[int] = None

    @classmethod
    def from_schedule(cls, schedule: DoseSchedule) -> "MedicineRecord":
        return cls(
            id=schedule.id,
            name=schedule.name,
            times=[t.format() for t in schedule.dose_times],
            start_date=schedule.start_date,
            end_date=schedule.end_date,
            is_ongoing=schedule.is_ongoing,
            is_critical=schedule.critical,
            dosage=schedule.dosage,
            instructions=schedule.instructions,
            total_quantity=schedule.total_quantity,
            remaining_quantity=schedule.remaining_quantity,
            refill_warning_days=schedule.refill_warning_days,
        )

    def to_schedule(self) -> DoseSchedule:
        return DoseSchedule(
            id=self.id,
            name=self.name,
            dose_times=self.times,
            start_date=self.start_date,
            end_date=self.end_date,
            is_ongoing=self.is_ongoing,
            critical=self.is_critical,
            dosage=self.dosage,
            instructions=self.instructions,
            total_quantity=self.total_quantity,
            remaining_quantity=self.remaining_quantity,
            refill_warning_days=self.refill_warning_days,
        )


class OccurrenceRecord(BaseModel):
    id: str
    schedule_id: str
    timestamp: datetime
    amount_ml: Optional[int] = None
    status: Optional[DoseStatus] = None
    scheduled_time: Optional[str] = None
    scheduled_date: Optional[date] = None
    snoozed_until: Optional[datetime] = None
    snooze_count: int = 0
    auto_marked: bool = False
    notes: Optional[str] = None

    @classmethod
    def from_occurrence(cls, occurrence: Occurrence) -> "OccurrenceRecord":
        record = cls(
            id=occurrence.id,
            schedule_id=occurrence.schedule_id,
            timestamp=occurrence.timestamp,
            notes=occurrence.notes,
        )
        if isinstance(occurrence.kind, AmountLogged):
            record.amount_ml = occurrence.kind.ml
        else:
            event = occurrence.kind
            record.status = event.status
            record.scheduled_time = event.scheduled_time.format()
            record.scheduled_date = event.scheduled_date
            record.snoozed_until = event.snoozed_until
            record.snooze_count = event.snooze_count
            record.auto_marked = event.auto_marked
        return record

    def to_occurrence(self) -> Occurrence:
        if self.status is None:
            if self.amount_ml is None:
                raise ValueError(f"Occurrence {self.id} has neither an amount nor a status")
            kind = AmountLogged(self.amount_ml)
        else:
            if self.scheduled_time is None or self.scheduled_date is None:
                raise ValueError(f"Dose occurrence {self.id} is missing its scheduled time or date")
            kind = DoseEvent(
                status=self.status,
                scheduled_time=TimeOfDay.parse(self.scheduled_time),
                scheduled_date=self.scheduled_date,
                snoozed_until=self.snoozed_until,
                snooze_count=self.snooze_count,
                auto_marked=self.auto_marked,
            )
        return Occurrence(
            id=self.id,
            schedule_id=self.schedule_id,
            timestamp=self.timestamp,
            kind=kind,
            notes=self.notes,
        )


# ==================== STATE STORE ====================

class StateStore:
    """
    Loads and saves engine state through a BlobStore

    Loads never raise: a missing, malformed, mis-versioned or invalid blob
    falls back to defaults with a logged warning. Saves report failure as
    False instead of raising.
    """

    def __init__(self, blob_store: BlobStore, version: Optional[int] = None):
        self.blob_store = blob_store
        self.version = settings.STATE_VERSION if version is None else version

    # ---------- settings ----------

    def load_settings(self) -> Tuple[IntervalSchedule, Optional[datetime]]:
        data = self._read(BlobKeys.SETTINGS)
        if data is None:
            return IntervalSchedule.defaults(), None
        try:
            record = WaterSettingsRecord.model_validate(data)
            return record.to_schedule(), record.last_fired_at
        except (PydanticValidationError, ValueError) as e:
            logger.warning(f"Invalid settings blob, using defaults: {e}")
            return IntervalSchedule.defaults(), None

    def save_settings(self, schedule: IntervalSchedule, last_fired_at: Optional[datetime] = None) -> bool:
        record = WaterSettingsRecord.from_schedule(schedule, last_fired_at)
        return self._write(BlobKeys.SETTINGS, record.model_dump(mode="json"))

    # ---------- medicines ----------

    def load_medicines(self) -> List[DoseSchedule]:
        data = self._read(BlobKeys.MEDICINES)
        if not isinstance(data, list):
            if data is not None:
                logger.warning("Medicines blob is not a list, starting empty")
            return []

        medicines = []
        for item in data:
            try:
                medicines.append(MedicineRecord.model_validate(item).to_schedule())
            except (PydanticValidationError, ValueError) as e:
                logger.warning(f"Skipping invalid medicine record: {e}")
        return medicines

    def save_medicines(self, medicines: List[DoseSchedule]) -> bool:
        payload = [MedicineRecord.from_schedule(m).model_dump(mode="json") for m in medicines]
        return self._write(BlobKeys.MEDICINES, payload)

    # ---------- occurrence log ----------

    def load_occurrences(self) -> List[Occurrence]:
        data = self._read(BlobKeys.OCCURRENCE_LOG)
        if not isinstance(data, list):
            if data is not None:
                logger.warning("Occurrence log blob is not a list, starting empty")
            return []

        occurrences = []
        for item in data:
            try:
                occurrences.append(OccurrenceRecord.model_validate(item).to_occurrence())
            except (PydanticValidationError, ValueError) as e:
                logger.warning(f"Skipping invalid occurrence record: {e}")
        return occurrences

    def save_occurrences(self, occurrences: List[Occurrence]) -> bool:
        payload = [OccurrenceRecord.from_occurrence(o).model_dump(mode="json") for o in occurrences]
        return self._write(BlobKeys.OCCURRENCE_LOG, payload)

    # ---------- envelope handling ----------

    def _read(self, key: str) -> Optional[Any]:
        try:
            raw = self.blob_store.get(key)
        except PersistenceError as e:
            logger.warning(f"Could not load '{key}', using defaults: {e}")
            return None
        if raw is None:
            return None

        try:
            envelope = Envelope.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(f"Malformed '{key}' blob, using defaults: {e}")
            return None

        if envelope.version != self.version:
            logger.warning(f"Unsupported '{key}' blob version {envelope.version}, using defaults")
            return None
        return envelope.data

    def _write(self, key: str, data: Any) -> bool:
        raw = Envelope(version=self.version, data=data).model_dump_json()
        try:
            self.blob_store.put(key, raw)
            return True
        except PersistenceError as e:
            logger.warning(f"Could not save '{key}': {e}")
            return False
