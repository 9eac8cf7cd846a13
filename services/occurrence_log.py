"""
Occurrence Log
Append-only record of logged water amounts and dose statuses, with retention pruning
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple, Union

from config import settings
from models import DoseStatus
from tools.time_of_day import TimeOfDay


logger = logging.getLogger(__name__)


DoseKey = Tuple[str, date, TimeOfDay]


@dataclass(frozen=True)
class AmountLogged:
    """An amount logged against an interval schedule (water, in ml)"""
    ml: int

    def __post_init__(self):
        if self.ml <= 0:
            raise ValueError(f"Logged amount must be positive, got {self.ml}")


@dataclass(frozen=True)
class DoseEvent:
    """Status of one scheduled dose on one calendar date"""
    status: DoseStatus
    scheduled_time: TimeOfDay
    scheduled_date: date
    snoozed_until: Optional[datetime] = None
    snooze_count: int = 0
    auto_marked: bool = False


OccurrenceKind = Union[AmountLogged, DoseEvent]


def _generate_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Occurrence:
    """A recorded real-world event tied to a schedule"""
    schedule_id: str
    timestamp: datetime
    kind: OccurrenceKind
    id: str = field(default_factory=_generate_id)
    notes: Optional[str] = None

    @classmethod
    def amount(cls, schedule_id: str, ml: int, timestamp: datetime, **kwargs) -> "Occurrence":
        return cls(schedule_id=schedule_id, timestamp=timestamp, kind=AmountLogged(ml), **kwargs)

    @classmethod
    def dose(
        cls,
        schedule_id: str,
        status: DoseStatus,
        scheduled_time: TimeOfDay,
        scheduled_date: date,
        timestamp: datetime,
        **kwargs
    ) -> "Occurrence":
        event_fields = {k: kwargs.pop(k) for k in ("snoozed_until", "snooze_count", "auto_marked") if k in kwargs}
        return cls(
            schedule_id=schedule_id,
            timestamp=timestamp,
            kind=DoseEvent(status, scheduled_time, scheduled_date, **event_fields),
            **kwargs
        )

    @property
    def is_dose(self) -> bool:
        return isinstance(self.kind, DoseEvent)

    @property
    def status(self) -> Optional[DoseStatus]:
        return self.kind.status if isinstance(self.kind, DoseEvent) else None

    @property
    def amount_ml(self) -> int:
        return self.kind.ml if isinstance(self.kind, AmountLogged) else 0

    @property
    def dose_key(self) -> Optional[DoseKey]:
        """(schedule_id, date, scheduled_time) for dose entries, None for amounts"""
        if isinstance(self.kind, DoseEvent):
            return (self.schedule_id, self.kind.scheduled_date, self.kind.scheduled_time)
        return None

    @property
    def entry_date(self) -> date:
        """Calendar date the entry belongs to, used for retention"""
        if isinstance(self.kind, DoseEvent):
            return self.kind.scheduled_date
        return self.timestamp.date()


class OccurrenceLog:
    """
    In-memory occurrence log

    Dose entries are unique per (schedule_id, date, scheduled_time): appending
    again replaces the earlier entry and keeps its id. Amount entries are
    never deduplicated.
    """

    def __init__(self, retention_days: Optional[int] = None):
        self.retention_days = settings.LOG_RETENTION_DAYS if retention_days is None else retention_days
        self._entries: Dict[str, Occurrence] = {}
        self._dose_index: Dict[DoseKey, str] = {}
        self._lock = threading.RLock()

    def append(self, occurrence: Occurrence, now: Optional[datetime] = None) -> Occurrence:
        """
        Record an occurrence, replacing any dose entry with the same key.

        Pruning runs opportunistically afterwards relative to `now`.
        """
        with self._lock:
            key = occurrence.dose_key
            if key is not None and key in self._dose_index:
                existing_id = self._dose_index[key]
                occurrence = replace(occurrence, id=existing_id)
                logger.debug(f"Replacing dose entry {existing_id} for {key[0]} at {key[2]} on {key[1]}")
            self._entries[occurrence.id] = occurrence
            if key is not None:
                self._dose_index[key] = occurrence.id

            self.prune(now=now or datetime.now())
        return occurrence

    def find_dose(self, schedule_id: str, day: date, scheduled_time: TimeOfDay) -> Optional[Occurrence]:
        with self._lock:
            entry_id = self._dose_index.get((schedule_id, day, scheduled_time))
            return self._entries.get(entry_id) if entry_id else None

    def get(self, occurrence_id: str) -> Optional[Occurrence]:
        with self._lock:
            return self._entries.get(occurrence_id)

    def query(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        schedule_id: Optional[str] = None
    ) -> List[Occurrence]:
        """Entries with since <= timestamp <= until, ordered by timestamp ascending"""
        with self._lock:
            entries = list(self._entries.values())

        if since is not None:
            entries = [e for e in entries if e.timestamp >= since]
        if until is not None:
            entries = [e for e in entries if e.timestamp <= until]
        if schedule_id is not None:
            entries = [e for e in entries if e.schedule_id == schedule_id]

        entries.sort(key=lambda e: e.timestamp)
        return entries

    def entries(self) -> List[Occurrence]:
        return self.query()

    def for_date(self, day: date, schedule_id: Optional[str] = None) -> List[Occurrence]:
        return [e for e in self.query(schedule_id=schedule_id) if e.entry_date == day]

    def total_amount(self, schedule_id: str, day: date) -> int:
        """Sum of amounts logged for a schedule on a calendar day"""
        return sum(e.amount_ml for e in self.for_date(day, schedule_id=schedule_id))

    def remove(self, occurrence_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(occurrence_id, None)
            if entry is None:
                return False
            if entry.dose_key is not None:
                self._dose_index.pop(entry.dose_key, None)
            return True

    def remove_schedule(self, schedule_id: str) -> int:
        """Drop every entry belonging to a schedule"""
        with self._lock:
            ids = [e.id for e in self._entries.values() if e.schedule_id == schedule_id]
            for entry_id in ids:
                self.remove(entry_id)
        return len(ids)

    def prune(self, retention_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """
        Remove entries whose date is before today - retention_days.

        Today's entries always survive, even with retention_days == 0.
        """
        days = self.retention_days if retention_days is None else retention_days
        today = (now or datetime.now()).date()
        cutoff = today - timedelta(days=max(0, days))

        with self._lock:
            stale = [
                e.id for e in self._entries.values()
                if e.entry_date < cutoff and e.entry_date != today
            ]
            for entry_id in stale:
                self.remove(entry_id)

        if stale:
            logger.info(f"Pruned {len(stale)} occurrence(s) older than {cutoff}")
        return len(stale)

    def load(self, occurrences: List[Occurrence]):
        """Replace the log contents with a restored snapshot"""
        with self._lock:
            self._entries = {}
            self._dose_index = {}
            for occurrence in sorted(occurrences, key=lambda e: e.timestamp):
                key = occurrence.dose_key
                if key is not None and key in self._dose_index:
                    # later entries win, keeping the first id
                    occurrence = replace(occurrence, id=self._dose_index[key])
                self._entries[occurrence.id] = occurrence
                if key is not None:
                    self._dose_index[key] = occurrence.id

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
