"""
Schedule Registry
Holds recurring reminder and dose schedules and checks them against each other
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

from config import settings
from tools.time_of_day import TimeOfDay, TimeLike, Window, minute_gap, parse_time


logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Hard rejection of a schedule definition"""


class ScheduleNotFound(KeyError):
    """No schedule registered under the given id"""


@dataclass(frozen=True)
class ConflictReport:
    """A dose time too close to a dose time of another schedule"""
    offending_time: TimeOfDay
    schedule_id: Optional[str]
    conflicting_schedule_id: str
    conflicting_time: TimeOfDay
    conflicting_name: str = ""

    @property
    def gap_minutes(self) -> int:
        return minute_gap(self.offending_time, self.conflicting_time)

    def to_dict(self) -> Dict[str, object]:
        return {
            "offending_time": self.offending_time.format(),
            "schedule_id": self.schedule_id,
            "conflicting_schedule_id": self.conflicting_schedule_id,
            "conflicting_name": self.conflicting_name,
            "conflicting_time": self.conflicting_time.format(),
            "gap_minutes": self.gap_minutes,
        }


@dataclass
class ScheduleCheck:
    """Advisory result of checking a dose schedule against the registry"""
    conflicts: List[ConflictReport] = field(default_factory=list)
    name_collisions: List[str] = field(default_factory=list)  # ids sharing the display name

    @property
    def has_warnings(self) -> bool:
        return bool(self.conflicts or self.name_collisions)


class ConflictWarning(UserWarning):
    """
    Raised when strict checking is requested and the candidate schedule has
    time conflicts or a name collision. Nothing was stored.
    """

    def __init__(self, check: ScheduleCheck):
        self.check = check
        parts = []
        if check.conflicts:
            parts.append(f"{len(check.conflicts)} dose time conflict(s)")
        if check.name_collisions:
            parts.append(f"name shared with {', '.join(check.name_collisions)}")
        super().__init__("; ".join(parts) or "schedule warnings")


@dataclass(frozen=True)
class IntervalSchedule:
    """A repeating reminder (e.g. drink water) inside a daily window"""
    window: Window
    interval_minutes: int
    enabled: bool = True
    goal_amount: int = 2000
    id: str = "water"
    name: str = "Water"

    def __post_init__(self):
        if self.interval_minutes <= 0:
            raise ValidationError(f"Interval must be positive, got {self.interval_minutes}")
        if self.goal_amount < 0:
            raise ValidationError(f"Goal amount cannot be negative, got {self.goal_amount}")

    @classmethod
    def defaults(cls) -> "IntervalSchedule":
        return cls(
            window=Window.parse(settings.DEFAULT_WINDOW_START, settings.DEFAULT_WINDOW_END),
            interval_minutes=settings.DEFAULT_REMINDER_INTERVAL_MINUTES,
            enabled=settings.DEFAULT_REMINDERS_ENABLED,
            goal_amount=settings.DEFAULT_DAILY_GOAL_ML,
        )


@dataclass(frozen=True)
class DoseSchedule:
    """
    Fixed-time recurring doses of one medicine.

    dose_times is kept sorted and duplicate-free; frequency is always
    len(dose_times) and cannot be set on its own.
    """
    id: str
    name: str
    dose_times: Sequence[TimeLike]
    start_date: date
    end_date: Optional[date] = None
    is_ongoing: bool = True
    critical: bool = False
    dosage: str = ""
    instructions: str = ""
    total_quantity: Optional[int] = None
    remaining_quantity: Optional[int] = None
    refill_warning_days: Optional[int] = None

    def __post_init__(self):
        times = [parse_time(t) for t in self.dose_times]
        object.__setattr__(self, "dose_times", tuple(sorted(times)))
        self.validate(times)

    def validate(self, times: Sequence[TimeOfDay]):
        if not self.id:
            raise ValidationError("Dose schedule requires an id")
        if not self.name or not self.name.strip():
            raise ValidationError("Dose schedule requires a name")
        if not times:
            raise ValidationError(f"{self.name}: at least one dose time is required")
        if len(times) > settings.MAX_DOSE_TIMES:
            raise ValidationError(
                f"{self.name}: at most {settings.MAX_DOSE_TIMES} dose times per day, got {len(times)}"
            )
        seen = set()
        for t in times:
            if t in seen:
                raise ValidationError(f"{self.name}: duplicate dose time {t}")
            seen.add(t)
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValidationError(f"{self.name}: end date {self.end_date} is before start date {self.start_date}")
        for qty_name in ("total_quantity", "remaining_quantity"):
            qty = getattr(self, qty_name)
            if qty is not None and qty < 0:
                raise ValidationError(f"{self.name}: {qty_name} cannot be negative")

    def validate_spacing(self, min_gap_minutes: int):
        """Reject dose times of this schedule closer together than min_gap_minutes"""
        for earlier, later in zip(self.dose_times, self.dose_times[1:]):
            if minute_gap(earlier, later) < min_gap_minutes:
                raise ValidationError(
                    f"{self.name}: dose times {earlier} and {later} are less than "
                    f"{min_gap_minutes} minutes apart"
                )

    @property
    def frequency(self) -> int:
        return len(self.dose_times)

    @property
    def tracks_quantity(self) -> bool:
        return self.remaining_quantity is not None

    def is_active_on(self, day: date) -> bool:
        """Check whether doses are scheduled on the given calendar day"""
        if day < self.start_date:
            return False
        if self.is_ongoing or self.end_date is None:
            return True
        return day <= self.end_date

    def days_remaining(self, today: date) -> Optional[int]:
        """Days left in a fixed-length course, None when ongoing"""
        if self.is_ongoing or self.end_date is None:
            return None
        return max(0, (self.end_date - today).days)

    def with_times(self, dose_times: Iterable[TimeLike]) -> "DoseSchedule":
        return replace(self, dose_times=tuple(dose_times))


Schedule = Union[IntervalSchedule, DoseSchedule]


class ScheduleRegistry:
    """
    In-memory registry of recurring schedules

    All reads and writes hold one re-entrant lock, so a conflict check
    and the insertion that follows it see the same snapshot.
    """

    def __init__(self, min_gap_minutes: Optional[int] = None):
        self.min_gap_minutes = settings.MIN_DOSE_GAP_MINUTES if min_gap_minutes is None else min_gap_minutes
        self._schedules: Dict[str, Schedule] = {}
        self._lock = threading.RLock()

    # ---------- queries ----------

    def get(self, schedule_id: str) -> Schedule:
        with self._lock:
            try:
                return self._schedules[schedule_id]
            except KeyError:
                raise ScheduleNotFound(schedule_id) from None

    def find(self, schedule_id: str) -> Optional[Schedule]:
        with self._lock:
            return self._schedules.get(schedule_id)

    def list(self) -> List[Schedule]:
        with self._lock:
            return list(self._schedules.values())

    def dose_schedules(self) -> List[DoseSchedule]:
        return [s for s in self.list() if isinstance(s, DoseSchedule)]

    def interval_schedules(self) -> List[IntervalSchedule]:
        return [s for s in self.list() if isinstance(s, IntervalSchedule)]

    def __contains__(self, schedule_id: str) -> bool:
        with self._lock:
            return schedule_id in self._schedules

    def __len__(self) -> int:
        with self._lock:
            return len(self._schedules)

    # ---------- checks ----------

    def check_conflicts(
        self,
        candidate_dose_times: Iterable[TimeLike],
        excluding_id: Optional[str] = None
    ) -> List[ConflictReport]:
        """
        Compare candidate dose times with every dose time of every other
        DoseSchedule. Times closer than min_gap_minutes (by minute of day)
        are reported; exactly min_gap_minutes apart is not a conflict.
        """
        candidates = [parse_time(t) for t in candidate_dose_times]
        reports: List[ConflictReport] = []

        with self._lock:
            for other in self._schedules.values():
                if not isinstance(other, DoseSchedule) or other.id == excluding_id:
                    continue
                for t in candidates:
                    for other_t in other.dose_times:
                        if minute_gap(t, other_t) < self.min_gap_minutes:
                            reports.append(ConflictReport(
                                offending_time=t,
                                schedule_id=excluding_id,
                                conflicting_schedule_id=other.id,
                                conflicting_time=other_t,
                                conflicting_name=other.name,
                            ))
        return reports

    def check_name_collisions(self, name: str, excluding_id: Optional[str] = None) -> List[str]:
        """Ids of other dose schedules with the same display name (case-insensitive)"""
        key = name.strip().casefold()
        with self._lock:
            return [
                s.id for s in self._schedules.values()
                if isinstance(s, DoseSchedule) and s.id != excluding_id and s.name.strip().casefold() == key
            ]

    def check(self, schedule: DoseSchedule) -> ScheduleCheck:
        with self._lock:
            return ScheduleCheck(
                conflicts=self.check_conflicts(schedule.dose_times, excluding_id=schedule.id),
                name_collisions=self.check_name_collisions(schedule.name, excluding_id=schedule.id),
            )

    # ---------- mutations ----------

    def add(self, schedule: Schedule, allow_conflicts: bool = True) -> ScheduleCheck:
        """
        Register a new schedule

        Returns the advisory ScheduleCheck. With allow_conflicts=False any
        warning raises ConflictWarning and nothing is stored.
        """
        with self._lock:
            if schedule.id in self._schedules:
                raise ValidationError(f"Schedule '{schedule.id}' already exists")
            check = self._check_for_write(schedule, allow_conflicts)
            self._schedules[schedule.id] = schedule
        logger.info(f"Added schedule {schedule.id}")
        return check

    def update(self, schedule: Schedule, allow_conflicts: bool = True) -> ScheduleCheck:
        """Replace an existing schedule; its own prior times are not conflicts"""
        with self._lock:
            if schedule.id not in self._schedules:
                raise ScheduleNotFound(schedule.id)
            check = self._check_for_write(schedule, allow_conflicts)
            self._schedules[schedule.id] = schedule
        logger.info(f"Updated schedule {schedule.id}")
        return check

    def upsert(self, schedule: Schedule) -> ScheduleCheck:
        with self._lock:
            if schedule.id in self._schedules:
                return self.update(schedule)
            return self.add(schedule)

    def remove(self, schedule_id: str) -> Schedule:
        with self._lock:
            try:
                removed = self._schedules.pop(schedule_id)
            except KeyError:
                raise ScheduleNotFound(schedule_id) from None
        logger.info(f"Removed schedule {schedule_id}")
        return removed

    def replace_all(self, schedules: Iterable[Schedule]):
        """Load a snapshot wholesale (used when restoring persisted state)"""
        with self._lock:
            self._schedules = {s.id: s for s in schedules}

    def _check_for_write(self, schedule: Schedule, allow_conflicts: bool) -> ScheduleCheck:
        if not isinstance(schedule, DoseSchedule):
            return ScheduleCheck()
        schedule.validate_spacing(self.min_gap_minutes)
        check = self.check(schedule)
        if check.has_warnings:
            if not allow_conflicts:
                raise ConflictWarning(check)
            logger.warning(
                f"Schedule {schedule.id} stored with {len(check.conflicts)} conflict(s) "
                f"and {len(check.name_collisions)} name collision(s)"
            )
        return check
