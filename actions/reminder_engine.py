"""
Reminder Engine
Decides when interval reminders fire and derives the due state of scheduled doses
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from config import settings
from models import DoseStatus
from services.adherence_service import glasses_remaining, remaining_to_goal
from services.occurrence_log import DoseEvent, Occurrence, OccurrenceLog
from tools.schedule_registry import DoseSchedule, IntervalSchedule, ScheduleRegistry
from tools.time_of_day import TimeOfDay


logger = logging.getLogger(__name__)


class DecisionReason(str, Enum):
    """Why a tick did or did not fire"""
    DISABLED = "disabled"
    OUTSIDE_WINDOW = "outside_window"
    GOAL_MET = "goal_met"
    COOLDOWN = "cooldown"
    DUE = "due"


class ReminderState(str, Enum):
    """Lifecycle of an interval reminder within its window"""
    IDLE = "idle"
    ARMED_IN_WINDOW = "armed_in_window"
    FIRED = "fired"


class DoseState(str, Enum):
    """Derived, display-oriented state of one scheduled dose"""
    UPCOMING = "upcoming"
    DUE = "due"
    OVERDUE = "overdue"
    MISSED = "missed"
    TAKEN = "taken"
    SKIPPED = "skipped"
    SNOOZED = "snoozed"


@dataclass(frozen=True)
class FireDecision:
    """Outcome of evaluating one interval schedule at one instant"""
    fire: bool
    reason: DecisionReason
    schedule_id: str = ""
    evaluated_at: Optional[datetime] = None
    last_fired: Optional[datetime] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.fire

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fire": self.fire,
            "reason": self.reason.value,
            "schedule_id": self.schedule_id,
            "evaluated_at": self.evaluated_at.isoformat() if self.evaluated_at else None,
            "last_fired": self.last_fired.isoformat() if self.last_fired else None,
            "context": self.context,
        }


@dataclass(frozen=True)
class DoseSlot:
    """One dose of one schedule on one day, with its derived state"""
    schedule_id: str
    name: str
    dosage: str
    scheduled_time: TimeOfDay
    day: date
    state: DoseState
    critical: bool = False
    occurrence_id: Optional[str] = None
    snoozed_until: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "name": self.name,
            "dosage": self.dosage,
            "scheduled_time": self.scheduled_time.format(),
            "date": self.day.isoformat(),
            "state": self.state.value,
            "critical": self.critical,
            "occurrence_id": self.occurrence_id,
            "snoozed_until": self.snoozed_until.isoformat() if self.snoozed_until else None,
        }


# Message templates
REMINDER_TEMPLATES = {
    "water": {
        "title": "Time to Drink Water!",
        "message": "Stay hydrated! {glasses_remaining} more glasses to reach your goal."
    },
}


def evaluate_interval(
    schedule: IntervalSchedule,
    now: datetime,
    last_fired: Optional[datetime],
    today_total: int = 0
) -> FireDecision:
    """
    Pure fire/do-not-fire decision for an interval reminder

    Checks, in order: enabled, inside the window, goal not yet met, and
    at least interval_minutes elapsed since last_fired (None = never fired).
    """
    def _no(reason: DecisionReason, **context) -> FireDecision:
        return FireDecision(
            fire=False, reason=reason, schedule_id=schedule.id,
            evaluated_at=now, last_fired=last_fired, context=context
        )

    if not schedule.enabled:
        return _no(DecisionReason.DISABLED)

    if not schedule.window.contains_datetime(now):
        return _no(DecisionReason.OUTSIDE_WINDOW)

    remaining = remaining_to_goal(today_total, schedule.goal_amount)
    if remaining <= 0:
        return _no(DecisionReason.GOAL_MET, remaining_ml=0, glasses_remaining=0)

    if last_fired is not None and now - last_fired < timedelta(minutes=schedule.interval_minutes):
        next_at = last_fired + timedelta(minutes=schedule.interval_minutes)
        return _no(DecisionReason.COOLDOWN, next_eligible_at=next_at.isoformat())

    return FireDecision(
        fire=True,
        reason=DecisionReason.DUE,
        schedule_id=schedule.id,
        evaluated_at=now,
        last_fired=last_fired,
        context={
            "remaining_ml": remaining,
            "glasses_remaining": glasses_remaining(remaining),
            "today_total_ml": today_total,
            "goal_ml": schedule.goal_amount,
        }
    )


def reminder_state(
    schedule: IntervalSchedule,
    now: datetime,
    last_fired: Optional[datetime]
) -> ReminderState:
    """Where an interval reminder sits in its Idle/Armed/Fired cycle"""
    if not schedule.enabled or not schedule.window.contains_datetime(now):
        return ReminderState.IDLE
    if last_fired is not None and now - last_fired < timedelta(minutes=schedule.interval_minutes):
        return ReminderState.FIRED
    return ReminderState.ARMED_IN_WINDOW


def missed_deadline(
    scheduled_time: TimeOfDay,
    day: date,
    grace_minutes: Optional[int] = None
) -> datetime:
    """Instant after which an unrecorded dose counts as missed"""
    if grace_minutes is None:
        return datetime.combine(day, time.max)
    return scheduled_time.on(day) + timedelta(minutes=grace_minutes)


def dose_state(
    scheduled_time: TimeOfDay,
    day: date,
    now: datetime,
    occurrence: Optional[Occurrence] = None,
    grace_minutes: Optional[int] = None,
    overdue_after_minutes: Optional[int] = None
) -> DoseState:
    """
    Derive the state of a dose from the clock and its recorded occurrence

    Recorded Taken/Skipped/Missed win. Past the grace deadline an
    unrecorded or snoozed dose is MISSED. Snoozed reads as SNOOZED until the
    snooze ends, then as due again. Otherwise the dose is UPCOMING before
    its time, DUE from its time and OVERDUE after overdue_after_minutes.
    """
    event = occurrence.kind if occurrence is not None and isinstance(occurrence.kind, DoseEvent) else None
    if event is not None:
        if event.status == DoseStatus.TAKEN:
            return DoseState.TAKEN
        if event.status == DoseStatus.SKIPPED:
            return DoseState.SKIPPED
        if event.status == DoseStatus.MISSED:
            return DoseState.MISSED

    if now > missed_deadline(scheduled_time, day, grace_minutes):
        return DoseState.MISSED

    if event is not None and event.status == DoseStatus.SNOOZED and event.snoozed_until and now < event.snoozed_until:
        return DoseState.SNOOZED

    scheduled_at = scheduled_time.on(day)
    if now < scheduled_at:
        return DoseState.UPCOMING

    overdue_after = settings.OVERDUE_AFTER_MINUTES if overdue_after_minutes is None else overdue_after_minutes
    if now > scheduled_at + timedelta(minutes=overdue_after):
        return DoseState.OVERDUE
    return DoseState.DUE


class ReminderEvaluator:
    """
    Stateful evaluator over a ScheduleRegistry and OccurrenceLog

    Holds the only mutable engine state: the last-fired instant per
    interval schedule. tick() never mutates; commit() is the single
    compare-and-set that records a fire.
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        log: OccurrenceLog,
        grace_minutes: Optional[int] = None,
        overdue_after_minutes: Optional[int] = None
    ):
        self.registry = registry
        self.log = log
        self.grace_minutes = settings.DOSE_GRACE_MINUTES if grace_minutes is None else grace_minutes
        self.overdue_after_minutes = (
            settings.OVERDUE_AFTER_MINUTES if overdue_after_minutes is None else overdue_after_minutes
        )
        self._last_fired: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    # ---------- interval reminders ----------

    def last_fired(self, schedule_id: str) -> Optional[datetime]:
        with self._lock:
            return self._last_fired.get(schedule_id)

    def restore_last_fired(self, schedule_id: str, fired_at: Optional[datetime]):
        """Seed last-fired from persisted state; None means never fired"""
        with self._lock:
            if fired_at is None:
                self._last_fired.pop(schedule_id, None)
            else:
                self._last_fired[schedule_id] = fired_at

    def tick(self, schedule_id: str, now: datetime) -> FireDecision:
        """Evaluate one interval schedule without side effects"""
        schedule = self.registry.get(schedule_id)
        if not isinstance(schedule, IntervalSchedule):
            raise TypeError(f"Schedule {schedule_id} is not an interval schedule")
        today_total = self.log.total_amount(schedule.id, now.date())
        return evaluate_interval(schedule, now, self.last_fired(schedule.id), today_total)

    def tick_all(self, now: datetime) -> List[FireDecision]:
        return [self.tick(s.id, now) for s in self.registry.interval_schedules()]

    def commit(
        self,
        schedule_id: str,
        fired_at: datetime,
        expected_last_fired: Optional[datetime]
    ) -> bool:
        """
        Record a fire if nothing changed since the decision was made

        Fails when another caller already committed (last-fired moved) or
        the schedule was disabled or removed in the meantime.
        """
        with self._lock:
            schedule = self.registry.find(schedule_id)
            if not isinstance(schedule, IntervalSchedule) or not schedule.enabled:
                logger.info(f"Commit for {schedule_id} rejected: schedule disabled or removed")
                return False

            current = self._last_fired.get(schedule_id)
            if current != expected_last_fired:
                logger.warning(f"Commit for {schedule_id} rejected: last-fired changed concurrently")
                return False
            self._last_fired[schedule_id] = fired_at

        logger.info(f"Reminder {schedule_id} fired at {fired_at.isoformat()}")
        return True

    def state(self, schedule_id: str, now: datetime) -> ReminderState:
        schedule = self.registry.get(schedule_id)
        return reminder_state(schedule, now, self.last_fired(schedule_id))

    # ---------- dose schedules ----------

    def dose_state(self, schedule: DoseSchedule, scheduled_time: TimeOfDay, day: date, now: datetime) -> DoseState:
        occurrence = self.log.find_dose(schedule.id, day, scheduled_time)
        return dose_state(
            scheduled_time, day, now, occurrence,
            grace_minutes=self.grace_minutes,
            overdue_after_minutes=self.overdue_after_minutes
        )

    def is_due(self, schedule_id: str, scheduled_time: TimeOfDay, now: datetime) -> bool:
        """A dose is due from its time until recorded or missed"""
        schedule = self.registry.get(schedule_id)
        if not isinstance(schedule, DoseSchedule) or not schedule.is_active_on(now.date()):
            return False
        return self.dose_state(schedule, scheduled_time, now.date(), now) in (DoseState.DUE, DoseState.OVERDUE)

    def dose_slots(self, day: date, now: datetime) -> List[DoseSlot]:
        """Every dose of every schedule active on `day`, sorted by time"""
        slots = []
        for schedule in self.registry.dose_schedules():
            if not schedule.is_active_on(day):
                continue
            for t in schedule.dose_times:
                occurrence = self.log.find_dose(schedule.id, day, t)
                state = dose_state(
                    t, day, now, occurrence,
                    grace_minutes=self.grace_minutes,
                    overdue_after_minutes=self.overdue_after_minutes
                )
                snoozed_until = None
                if occurrence is not None and isinstance(occurrence.kind, DoseEvent):
                    snoozed_until = occurrence.kind.snoozed_until
                slots.append(DoseSlot(
                    schedule_id=schedule.id,
                    name=schedule.name,
                    dosage=schedule.dosage,
                    scheduled_time=t,
                    day=day,
                    state=state,
                    critical=schedule.critical,
                    occurrence_id=occurrence.id if occurrence else None,
                    snoozed_until=snoozed_until,
                ))
        slots.sort(key=lambda s: (s.scheduled_time, s.name))
        return slots

    def due_doses(self, now: datetime) -> List[DoseSlot]:
        return [
            s for s in self.dose_slots(now.date(), now)
            if s.state in (DoseState.DUE, DoseState.OVERDUE)
        ]


def format_message(template_type: str, **kwargs) -> tuple:
    """Format reminder title and body from a template"""
    template = REMINDER_TEMPLATES.get(template_type, {})
    title = template.get("title", "Reminder")
    message = template.get("message", "")

    try:
        title = title.format(**kwargs)
        message = message.format(**kwargs).strip()
    except KeyError as e:
        logger.warning(f"Missing template variable: {e}")

    return title, message
