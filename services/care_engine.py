"""
Care Engine
Caller-owned facade wiring the registry, occurrence log, evaluator and analyzer
to injected persistence and notification capabilities
"""

import logging
import threading
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from config import settings
from models import DoseStatus, RefillStatus
from actions.reminder_engine import (
    DoseSlot,
    DoseState,
    FireDecision,
    ReminderEvaluator,
    format_message,
)
from services.adherence_service import (
    AdherenceAnalyzer,
    AdherenceReport,
    HydrationSummary,
    RefillProjection,
)
from services.occurrence_log import Occurrence, OccurrenceLog
from services.persistence import BlobStore, InMemoryBlobStore, StateStore
from tools.notification_service import NotificationPriority, NotificationService, NotificationType
from tools.schedule_registry import (
    DoseSchedule,
    IntervalSchedule,
    ScheduleCheck,
    ScheduleNotFound,
    ScheduleRegistry,
)
from tools.time_of_day import TimeLike, TimeOfDay, parse_time, to_local_naive


logger = logging.getLogger(__name__)


class EngineEvent:
    """Names passed to change subscribers"""
    SETTINGS = "settings"
    SCHEDULES = "schedules"
    OCCURRENCES = "occurrences"


ChangeCallback = Callable[[str], None]

# Recorded outcomes a snooze may not overwrite
SETTLED_STATUSES = (DoseStatus.TAKEN, DoseStatus.SKIPPED, DoseStatus.MISSED)


class CareEngine:
    """
    One monitored person's reminder and adherence state

    The engine owns no timers and performs no I/O of its own: callers drive
    it with tick(now) at least once a minute and on user actions, and it
    talks to the outside only through the injected BlobStore and
    NotificationService.
    """

    WATER_ID = "water"

    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        notifier: Optional[NotificationService] = None,
        min_gap_minutes: Optional[int] = None,
        retention_days: Optional[int] = None,
        grace_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.store = StateStore(blob_store or InMemoryBlobStore())
        self.notifier = notifier or NotificationService()
        self.registry = ScheduleRegistry(min_gap_minutes=min_gap_minutes)
        self.log = OccurrenceLog(retention_days=retention_days)
        self.evaluator = ReminderEvaluator(self.registry, self.log, grace_minutes=grace_minutes)
        self.analyzer = AdherenceAnalyzer()
        self.clock = clock
        self._subscribers: List[ChangeCallback] = []
        self._write_lock = threading.RLock()

        self.registry.add(IntervalSchedule.defaults())

    # ==================== LIFECYCLE ====================

    def load(self):
        """Restore settings, medicines, log and last-fired from the blob store"""
        water, last_fired = self.store.load_settings()
        medicines = self.store.load_medicines()
        occurrences = self.store.load_occurrences()

        with self._write_lock:
            self.registry.replace_all([water] + medicines)
            self.log.load(occurrences)
            self.log.prune(now=self.clock())
            self.evaluator.restore_last_fired(self.WATER_ID, last_fired)

        logger.info(f"Loaded state: {len(medicines)} medicine(s), {len(self.log)} occurrence(s)")

    def save(self) -> bool:
        with self._write_lock:
            saved = [
                self._save_settings(),
                self.store.save_medicines(self.registry.dose_schedules()),
                self.store.save_occurrences(self.log.entries()),
            ]
        return all(saved)

    def subscribe(self, callback: ChangeCallback):
        self._subscribers.append(callback)

    def unsubscribe(self, callback: ChangeCallback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _instant(self, value: Optional[datetime]) -> datetime:
        """The given instant as naive local time, or the clock when omitted"""
        return self.clock() if value is None else to_local_naive(value)

    def _emit(self, event: str):
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Change subscriber failed on '{event}': {e}")

    def _save_settings(self) -> bool:
        return self.store.save_settings(self.water_settings(), self.evaluator.last_fired(self.WATER_ID))

    # ==================== WATER REMINDERS ====================

    def water_settings(self) -> IntervalSchedule:
        return self.registry.get(self.WATER_ID)

    def update_water_settings(self, **changes) -> IntervalSchedule:
        """
        Apply partial settings (window, interval_minutes, enabled, goal_amount)

        Disabling takes effect on the next tick; a decision already made
        under the old settings fails to commit.
        """
        with self._write_lock:
            updated = replace(self.water_settings(), **changes)
            self.registry.update(updated)
            self._save_settings()
        self._emit(EngineEvent.SETTINGS)
        return updated

    def log_water(self, amount_ml: int, at: Optional[datetime] = None) -> Occurrence:
        at = self._instant(at)
        with self._write_lock:
            occurrence = self.log.append(Occurrence.amount(self.WATER_ID, amount_ml, at), now=at)
            self.store.save_occurrences(self.log.entries())
        self._emit(EngineEvent.OCCURRENCES)
        return occurrence

    def log_glass(self, at: Optional[datetime] = None) -> Occurrence:
        return self.log_water(settings.GLASS_ML, at)

    def log_bottle(self, at: Optional[datetime] = None) -> Occurrence:
        return self.log_water(settings.BOTTLE_ML, at)

    def log_sip(self, at: Optional[datetime] = None) -> Occurrence:
        return self.log_water(settings.SIP_ML, at)

    def water_total(self, day: Optional[date] = None) -> int:
        return self.log.total_amount(self.WATER_ID, day or self.clock().date())

    def hydration_summary(self, now: Optional[datetime] = None) -> HydrationSummary:
        now = self._instant(now)
        return self.analyzer.hydration(self.water_total(now.date()), self.water_settings().goal_amount)

    def tick(self, now: Optional[datetime] = None) -> List[FireDecision]:
        """
        Evaluate every interval reminder, then commit and notify for each
        that should fire. A decision whose commit is rejected comes back
        with fire=False and nothing is notified.
        """
        now = self._instant(now)
        decisions = []
        for decision in self.evaluator.tick_all(now):
            if decision.fire:
                with self._write_lock:
                    committed = self.evaluator.commit(decision.schedule_id, now, decision.last_fired)
                    if committed:
                        self._save_settings()
                if committed:
                    self._notify_fire(decision, now)
                else:
                    decision = replace(decision, fire=False)
            decisions.append(decision)
        return decisions

    def _notify_fire(self, decision: FireDecision, now: datetime):
        title, body = format_message("water", **decision.context)
        self.notifier.notify(
            title=title,
            body=body,
            fire_at=now,
            notification_type=NotificationType.WATER_REMINDER,
            data={"schedule_id": decision.schedule_id, **decision.context},
        )

    # ==================== MEDICINES ====================

    def medicines(self) -> List[DoseSchedule]:
        return self.registry.dose_schedules()

    def get_medicine(self, schedule_id: str) -> DoseSchedule:
        schedule = self.registry.get(schedule_id)
        if not isinstance(schedule, DoseSchedule):
            raise ScheduleNotFound(schedule_id)
        return schedule

    def check_medicine(self, schedule: DoseSchedule) -> ScheduleCheck:
        """Dry-run conflict and name check"""
        schedule.validate_spacing(self.registry.min_gap_minutes)
        return self.registry.check(schedule)

    def add_medicine(self, schedule: DoseSchedule, allow_conflicts: bool = True) -> ScheduleCheck:
        with self._write_lock:
            check = self.registry.add(schedule, allow_conflicts=allow_conflicts)
            self.store.save_medicines(self.medicines())
        self._emit(EngineEvent.SCHEDULES)
        return check

    def update_medicine(self, schedule: DoseSchedule, allow_conflicts: bool = True) -> ScheduleCheck:
        with self._write_lock:
            self.get_medicine(schedule.id)
            check = self.registry.update(schedule, allow_conflicts=allow_conflicts)
            self.store.save_medicines(self.medicines())
        self._emit(EngineEvent.SCHEDULES)
        return check

    def remove_medicine(self, schedule_id: str) -> DoseSchedule:
        with self._write_lock:
            removed = self.get_medicine(schedule_id)
            self.registry.remove(schedule_id)
            self.store.save_medicines(self.medicines())
        self._emit(EngineEvent.SCHEDULES)
        return removed

    def record_dose(
        self,
        schedule_id: str,
        scheduled_time: TimeLike,
        status: DoseStatus,
        at: Optional[datetime] = None,
        day: Optional[date] = None,
        notes: Optional[str] = None
    ) -> Occurrence:
        """
        Record a dose status for (schedule, day, time), replacing any
        earlier record. The first TAKEN for a key uses one unit of tracked
        supply.
        """
        at = self._instant(at)
        day = day or at.date()
        t = parse_time(scheduled_time)

        with self._write_lock:
            schedule = self.get_medicine(schedule_id)
            self._require_dose_time(schedule, t)

            previous = self.log.find_dose(schedule_id, day, t)
            occurrence = self.log.append(
                Occurrence.dose(schedule_id, status, t, day, at, notes=notes),
                now=at,
            )

            if status == DoseStatus.TAKEN and (previous is None or previous.status != DoseStatus.TAKEN):
                self._use_supply(schedule)

            self.store.save_occurrences(self.log.entries())

        logger.info(f"Recorded {status.value} for {schedule.name} at {t} on {day}")
        self._emit(EngineEvent.OCCURRENCES)
        return occurrence

    def mark_taken(self, schedule_id: str, scheduled_time: TimeLike, **kwargs) -> Occurrence:
        return self.record_dose(schedule_id, scheduled_time, DoseStatus.TAKEN, **kwargs)

    def mark_skipped(self, schedule_id: str, scheduled_time: TimeLike, **kwargs) -> Occurrence:
        return self.record_dose(schedule_id, scheduled_time, DoseStatus.SKIPPED, **kwargs)

    def mark_missed(self, schedule_id: str, scheduled_time: TimeLike, **kwargs) -> Occurrence:
        return self.record_dose(schedule_id, scheduled_time, DoseStatus.MISSED, **kwargs)

    def snooze(
        self,
        schedule_id: str,
        scheduled_time: TimeLike,
        minutes: Optional[int] = None,
        at: Optional[datetime] = None,
        day: Optional[date] = None
    ) -> Occurrence:
        """
        Postpone a dose reminder; repeated snoozes count up. A dose already
        taken, skipped or missed cannot be snoozed.
        """
        at = self._instant(at)
        day = day or at.date()
        t = parse_time(scheduled_time)
        minutes = settings.DEFAULT_SNOOZE_MINUTES if minutes is None else minutes

        with self._write_lock:
            schedule = self.get_medicine(schedule_id)
            self._require_dose_time(schedule, t)

            previous = self.log.find_dose(schedule_id, day, t)
            if previous is not None and previous.status in SETTLED_STATUSES:
                raise ValueError(
                    f"{schedule.name} at {t} on {day} is already {previous.status.value} and cannot be snoozed"
                )
            count = previous.kind.snooze_count + 1 if previous is not None else 1
            occurrence = self.log.append(
                Occurrence.dose(
                    schedule_id, DoseStatus.SNOOZED, t, day, at,
                    snoozed_until=at + timedelta(minutes=minutes),
                    snooze_count=count,
                ),
                now=at,
            )
            self.store.save_occurrences(self.log.entries())

        self._emit(EngineEvent.OCCURRENCES)
        return occurrence

    def _require_dose_time(self, schedule: DoseSchedule, t: TimeOfDay):
        if t not in schedule.dose_times:
            raise ValueError(f"{schedule.name} has no dose scheduled at {t}")

    def _use_supply(self, schedule: DoseSchedule):
        if not schedule.tracks_quantity or schedule.remaining_quantity <= 0:
            return
        updated = replace(schedule, remaining_quantity=schedule.remaining_quantity - 1)
        self.registry.update(updated)
        self.store.save_medicines(self.medicines())
        logger.info(f"{schedule.name} supply now {updated.remaining_quantity}")
        self._emit(EngineEvent.SCHEDULES)

    # ==================== QUERIES ====================

    def dose_slots(self, now: Optional[datetime] = None, day: Optional[date] = None) -> List[DoseSlot]:
        now = self._instant(now)
        return self.evaluator.dose_slots(day or now.date(), now)

    def is_due(self, schedule_id: str, scheduled_time: TimeLike, now: Optional[datetime] = None) -> bool:
        return self.evaluator.is_due(schedule_id, parse_time(scheduled_time), self._instant(now))

    def daily_completion(self, now: Optional[datetime] = None) -> int:
        return self.analyzer.daily_completion(slot.state.value for slot in self.dose_slots(now))

    def implicit_misses(self, now: datetime, window_days: int) -> List[Occurrence]:
        """
        MISSED entries for active dose slots in the window whose deadline
        passed without a taken, skipped or missed record (a pending or
        snoozed record does not count). Derived on demand, never stored.
        """
        since = (now - timedelta(days=max(0, window_days))).date()
        misses = []
        day = since
        while day <= now.date():
            for slot in self.evaluator.dose_slots(day, now):
                if slot.state != DoseState.MISSED:
                    continue
                recorded = self.log.get(slot.occurrence_id) if slot.occurrence_id else None
                if recorded is None or recorded.status in (DoseStatus.PENDING, DoseStatus.SNOOZED):
                    scheduled_at = slot.scheduled_time.on(day)
                    misses.append(Occurrence.dose(
                        slot.schedule_id, DoseStatus.MISSED, slot.scheduled_time, day,
                        timestamp=scheduled_at,
                        auto_marked=True,
                        id=f"{slot.schedule_id}_auto_{day:%Y%m%d}_{slot.scheduled_time.minutes:04d}",
                    ))
            day += timedelta(days=1)
        return misses

    def adherence_report(
        self,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
        include_implicit_misses: bool = True
    ) -> AdherenceReport:
        now = self._instant(now)
        window_days = settings.ADHERENCE_WINDOW_DAYS if window_days is None else window_days
        logs = self.log.query(until=now)
        if include_implicit_misses:
            misses = self.implicit_misses(now, window_days)
            superseded = {m.dose_key for m in misses}
            logs = [log for log in logs if log.dose_key not in superseded] + misses
            logs.sort(key=lambda log: log.timestamp)
        return self.analyzer.report(self.medicines(), logs, now, window_days)

    def refill_projections(self) -> List[RefillProjection]:
        return self.analyzer.refill_projections(self.medicines())

    def notify_refills(self, now: Optional[datetime] = None) -> int:
        """Send one refill notification per medicine that is not OK"""
        now = self._instant(now)
        sent = 0
        for projection in self.refill_projections():
            if projection.status == RefillStatus.OK:
                continue
            priority = NotificationPriority.HIGH if projection.days_left <= 0 else NotificationPriority.NORMAL
            self.notifier.notify(
                title=f"Refill Needed: {projection.name}",
                body=(
                    f"Your {projection.name} supply is running low "
                    f"({projection.days_left} days left). Please arrange a refill."
                ),
                fire_at=now,
                notification_type=NotificationType.REFILL_REMINDER,
                priority=priority,
                data=projection.to_dict(),
            )
            sent += 1
        return sent

    def stats(self) -> Dict[str, int]:
        return {
            "medicines": len(self.medicines()),
            "occurrences": len(self.log),
        }
