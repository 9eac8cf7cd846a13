"""
Adherence Service
Aggregates the occurrence log into compliance reports, refill projections and hydration progress
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from config import settings
from models import DoseStatus, RefillStatus
from services.occurrence_log import DoseEvent, Occurrence
from tools.schedule_registry import DoseSchedule
from tools.time_of_day import TimeOfDay


logger = logging.getLogger(__name__)


def percent(part: int, whole: int) -> int:
    """round(100 * part / whole) with halves rounded up; 0 when whole is 0"""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def remaining_to_goal(today_total: int, goal_amount: int) -> int:
    return max(0, goal_amount - today_total)


def glasses_remaining(remaining_ml: int, glass_ml: Optional[int] = None) -> int:
    glass = glass_ml or settings.GLASS_ML
    return -(-remaining_ml // glass) if remaining_ml > 0 else 0


@dataclass(frozen=True)
class ItemAdherence:
    """Adherence for one medicine"""
    item_id: str
    name: str
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    total: int = 0

    @property
    def rate_pct(self) -> int:
        return percent(self.taken, self.total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "taken": self.taken,
            "missed": self.missed,
            "skipped": self.skipped,
            "total": self.total,
            "rate_pct": self.rate_pct,
        }


@dataclass(frozen=True)
class AdherenceReport:
    """Derived compliance figures over a trailing window"""
    window_days: int
    total: int = 0
    taken: int = 0
    missed: int = 0
    skipped: int = 0
    overall_rate_pct: int = 0
    per_item: List[ItemAdherence] = field(default_factory=list)
    most_missed_time: Optional[TimeOfDay] = None

    @classmethod
    def empty(cls, window_days: int) -> "AdherenceReport":
        return cls(window_days=window_days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_days": self.window_days,
            "total": self.total,
            "taken": self.taken,
            "missed": self.missed,
            "skipped": self.skipped,
            "overall_rate_pct": self.overall_rate_pct,
            "per_item": [item.to_dict() for item in self.per_item],
            "most_missed_time": self.most_missed_time.format() if self.most_missed_time else None,
        }


@dataclass(frozen=True)
class RefillProjection:
    """How many days of supply remain for a quantity-tracked medicine"""
    schedule_id: str
    name: str
    remaining_quantity: int
    frequency: int
    days_left: int
    status: RefillStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "name": self.name,
            "remaining_quantity": self.remaining_quantity,
            "frequency": self.frequency,
            "days_left": self.days_left,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class HydrationSummary:
    """Today's water intake against the goal"""
    total_ml: int
    goal_ml: int
    remaining_ml: int
    progress_pct: int
    glasses_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_ml": self.total_ml,
            "goal_ml": self.goal_ml,
            "remaining_ml": self.remaining_ml,
            "progress_pct": self.progress_pct,
            "glasses_remaining": self.glasses_remaining,
        }


class AdherenceAnalyzer:
    """
    Total functions over schedules and logs: degenerate input yields a
    zero report, never an exception.
    """

    def __init__(self, refill_warning_days: Optional[int] = None):
        self.refill_warning_days = (
            settings.REFILL_WARNING_DAYS if refill_warning_days is None else refill_warning_days
        )

    def report(
        self,
        medicines: Sequence[DoseSchedule],
        logs: Iterable[Occurrence],
        now: datetime,
        window_days: Optional[int] = None
    ) -> AdherenceReport:
        """
        Compliance over logs timestamped within [now - window_days, now]

        Amount entries are ignored. Per-item rows are produced for each
        medicine passed in; logs for unknown medicines still count overall.
        """
        window_days = settings.ADHERENCE_WINDOW_DAYS if window_days is None else window_days
        since = now - timedelta(days=max(0, window_days))

        recent = [
            log for log in logs
            if isinstance(log.kind, DoseEvent) and since <= log.timestamp <= now
        ]
        if not recent:
            return AdherenceReport.empty(window_days)

        taken = self._count(recent, DoseStatus.TAKEN)
        missed = self._count(recent, DoseStatus.MISSED)
        skipped = self._count(recent, DoseStatus.SKIPPED)

        per_item = []
        for medicine in medicines:
            item_logs = [log for log in recent if log.schedule_id == medicine.id]
            per_item.append(ItemAdherence(
                item_id=medicine.id,
                name=medicine.name,
                taken=self._count(item_logs, DoseStatus.TAKEN),
                missed=self._count(item_logs, DoseStatus.MISSED),
                skipped=self._count(item_logs, DoseStatus.SKIPPED),
                total=len(item_logs),
            ))

        return AdherenceReport(
            window_days=window_days,
            total=len(recent),
            taken=taken,
            missed=missed,
            skipped=skipped,
            overall_rate_pct=percent(taken, len(recent)),
            per_item=per_item,
            most_missed_time=self.most_missed_time(recent),
        )

    @staticmethod
    def most_missed_time(logs: Iterable[Occurrence]) -> Optional[TimeOfDay]:
        """Scheduled time with the most MISSED entries; ties go to the first seen"""
        counts: Dict[TimeOfDay, int] = {}
        for log in logs:
            if log.status == DoseStatus.MISSED:
                t = log.kind.scheduled_time
                counts[t] = counts.get(t, 0) + 1

        best, best_count = None, 0
        for t, count in counts.items():
            if count > best_count:
                best, best_count = t, count
        return best

    def project_refill(
        self,
        medicine: DoseSchedule,
        warning_days: Optional[int] = None
    ) -> Optional[RefillProjection]:
        """days_left = remaining // frequency; None when quantity is not tracked"""
        if not medicine.tracks_quantity or medicine.frequency == 0:
            return None

        threshold = warning_days
        if threshold is None:
            threshold = medicine.refill_warning_days
        if threshold is None:
            threshold = self.refill_warning_days

        days_left = medicine.remaining_quantity // medicine.frequency
        if days_left <= 0:
            status = RefillStatus.CRITICAL
        elif days_left <= threshold:
            status = RefillStatus.WARNING
        else:
            status = RefillStatus.OK

        return RefillProjection(
            schedule_id=medicine.id,
            name=medicine.name,
            remaining_quantity=medicine.remaining_quantity,
            frequency=medicine.frequency,
            days_left=days_left,
            status=status,
        )

    def refill_projections(self, medicines: Iterable[DoseSchedule]) -> List[RefillProjection]:
        projections = [self.project_refill(m) for m in medicines]
        return [p for p in projections if p is not None]

    @staticmethod
    def hydration(total_ml: int, goal_ml: int, glass_ml: Optional[int] = None) -> HydrationSummary:
        remaining = remaining_to_goal(total_ml, goal_ml)
        progress = min(100, percent(total_ml, goal_ml)) if goal_ml > 0 else 100
        return HydrationSummary(
            total_ml=total_ml,
            goal_ml=goal_ml,
            remaining_ml=remaining,
            progress_pct=progress,
            glasses_remaining=glasses_remaining(remaining, glass_ml),
        )

    @staticmethod
    def daily_completion(states: Iterable[str]) -> int:
        """Share of today's dose slots already taken"""
        states = list(states)
        return percent(sum(1 for s in states if s == DoseStatus.TAKEN.value), len(states))

    @staticmethod
    def _count(logs: Iterable[Occurrence], status: DoseStatus) -> int:
        return sum(1 for log in logs if log.status == status)
