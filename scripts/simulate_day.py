#!/usr/bin/env python
"""
Simulate Day
Drive the care engine through one or more days of ticks with sample medicines
and randomized user behaviour, then print the resulting adherence report
"""

import sys
import os
import argparse
import logging
import random
from datetime import datetime, timedelta, date
from typing import Dict, List, Optional

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import DoseStatus
from services.care_engine import CareEngine
from services.persistence import InMemoryBlobStore, SqlBlobStore
from tools.schedule_registry import DoseSchedule


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


SAMPLE_MEDICINES = [
    {"id": "metformin", "name": "Metformin", "dosage": "500mg", "times": ["08:00", "20:00"], "remaining": 40},
    {"id": "lisinopril", "name": "Lisinopril", "dosage": "10mg", "times": ["09:00"], "remaining": 6},
    {"id": "atorvastatin", "name": "Atorvastatin", "dosage": "20mg", "times": ["21:30"], "remaining": None},
]


class SimulatedClock:
    """Clock the simulation advances by hand"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def seed_medicines(engine: CareEngine, start: date):
    """Add the sample medicines if they are not already registered"""
    existing = {m.id for m in engine.medicines()}
    for med in SAMPLE_MEDICINES:
        if med["id"] in existing:
            continue
        engine.add_medicine(DoseSchedule(
            id=med["id"],
            name=med["name"],
            dosage=med["dosage"],
            dose_times=med["times"],
            start_date=start,
            total_quantity=med["remaining"],
            remaining_quantity=med["remaining"],
        ))


def simulate(
    engine: CareEngine,
    clock: SimulatedClock,
    days: int = 1,
    step_minutes: int = 5,
    adherence: float = 0.8,
    drink_chance: float = 0.5,
    rng: Optional[random.Random] = None
) -> Dict[str, int]:
    """
    Advance the clock in steps, ticking the engine at each one

    A fired water reminder is followed by a glass with probability
    drink_chance. A due dose is taken with probability adherence and
    otherwise left for the engine to count as missed.
    """
    rng = rng or random.Random()
    counts = {"ticks": 0, "reminders": 0, "glasses": 0, "doses_taken": 0}
    handled = set()
    end = clock.now + timedelta(days=days)

    while clock.now < end:
        counts["ticks"] += 1
        for decision in engine.tick(clock.now):
            if decision.fire:
                counts["reminders"] += 1
                if rng.random() < drink_chance:
                    engine.log_glass(clock.now)
                    counts["glasses"] += 1

        for slot in engine.evaluator.due_doses(clock.now):
            key = (slot.schedule_id, slot.day, slot.scheduled_time)
            if key in handled:
                continue
            handled.add(key)
            if rng.random() < adherence:
                engine.record_dose(slot.schedule_id, slot.scheduled_time, DoseStatus.TAKEN, at=clock.now, day=slot.day)
                counts["doses_taken"] += 1

        clock.now += timedelta(minutes=step_minutes)

    return counts


def print_summary(engine: CareEngine, counts: Dict[str, int], window_days: int):
    report = engine.adherence_report(window_days=window_days)
    print(f"\nTicks: {counts['ticks']}  Reminders: {counts['reminders']}  Glasses: {counts['glasses']}")
    print(f"Adherence over {report.window_days} day(s): {report.overall_rate_pct}% "
          f"({report.taken} taken, {report.missed} missed, {report.skipped} skipped)")
    for item in report.per_item:
        print(f"  {item.name:<14} {item.rate_pct:>3}%  ({item.taken}/{item.total})")
    if report.most_missed_time:
        print(f"Most missed time: {report.most_missed_time}")
    for projection in engine.refill_projections():
        print(f"Refill {projection.name}: {projection.days_left} day(s) left [{projection.status.value}]")


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Simulate reminder ticks and dose logging"
    )
    parser.add_argument("--days", type=int, default=1, help="Number of days to simulate")
    parser.add_argument("--step", type=int, default=5, help="Minutes between ticks")
    parser.add_argument("--adherence", type=float, default=0.8, help="Chance a due dose is taken")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Store state in the configured database instead of memory"
    )

    args = parser.parse_args(argv)

    start = datetime.combine(date.today(), datetime.min.time())
    clock = SimulatedClock(start)

    if args.persist:
        from database import init_db
        init_db()
        blob_store = SqlBlobStore()
    else:
        blob_store = InMemoryBlobStore()

    engine = CareEngine(blob_store=blob_store, clock=clock)
    engine.load()
    engine.notifier.register_handler(
        lambda request: logger.info(f"{clock.now:%H:%M} {request.title} {request.body}")
    )
    seed_medicines(engine, start.date())

    counts = simulate(
        engine, clock,
        days=args.days,
        step_minutes=args.step,
        adherence=args.adherence,
        rng=random.Random(args.seed),
    )
    engine.save()
    print_summary(engine, counts, window_days=args.days)
    return counts


if __name__ == "__main__":
    main()
