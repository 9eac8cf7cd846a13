"""
Medicines API Router
Endpoints for medicine schedules, dose recording and today's dose plan
"""

import uuid
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from api.deps import get_engine
from api.schemas.medication import (
    MedicineCreate,
    MedicineUpdate,
    DoseAction,
    SnoozeRequest,
    MedicineResponse,
    ConflictResponse,
    ScheduleCheckResponse,
    MedicineWriteResponse,
    DoseRecordResponse,
    DoseSlotResponse,
    TodayResponse,
)
from models import DoseStatus
from services.care_engine import CareEngine
from services.occurrence_log import Occurrence
from tools.schedule_registry import DoseSchedule, ScheduleCheck


router = APIRouter(prefix="/medicines", tags=["medicines"])


class DoseActionType(str, Enum):
    """Status a dose can be marked with"""
    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"


# ==================== CONVERSIONS ====================

def _to_schedule(schedule_id: str, data: MedicineCreate) -> DoseSchedule:
    return DoseSchedule(
        id=schedule_id,
        name=data.name,
        dose_times=data.times,
        start_date=data.start_date,
        end_date=data.end_date,
        is_ongoing=data.is_ongoing,
        critical=data.is_critical,
        dosage=data.dosage,
        instructions=data.instructions,
        total_quantity=data.total_quantity,
        remaining_quantity=data.remaining_quantity,
        refill_warning_days=data.refill_warning_days,
    )


def _medicine_response(medicine: DoseSchedule, engine: CareEngine) -> MedicineResponse:
    return MedicineResponse(
        id=medicine.id,
        name=medicine.name,
        times=[t.format() for t in medicine.dose_times],
        dosage=medicine.dosage,
        instructions=medicine.instructions,
        start_date=medicine.start_date,
        end_date=medicine.end_date,
        is_ongoing=medicine.is_ongoing,
        is_critical=medicine.critical,
        total_quantity=medicine.total_quantity,
        remaining_quantity=medicine.remaining_quantity,
        refill_warning_days=medicine.refill_warning_days,
        frequency=medicine.frequency,
        days_remaining=medicine.days_remaining(engine.clock().date()),
    )


def _check_response(check: ScheduleCheck) -> ScheduleCheckResponse:
    return ScheduleCheckResponse(
        conflicts=[ConflictResponse(**c.to_dict()) for c in check.conflicts],
        name_collisions=check.name_collisions,
        has_warnings=check.has_warnings,
    )


def _dose_response(occurrence: Occurrence) -> DoseRecordResponse:
    event = occurrence.kind
    return DoseRecordResponse(
        id=occurrence.id,
        schedule_id=occurrence.schedule_id,
        status=event.status.value,
        scheduled_time=event.scheduled_time.format(),
        scheduled_date=event.scheduled_date,
        timestamp=occurrence.timestamp,
        snoozed_until=event.snoozed_until,
        snooze_count=event.snooze_count,
    )


# ==================== SCHEDULES ====================

@router.get("", response_model=List[MedicineResponse])
async def list_medicines(engine: CareEngine = Depends(get_engine)):
    """List every medicine schedule"""
    return [_medicine_response(m, engine) for m in engine.medicines()]


@router.post("", response_model=MedicineWriteResponse, status_code=status.HTTP_201_CREATED)
async def create_medicine(
    medicine_data: MedicineCreate,
    strict: bool = Query(False, description="Reject the medicine instead of warning on conflicts"),
    engine: CareEngine = Depends(get_engine)
):
    """
    Add a medicine schedule

    - **name**: Display name
    - **times**: One to four daily dose times as HH:MM
    - **strict**: When true, time conflicts or a duplicate name return 409
    """
    schedule = _to_schedule(medicine_data.id or uuid.uuid4().hex[:12], medicine_data)
    check = engine.add_medicine(schedule, allow_conflicts=not strict)
    return MedicineWriteResponse(
        medicine=_medicine_response(engine.get_medicine(schedule.id), engine),
        check=_check_response(check),
    )


@router.post("/conflicts", response_model=ScheduleCheckResponse)
async def check_medicine_conflicts(
    medicine_data: MedicineCreate,
    engine: CareEngine = Depends(get_engine)
):
    """Check a medicine against existing schedules without storing it"""
    schedule = _to_schedule(medicine_data.id or "candidate", medicine_data)
    return _check_response(engine.check_medicine(schedule))


@router.get("/today", response_model=TodayResponse)
async def get_today(engine: CareEngine = Depends(get_engine)):
    """Today's doses with their current state"""
    now = engine.clock()
    slots = engine.dose_slots(now)
    return TodayResponse(
        scheduled_date=now.date(),
        completion_pct=engine.analyzer.daily_completion(s.state.value for s in slots),
        slots=[
            DoseSlotResponse(
                schedule_id=s.schedule_id,
                name=s.name,
                dosage=s.dosage,
                scheduled_time=s.scheduled_time.format(),
                scheduled_date=s.day,
                state=s.state.value,
                critical=s.critical,
                occurrence_id=s.occurrence_id,
                snoozed_until=s.snoozed_until,
            ) for s in slots
        ],
    )


@router.get("/{medicine_id}", response_model=MedicineResponse)
async def get_medicine(medicine_id: str, engine: CareEngine = Depends(get_engine)):
    """Get one medicine schedule"""
    return _medicine_response(engine.get_medicine(medicine_id), engine)


@router.put("/{medicine_id}", response_model=MedicineWriteResponse)
async def update_medicine(
    medicine_id: str,
    medicine_data: MedicineUpdate,
    strict: bool = Query(False),
    engine: CareEngine = Depends(get_engine)
):
    """Replace a medicine definition; its own previous times are not conflicts"""
    schedule = _to_schedule(medicine_id, medicine_data)
    check = engine.update_medicine(schedule, allow_conflicts=not strict)
    return MedicineWriteResponse(
        medicine=_medicine_response(engine.get_medicine(medicine_id), engine),
        check=_check_response(check),
    )


@router.delete("/{medicine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medicine(medicine_id: str, engine: CareEngine = Depends(get_engine)):
    """Remove a medicine schedule; its dose history is kept"""
    engine.remove_medicine(medicine_id)


# ==================== DOSES ====================

@router.post("/{medicine_id}/doses/{scheduled_time}/snooze", response_model=DoseRecordResponse)
async def snooze_dose(
    medicine_id: str,
    scheduled_time: str,
    snooze: Optional[SnoozeRequest] = None,
    engine: CareEngine = Depends(get_engine)
):
    """Postpone a dose reminder (default 15 minutes)"""
    snooze = snooze or SnoozeRequest()
    occurrence = engine.snooze(
        medicine_id,
        scheduled_time,
        minutes=snooze.minutes,
        at=snooze.at,
        day=snooze.day,
    )
    return _dose_response(occurrence)


@router.post("/{medicine_id}/doses/{scheduled_time}/{action}", response_model=DoseRecordResponse)
async def record_dose(
    medicine_id: str,
    scheduled_time: str,
    action: DoseActionType,
    details: Optional[DoseAction] = None,
    engine: CareEngine = Depends(get_engine)
):
    """
    Mark a dose taken, skipped or missed

    Marking the same dose again replaces the earlier status.
    """
    details = details or DoseAction()
    occurrence = engine.record_dose(
        medicine_id,
        scheduled_time,
        DoseStatus(action.value),
        at=details.at,
        day=details.day,
        notes=details.notes,
    )
    return _dose_response(occurrence)
