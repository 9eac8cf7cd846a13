"""
Medication Schemas
Pydantic models for medicine schedule and dose API requests and responses
"""

from typing import Annotated, Optional, List
from datetime import datetime, date
from pydantic import AfterValidator, BaseModel, Field

from tools.time_of_day import to_local_naive


# Request instants are normalized to the engine's naive local clock
LocalDateTime = Annotated[datetime, AfterValidator(to_local_naive)]


# ==================== BASE SCHEMAS ====================

class MedicineBase(BaseModel):
    """Base medicine schema"""
    name: str = Field(..., min_length=1, max_length=255)
    times: List[str] = Field(..., min_length=1, description="Dose times as HH:MM")
    dosage: str = Field(default="", max_length=100)
    instructions: str = ""
    start_date: date = Field(default_factory=date.today)
    end_date: Optional[date] = None
    is_ongoing: bool = True
    is_critical: bool = False
    total_quantity: Optional[int] = Field(None, ge=0)
    remaining_quantity: Optional[int] = Field(None, ge=0)
    refill_warning_days: Optional[int] = Field(None, ge=0)


# ==================== REQUEST SCHEMAS ====================

class MedicineCreate(MedicineBase):
    """Schema for adding a medicine; id is generated when omitted"""
    id: Optional[str] = Field(None, min_length=1, max_length=64)


class MedicineUpdate(MedicineBase):
    """Schema for replacing a medicine definition"""


class DoseAction(BaseModel):
    """Optional details when recording a dose"""
    at: Optional[LocalDateTime] = None
    day: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=500)


class SnoozeRequest(BaseModel):
    """Snooze a dose reminder"""
    minutes: Optional[int] = Field(None, gt=0, le=240)
    at: Optional[LocalDateTime] = None
    day: Optional[date] = None


# ==================== RESPONSE SCHEMAS ====================

class MedicineResponse(MedicineBase):
    """Schema for medicine response"""
    id: str
    frequency: int
    days_remaining: Optional[int] = None


class ConflictResponse(BaseModel):
    """A dose time too close to another medicine's dose time"""
    offending_time: str
    schedule_id: Optional[str] = None
    conflicting_schedule_id: str
    conflicting_name: str
    conflicting_time: str
    gap_minutes: int


class ScheduleCheckResponse(BaseModel):
    """Advisory checks for a medicine schedule"""
    conflicts: List[ConflictResponse] = []
    name_collisions: List[str] = []
    has_warnings: bool = False


class MedicineWriteResponse(BaseModel):
    """Result of adding or updating a medicine"""
    medicine: MedicineResponse
    check: ScheduleCheckResponse


class DoseRecordResponse(BaseModel):
    """A recorded dose status"""
    id: str
    schedule_id: str
    status: str
    scheduled_time: str
    scheduled_date: date
    timestamp: datetime
    snoozed_until: Optional[datetime] = None
    snooze_count: int = 0


class DoseSlotResponse(BaseModel):
    """One dose of today's plan with its derived state"""
    schedule_id: str
    name: str
    dosage: str
    scheduled_time: str
    scheduled_date: date
    state: str
    critical: bool = False
    occurrence_id: Optional[str] = None
    snoozed_until: Optional[datetime] = None


class TodayResponse(BaseModel):
    """Today's dose plan"""
    scheduled_date: date
    completion_pct: int
    slots: List[DoseSlotResponse]
