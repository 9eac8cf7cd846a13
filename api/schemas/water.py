"""
Water Schemas
Pydantic models for hydration settings, intake logging and reminder ticks
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field

from api.schemas.medication import LocalDateTime


# ==================== REQUEST SCHEMAS ====================

class WaterSettingsUpdate(BaseModel):
    """Partial update of the hydration reminder; omitted fields are unchanged"""
    daily_goal: Optional[int] = Field(None, ge=0, description="Daily goal in ml")
    reminder_interval: Optional[int] = Field(None, gt=0, description="Minutes between reminders")
    start_time: Optional[str] = Field(None, description="Window start as HH:MM")
    end_time: Optional[str] = Field(None, description="Window end as HH:MM")
    enabled: Optional[bool] = None


class WaterLogCreate(BaseModel):
    """Log an amount of water"""
    amount_ml: int = Field(..., gt=0, le=5000)
    at: Optional[LocalDateTime] = None


class TickRequest(BaseModel):
    """Evaluate reminders at a given instant (defaults to now)"""
    now: Optional[LocalDateTime] = None


# ==================== RESPONSE SCHEMAS ====================

class WaterSettingsResponse(BaseModel):
    """Current hydration reminder settings"""
    daily_goal: int
    reminder_interval: int
    start_time: str
    end_time: str
    enabled: bool
    last_fired_at: Optional[datetime] = None


class WaterLogResponse(BaseModel):
    """A logged water amount"""
    id: str
    amount_ml: int
    timestamp: datetime


class HydrationSummaryResponse(BaseModel):
    """Today's intake against the goal"""
    total_ml: int
    goal_ml: int
    remaining_ml: int
    progress_pct: int
    glasses_remaining: int
    entries: List[WaterLogResponse] = []


class FireDecisionResponse(BaseModel):
    """One reminder decision from a tick"""
    fire: bool
    reason: str
    schedule_id: str
    evaluated_at: Optional[datetime] = None
    last_fired: Optional[datetime] = None
    context: Dict[str, Any] = {}


class TickResponse(BaseModel):
    """All reminder decisions made by one tick"""
    evaluated_at: datetime
    decisions: List[FireDecisionResponse]
    fired: int
