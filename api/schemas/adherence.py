"""
Adherence Schemas
Pydantic models for adherence reports and refill projections
"""

from typing import Optional, List
from pydantic import BaseModel


class ItemAdherenceResponse(BaseModel):
    """Adherence for a single medicine"""
    item_id: str
    name: str
    taken: int
    missed: int
    skipped: int
    total: int
    rate_pct: int


class AdherenceReportResponse(BaseModel):
    """Compliance over a trailing window"""
    window_days: int
    total: int
    taken: int
    missed: int
    skipped: int
    overall_rate_pct: int
    per_item: List[ItemAdherenceResponse] = []
    most_missed_time: Optional[str] = None


class RefillProjectionResponse(BaseModel):
    """Days of supply left for a quantity-tracked medicine"""
    schedule_id: str
    name: str
    remaining_quantity: int
    frequency: int
    days_left: int
    status: str


class RefillList(BaseModel):
    """Refill projections, most urgent first"""
    projections: List[RefillProjectionResponse]
    needs_attention: int
