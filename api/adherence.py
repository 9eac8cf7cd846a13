"""
Adherence API Router
Endpoints for compliance reports and refill projections
"""

from fastapi import APIRouter, Depends, Query

from api.deps import get_engine
from api.schemas.adherence import (
    AdherenceReportResponse,
    RefillProjectionResponse,
    RefillList,
)
from models import RefillStatus
from services.care_engine import CareEngine


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/report", response_model=AdherenceReportResponse)
async def get_adherence_report(
    window_days: int = Query(7, ge=0, le=365, description="Trailing window in days"),
    include_implicit: bool = Query(True, description="Count unrecorded past doses as missed"),
    engine: CareEngine = Depends(get_engine)
):
    """
    Adherence over the trailing window

    Returns overall and per-medicine rates (rounded to whole percent) and
    the scheduled time missed most often.
    """
    report = engine.adherence_report(window_days=window_days, include_implicit_misses=include_implicit)
    return AdherenceReportResponse(**report.to_dict())


@router.get("/refills", response_model=RefillList)
async def get_refills(engine: CareEngine = Depends(get_engine)):
    """Days of supply left per quantity-tracked medicine"""
    projections = sorted(engine.refill_projections(), key=lambda p: p.days_left)
    return RefillList(
        projections=[RefillProjectionResponse(**p.to_dict()) for p in projections],
        needs_attention=sum(1 for p in projections if p.status != RefillStatus.OK),
    )
