"""
Water API Router
Endpoints for hydration settings, intake logging and reminder evaluation
"""

from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, status

from api.deps import get_engine
from api.schemas.water import (
    WaterSettingsUpdate,
    WaterSettingsResponse,
    WaterLogCreate,
    WaterLogResponse,
    HydrationSummaryResponse,
    TickRequest,
    TickResponse,
    FireDecisionResponse,
)
from services.care_engine import CareEngine
from services.occurrence_log import Occurrence
from tools.time_of_day import Window


router = APIRouter(tags=["water"])


class WaterPreset(str, Enum):
    """Quick-log amounts"""
    GLASS = "glass"
    BOTTLE = "bottle"
    SIP = "sip"


def _settings_response(engine: CareEngine) -> WaterSettingsResponse:
    water = engine.water_settings()
    return WaterSettingsResponse(
        daily_goal=water.goal_amount,
        reminder_interval=water.interval_minutes,
        start_time=water.window.start.format(),
        end_time=water.window.end.format(),
        enabled=water.enabled,
        last_fired_at=engine.evaluator.last_fired(water.id),
    )


def _log_response(occurrence: Occurrence) -> WaterLogResponse:
    return WaterLogResponse(
        id=occurrence.id,
        amount_ml=occurrence.amount_ml,
        timestamp=occurrence.timestamp,
    )


@router.get("/water/settings", response_model=WaterSettingsResponse)
async def get_water_settings(engine: CareEngine = Depends(get_engine)):
    """Get the hydration reminder settings"""
    return _settings_response(engine)


@router.put("/water/settings", response_model=WaterSettingsResponse)
async def update_water_settings(
    update: WaterSettingsUpdate,
    engine: CareEngine = Depends(get_engine)
):
    """
    Update the hydration reminder

    - **daily_goal**: Goal in ml
    - **reminder_interval**: Minutes between reminders
    - **start_time** / **end_time**: Daily window as HH:MM
    - **enabled**: Turn reminders on or off
    """
    current = engine.water_settings()
    changes = {}

    if update.start_time is not None or update.end_time is not None:
        changes["window"] = Window.parse(
            update.start_time or current.window.start,
            update.end_time or current.window.end,
        )
    if update.reminder_interval is not None:
        changes["interval_minutes"] = update.reminder_interval
    if update.daily_goal is not None:
        changes["goal_amount"] = update.daily_goal
    if update.enabled is not None:
        changes["enabled"] = update.enabled

    if changes:
        engine.update_water_settings(**changes)
    return _settings_response(engine)


@router.post("/water/log", response_model=WaterLogResponse, status_code=status.HTTP_201_CREATED)
async def log_water(
    log_data: WaterLogCreate,
    engine: CareEngine = Depends(get_engine)
):
    """Log an amount of water in ml"""
    return _log_response(engine.log_water(log_data.amount_ml, at=log_data.at))


@router.post("/water/log/{preset}", response_model=WaterLogResponse, status_code=status.HTTP_201_CREATED)
async def log_water_preset(
    preset: WaterPreset,
    engine: CareEngine = Depends(get_engine)
):
    """Log a glass, bottle or sip"""
    if preset == WaterPreset.GLASS:
        occurrence = engine.log_glass()
    elif preset == WaterPreset.BOTTLE:
        occurrence = engine.log_bottle()
    else:
        occurrence = engine.log_sip()
    return _log_response(occurrence)


@router.get("/water/summary", response_model=HydrationSummaryResponse)
async def get_water_summary(engine: CareEngine = Depends(get_engine)):
    """Today's intake, progress and remaining glasses"""
    now = engine.clock()
    summary = engine.hydration_summary(now)
    entries = engine.log.for_date(now.date(), schedule_id=engine.WATER_ID)
    return HydrationSummaryResponse(
        **summary.to_dict(),
        entries=[_log_response(e) for e in entries],
    )


@router.post("/reminders/tick", response_model=TickResponse)
async def tick_reminders(
    request: Optional[TickRequest] = None,
    engine: CareEngine = Depends(get_engine)
):
    """
    Evaluate every interval reminder once

    Reminders that fire are committed and notified; the response lists
    every decision with its reason.
    """
    now = (request.now if request else None) or engine.clock()
    decisions = engine.tick(now)
    return TickResponse(
        evaluated_at=now,
        decisions=[
            FireDecisionResponse(
                fire=d.fire,
                reason=d.reason.value,
                schedule_id=d.schedule_id,
                evaluated_at=d.evaluated_at,
                last_fired=d.last_fired,
                context=d.context,
            ) for d in decisions
        ],
        fired=sum(1 for d in decisions if d.fire),
    )
