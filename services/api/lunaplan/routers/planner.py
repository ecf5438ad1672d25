import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import require_entitlement
from ..planner.service import WeeklyPlannerService
from ..schemas import (
    AdaptationResponse,
    AdaptPlanRequest,
    CheckAdaptationRequest,
    CheckAdaptationResponse,
    CurrentPlanResponse,
    DailyInsightResponse,
    WeeklyPlanResponse,
)
from ..settings import settings

router = APIRouter()
logger = logging.getLogger("lunaplan.planner")

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])


@router.post("/weekly-plan", response_model=WeeklyPlanResponse)
@limiter.limit(settings.rate_limit_default)
async def generate_weekly_plan(
    request: Request,  # Required for rate limiter
    user_id: str = Depends(require_entitlement),
    db: Session = Depends(get_db),
):
    """Return this week's plan, generating it on first request."""
    timed = await WeeklyPlannerService(db).generate_weekly_plan(user_id)
    return WeeklyPlanResponse(
        plan=timed.result.value,
        cost_estimate=timed.result.cost_estimate,
        generation_time_ms=timed.elapsed_ms,
        cached=timed.result.cached,
    )


@router.post("/daily-insight", response_model=DailyInsightResponse)
@limiter.limit(settings.rate_limit_default)
async def generate_daily_insight(
    request: Request,
    target_date: Optional[date] = Query(None, alias="date"),
    user_id: str = Depends(require_entitlement),
    db: Session = Depends(get_db),
):
    timed = await WeeklyPlannerService(db).generate_daily_insight(user_id, target_date)
    return DailyInsightResponse(
        insights=timed.result.value,
        cost_estimate=timed.result.cost_estimate,
        generation_time_ms=timed.elapsed_ms,
        cached=timed.result.cached,
    )


@router.post("/adapt", response_model=AdaptationResponse)
@limiter.limit(settings.rate_limit_default)
async def adapt_plan(
    request: Request,
    body: AdaptPlanRequest,
    user_id: str = Depends(require_entitlement),
    db: Session = Depends(get_db),
):
    if not body.adaptation_reason or not body.current_plan_id:
        raise HTTPException(status_code=400, detail="Adaptation reason and current plan ID required")

    plan, adaptation = await WeeklyPlannerService(db).adapt_plan(
        user_id, body.current_plan_id, body.adaptation_reason
    )
    return AdaptationResponse(
        plan_id=plan.plan_id,
        adapted_plan=adaptation.adapted_plan,
        adaptation_reason=adaptation.adaptation_reason,
        changes_made=adaptation.changes_made,
        cost_estimate=adaptation.cost_estimate,
    )


@router.get("/current", response_model=CurrentPlanResponse)
def get_current_plan(
    user_id: str = Depends(require_entitlement),
    db: Session = Depends(get_db),
):
    plan, record = WeeklyPlannerService(db).get_current_plan(user_id)
    return CurrentPlanResponse(plan=plan, plan_id=record.id, created_at=record.created_at)


@router.post("/check-adaptation", response_model=CheckAdaptationResponse)
async def check_adaptation(
    body: CheckAdaptationRequest,
    user_id: str = Depends(require_entitlement),
    db: Session = Depends(get_db),
):
    """Evaluate a change event and adapt the current plan if it warrants it."""
    if not body.trigger_data:
        raise HTTPException(status_code=400, detail="Trigger data required")

    result = await WeeklyPlannerService(db).check_adaptation(user_id, body.trigger_data, body.event_id)
    return CheckAdaptationResponse(
        adapted=result.adapted,
        duplicate=result.duplicate,
        reason=result.reason,
        message=result.message,
    )
