"""Plan Store.

- One plan per (user_id, week_start). Cache hits never reach the LLM Engine.
- Writes are insert-or-fetch: the unique constraint decides the winner, and
  a losing concurrent writer gets the winner's record back instead of an error.
- Daily insights are cached for `insight_ttl_hours`; older rows count as misses
  and are overwritten in place.
- Adaptations re-read the plan row under a row lock before merging, so two
  adaptations of the same plan append to history one after the other.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import InternalError, NotFoundError, ValidationError
from ..models import AIInsightRecord, AIWeeklyPlanRecord
from ..schemas import (
    AdaptationHistoryEntry,
    AdaptedPlan,
    AIDailyInsight,
    AIWeeklyPlan,
    DailyNutrition,
    DailyWorkout,
    PlanAdaptation,
)
from ..settings import settings
from .llm_engine import EngineResult

logger = logging.getLogger("lunaplan.planner")

T = TypeVar("T")

INSIGHT_TYPE_DAILY = "daily"


@dataclass
class StoreResult(Generic[T]):
    value: T
    cached: bool
    cost_estimate: float = 0.0


def plan_from_record(record: AIWeeklyPlanRecord) -> AIWeeklyPlan:
    data = dict(record.plan_data or {})
    data["plan_id"] = record.id
    data["adaptation_history"] = record.adaptation_history or []
    return AIWeeklyPlan.model_validate(data)


class PlanStore:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # --- Weekly plans ---

    def get_plan(self, user_id: str, week_start: date) -> Optional[AIWeeklyPlanRecord]:
        return (
            self.db.query(AIWeeklyPlanRecord)
            .filter(AIWeeklyPlanRecord.user_id == user_id, AIWeeklyPlanRecord.week_start == week_start)
            .first()
        )

    def get_plan_by_id(self, user_id: str, plan_id: str) -> Optional[AIWeeklyPlanRecord]:
        return (
            self.db.query(AIWeeklyPlanRecord)
            .filter(AIWeeklyPlanRecord.user_id == user_id, AIWeeklyPlanRecord.id == plan_id)
            .first()
        )

    async def get_or_create_plan(
        self,
        user_id: str,
        week_start: date,
        generate: Callable[[], Awaitable[EngineResult[AIWeeklyPlan]]],
    ) -> StoreResult[AIWeeklyPlan]:
        existing = self.get_plan(user_id, week_start)
        if existing:
            logger.info(f"Serving weekly plan {existing.id} from cache")
            return StoreResult(plan_from_record(existing), cached=True)

        result = await generate()
        record = self.save_plan(user_id, week_start, result.value, result.model)
        return StoreResult(plan_from_record(record), cached=False, cost_estimate=result.cost_estimate)

    def save_plan(self, user_id: str, week_start: date, plan: AIWeeklyPlan, model: str) -> AIWeeklyPlanRecord:
        record = AIWeeklyPlanRecord(
            id=plan.plan_id,
            user_id=user_id,
            week_start=week_start,
            plan_data=plan.model_dump(mode="json"),
            generation_context=plan.generation_context.model_dump(mode="json"),
            ai_model_used=model,
            adaptation_history=[],
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record
        except IntegrityError:
            self.db.rollback()
            winner = self.get_plan(user_id, week_start)
            if winner is None:
                raise InternalError(f"Plan insert for user {user_id} week {week_start} conflicted but no row exists")
            logger.info(f"Concurrent plan generation for user {user_id} week {week_start}; using plan {winner.id}")
            return winner

    # --- Daily insights ---

    def get_fresh_insight(self, user_id: str, target_date: date) -> Optional[AIInsightRecord]:
        cutoff = self.clock() - timedelta(hours=settings.insight_ttl_hours)
        return (
            self.db.query(AIInsightRecord)
            .filter(
                AIInsightRecord.user_id == user_id,
                AIInsightRecord.insight_type == INSIGHT_TYPE_DAILY,
                AIInsightRecord.target_date == target_date,
                AIInsightRecord.created_at >= cutoff,
            )
            .first()
        )

    async def get_or_create_insight(
        self,
        user_id: str,
        target_date: date,
        generate: Callable[[], Awaitable[EngineResult[AIDailyInsight]]],
    ) -> StoreResult[AIDailyInsight]:
        cached = self.get_fresh_insight(user_id, target_date)
        if cached:
            logger.info(f"Serving daily insight for {target_date} from cache")
            return StoreResult(AIDailyInsight.model_validate(cached.insights_data), cached=True)

        result = await generate()
        record = self.save_insight(user_id, target_date, result.value, result.model)
        return StoreResult(
            AIDailyInsight.model_validate(record.insights_data),
            cached=False,
            cost_estimate=result.cost_estimate,
        )

    def save_insight(self, user_id: str, target_date: date, insight: AIDailyInsight, model: str) -> AIInsightRecord:
        now = self.clock()
        payload = insight.model_dump(mode="json")

        stale = (
            self.db.query(AIInsightRecord)
            .filter(
                AIInsightRecord.user_id == user_id,
                AIInsightRecord.insight_type == INSIGHT_TYPE_DAILY,
                AIInsightRecord.target_date == target_date,
            )
            .first()
        )
        if stale:
            stale.insights_data = payload
            stale.model = model
            stale.created_at = now
            self.db.commit()
            self.db.refresh(stale)
            return stale

        record = AIInsightRecord(
            user_id=user_id,
            insight_type=INSIGHT_TYPE_DAILY,
            target_date=target_date,
            insights_data=payload,
            relevance_score=0.8,
            model=model,
            created_at=now,
        )
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record
        except IntegrityError:
            self.db.rollback()
            winner = self.get_fresh_insight(user_id, target_date)
            if winner is None:
                raise InternalError(f"Insight insert for user {user_id} on {target_date} conflicted but no row exists")
            return winner

    # --- Adaptation ---

    def apply_adaptation(
        self,
        user_id: str,
        plan_id: str,
        adaptation: PlanAdaptation,
        trigger: Optional[dict[str, Any]] = None,
    ) -> AIWeeklyPlan:
        """Merge an adaptation into the stored plan and append one history entry."""
        record = (
            self.db.query(AIWeeklyPlanRecord)
            .filter(AIWeeklyPlanRecord.user_id == user_id, AIWeeklyPlanRecord.id == plan_id)
            .with_for_update()
            .first()
        )
        if record is None:
            self.db.rollback()
            raise NotFoundError("Current plan not found")

        try:
            current = plan_from_record(record)
            merged = merge_adaptation(current, adaptation.adapted_plan)
            entry = AdaptationHistoryEntry(
                timestamp=self.clock(),
                trigger=trigger,
                reason=adaptation.adaptation_reason,
                changes_made=adaptation.changes_made,
            )
        except PydanticValidationError as e:
            self.db.rollback()
            raise ValidationError(f"Adaptation entry does not match schema: {e.error_count()} errors") from e
        except ValidationError:
            self.db.rollback()
            raise

        history = [*(record.adaptation_history or []), entry.model_dump(mode="json")]
        merged.adaptation_history = [AdaptationHistoryEntry.model_validate(h) for h in history]

        record.plan_data = merged.model_dump(mode="json")
        record.adaptation_history = history
        self.db.commit()
        self.db.refresh(record)

        logger.info(f"Plan {plan_id} adapted ({len(history)} adaptations): {adaptation.adaptation_reason}")
        return plan_from_record(record)


def merge_adaptation(plan: AIWeeklyPlan, adapted: AdaptedPlan) -> AIWeeklyPlan:
    """Apply day-keyed patches to a plan. Untouched days and fields are kept as-is.

    The merged plan is re-validated as a whole; a patch that would leave a day
    malformed fails the merge rather than persisting.
    """
    data = plan.model_dump(mode="json")

    if adapted.exercise_plan and adapted.exercise_plan.daily_workouts:
        workouts = _merge_days(
            data["exercise_plan"]["daily_workouts"],
            [p.model_dump(mode="json", exclude_none=True) for p in adapted.exercise_plan.daily_workouts],
            DailyWorkout,
        )
        data["exercise_plan"]["daily_workouts"] = workouts
        overview = data["exercise_plan"]["weekly_overview"]
        overview["total_workouts"] = sum(1 for w in workouts if not w.get("is_rest_day"))
        overview["total_minutes"] = sum(w.get("duration_minutes") or 0 for w in workouts if not w.get("is_rest_day"))

    if adapted.nutrition_plan and adapted.nutrition_plan.daily_nutrition:
        data["nutrition_plan"]["daily_nutrition"] = _merge_days(
            data["nutrition_plan"]["daily_nutrition"],
            [p.model_dump(mode="json", exclude_none=True) for p in adapted.nutrition_plan.daily_nutrition],
            DailyNutrition,
        )

    try:
        return AIWeeklyPlan.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Adapted plan does not match schema: {e.error_count()} errors") from e


def _merge_days(days: list[dict], patches: list[dict], model) -> list[dict]:
    by_date = {d["date"]: dict(d) for d in days}

    for patch in patches:
        day = patch["date"]
        if day in by_date:
            by_date[day].update(patch)
            continue
        # A patch for a day the plan lacks must stand on its own
        try:
            by_date[day] = model.model_validate(patch).model_dump(mode="json")
        except PydanticValidationError:
            logger.warning(f"Dropping adaptation patch for unknown day {day}: incomplete")

    # ISO dates sort chronologically
    return [by_date[d] for d in sorted(by_date)]
