"""Weekly planner service.

Wires the aggregator, engine, plan store, evaluator and usage tracker into the
five user-facing actions. One instance per request (it holds the session).
"""
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..errors import BadRequestError, ForbiddenError, NotFoundError
from ..models import AIWeeklyPlanRecord
from ..schemas import AIDailyInsight, AIWeeklyPlan, PlanAdaptation, TriggerEvent
from .adaptation import AdaptationEvaluator, CheckResult
from .aggregator import DataAggregator, HealthDataStore
from .cycle import week_start_for
from .llm_engine import LLMEngine
from .plan_store import PlanStore, StoreResult, plan_from_record
from .usage import FEATURE_DAILY_INSIGHT, FEATURE_WEEKLY_PLAN, UsageTracker

logger = logging.getLogger("lunaplan.planner")

NO_PLAN_SUGGESTION = "Generate a new weekly plan first"


@dataclass
class Timed:
    result: StoreResult
    elapsed_ms: int


class WeeklyPlannerService:
    def __init__(
        self,
        db: Session,
        engine: Optional[LLMEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.engine = engine or LLMEngine(clock=self.clock)
        self.store = PlanStore(db, clock=self.clock)
        self.usage = UsageTracker(db)
        self.evaluator = AdaptationEvaluator(
            store=self.store,
            engine=self.engine,
            aggregate=self.aggregate,
            usage=self.usage,
            today=self.today,
        )

    def today(self) -> date:
        return self.clock().date()

    def aggregate(self, user_id: str):
        return DataAggregator(HealthDataStore(self.db), today=self.today()).aggregate(user_id)

    async def generate_weekly_plan(self, user_id: str) -> Timed:
        started = time.perf_counter()
        week_start = week_start_for(self.today())

        async def generate():
            snapshot = self.aggregate(user_id)
            return await self.engine.generate_weekly_plan(snapshot, week_start)

        result: StoreResult[AIWeeklyPlan] = await self.store.get_or_create_plan(user_id, week_start, generate)
        if not result.cached:
            self.usage.track(user_id, FEATURE_WEEKLY_PLAN, result.cost_estimate)
            logger.info(f"Generated weekly plan {result.value.plan_id} for user {user_id} week {week_start}")

        return Timed(result, _elapsed_ms(started))

    async def generate_daily_insight(self, user_id: str, target_date: Optional[date] = None) -> Timed:
        started = time.perf_counter()
        target_date = target_date or self.today()

        async def generate():
            snapshot = self.aggregate(user_id)
            return await self.engine.generate_daily_insight(snapshot, target_date)

        result: StoreResult[AIDailyInsight] = await self.store.get_or_create_insight(user_id, target_date, generate)
        if not result.cached:
            self.usage.track(user_id, FEATURE_DAILY_INSIGHT, result.cost_estimate)

        return Timed(result, _elapsed_ms(started))

    async def adapt_plan(self, user_id: str, plan_id: str, reason: str) -> tuple[AIWeeklyPlan, PlanAdaptation]:
        record = self.store.get_plan_by_id(user_id, plan_id)
        if not record:
            raise NotFoundError("Current plan not found", suggestion=NO_PLAN_SUGGESTION)
        return await self.evaluator.adapt(user_id, record, reason)

    def get_current_plan(self, user_id: str) -> tuple[AIWeeklyPlan, AIWeeklyPlanRecord]:
        record = self.store.get_plan(user_id, week_start_for(self.today()))
        if not record:
            raise NotFoundError("No plan found for current week", suggestion=NO_PLAN_SUGGESTION)
        return plan_from_record(record), record

    async def check_adaptation(
        self,
        user_id: str,
        trigger_data: dict[str, Any],
        event_id: Optional[str] = None,
    ) -> CheckResult:
        try:
            event = TriggerEvent.model_validate(trigger_data)
        except PydanticValidationError as e:
            raise BadRequestError(f"Malformed trigger event: {e.error_count()} errors") from e

        if event.user_id != user_id:
            raise ForbiddenError("Trigger event belongs to another user")

        return await self.evaluator.check(event, event_id=event_id)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
