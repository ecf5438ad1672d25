"""Adaptation Trigger Evaluator.

Consumes change events from the health-data store and decides whether the
current week's plan needs a partial regeneration.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Optional

from ..errors import ValidationError
from ..infra.event_dedupe import claim_event, complete_event, event_key, release_event
from ..models import AIWeeklyPlanRecord
from ..schemas import AIWeeklyPlan, PlanAdaptation, TriggerEvent, UserDataSnapshot
from .cycle import week_start_for
from .llm_engine import LLMEngine
from .plan_store import PlanStore, plan_from_record
from .usage import FEATURE_ADAPTATION, UsageTracker

logger = logging.getLogger("lunaplan.adaptation")

REASON_SEVERE_SYMPTOMS = "high symptom severity reported — reduce exercise intensity"
REASON_MOOD_CHANGE = "mood changes detected — shift toward stress-relief activities"
REASON_WORKOUT_SKIPPED = "workout skipped — redistribute weekly load"
REASON_LOW_ENERGY_WORKOUT = "low energy workout detected — lower intensity for the rest of the week"
REASON_IRON_MISSED = "iron supplement missed — may affect energy, lower workout intensity"

SEVERE_SYMPTOMS = {"severe_cramps", "extreme_fatigue"}
STRESS_MOODS = {"anxious", "irritable"}
SHORT_WORKOUT_MINUTES = 15


def determine_adaptation_reason(event: TriggerEvent) -> Optional[str]:
    """Map a change event to an adaptation reason, or None when the plan still fits."""
    new = event.new_record or {}
    old = event.old_record or {}

    if event.table == "period_logs":
        symptoms = set(new.get("symptoms") or [])
        if symptoms & SEVERE_SYMPTOMS:
            return REASON_SEVERE_SYMPTOMS
        if new.get("mood") in STRESS_MOODS:
            return REASON_MOOD_CHANGE

    elif event.table == "exercise_entries":
        if event.event_type == "DELETE":
            return REASON_WORKOUT_SKIPPED
        duration = new.get("duration_minutes")
        if new.get("intensity") == "low" and duration is not None and duration < SHORT_WORKOUT_MINUTES:
            return REASON_LOW_ENERGY_WORKOUT

    elif event.table == "supplement_logs":
        supplement = (old.get("supplement_name") or new.get("supplement_name") or "").lower()
        if not new.get("taken") and "iron" in supplement:
            return REASON_IRON_MISSED

    return None


@dataclass
class CheckResult:
    adapted: bool
    reason: Optional[str] = None
    duplicate: bool = False
    plan: Optional[AIWeeklyPlan] = None

    @property
    def message(self) -> str:
        if self.duplicate:
            return "Event already processed"
        return "Plan adapted successfully" if self.adapted else "No adaptation needed"


class AdaptationEvaluator:
    """Drives partial regeneration of a stored plan, for events and explicit requests."""

    def __init__(
        self,
        store: PlanStore,
        engine: LLMEngine,
        aggregate: Callable[[str], UserDataSnapshot],
        usage: UsageTracker,
        today: Callable[[], date],
    ):
        self.store = store
        self.engine = engine
        self.aggregate = aggregate
        self.usage = usage
        self.today = today

    async def adapt(
        self,
        user_id: str,
        record: AIWeeklyPlanRecord,
        reason: str,
        trigger: Optional[dict[str, Any]] = None,
    ) -> tuple[AIWeeklyPlan, PlanAdaptation]:
        current = plan_from_record(record)
        snapshot = self.aggregate(user_id)

        adaptation = await self.engine.adapt_plan(current, snapshot, reason)
        if not adaptation.changes_made:
            raise ValidationError("AI adaptation contained no changes")

        plan = self.store.apply_adaptation(user_id, record.id, adaptation, trigger=trigger)
        self.usage.track(user_id, FEATURE_ADAPTATION, adaptation.cost_estimate)
        return plan, adaptation

    async def check(self, event: TriggerEvent, event_id: Optional[str] = None) -> CheckResult:
        user_id = event.user_id
        logger.info(f"Checking adaptation need for user {user_id}: {event.table} {event.event_type}")

        reason = determine_adaptation_reason(event)
        if not reason:
            logger.info("No adaptation needed for this trigger")
            return CheckResult(adapted=False)

        record = self.store.get_plan(user_id, week_start_for(self.today()))
        if not record:
            logger.info("No current plan found, skipping adaptation")
            return CheckResult(adapted=False, reason=reason)

        trigger = event.model_dump(mode="json")
        redis_key = await claim_event(user_id, event_key(trigger, event_id))
        if redis_key is None:
            return CheckResult(adapted=False, reason=reason, duplicate=True)

        try:
            plan, _ = await self.adapt(user_id, record, reason, trigger=trigger)
        except Exception:
            await release_event(redis_key)
            raise

        await complete_event(redis_key, adapted=True, reason=reason)
        logger.info(f"Plan adapted for user {user_id}: {reason}")
        return CheckResult(adapted=True, reason=reason, plan=plan)
