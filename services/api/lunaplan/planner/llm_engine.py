"""LLM Engine.

Turns a UserDataSnapshot into a completion request, then decodes the free-text
response into strictly typed models:

- A response that is not a JSON object fails with ValidationError.
- A named section that is present but does not match its schema fails with
  ValidationError; nothing downstream ever sees a partially typed plan.
- A named section that is absent is replaced by a minimal safe default
  (rest days, goal-based nutrition targets) so a degraded plan still ships.

The 7-day phase forecast is computed from cycle math and sent as ground truth.
The returned plan is aligned to it. Each forecast day gets exactly one workout
and one nutrition entry, and insights take their cycle day and energy from it.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Generic, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..core.ai_client import AIClient, Completion, CompletionRequest, ai_client
from ..core.text import clean_line, strip_code_fences
from ..errors import ValidationError
from ..schemas import (
    AdaptationTrigger,
    AdaptedPlan,
    AIDailyInsight,
    AIWeeklyPlan,
    DailyNutrition,
    DailyWorkout,
    ExerciseOverview,
    ExercisePlan,
    GenerationContext,
    MacroTargets,
    NutritionOverview,
    NutritionPlan,
    PhaseForecastDay,
    PlanAdaptation,
    SuccessMetrics,
    UserDataSnapshot,
)
from ..settings import settings
from .cycle import forecast_phases, week_start_for

logger = logging.getLogger("lunaplan.ai")

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)
E = TypeVar("E", DailyWorkout, DailyNutrition, AIDailyInsight)

SYSTEM_MESSAGE = "You are a women's health and fitness AI coach. Always respond with valid JSON only."

DEFAULT_TRIGGERS = [
    AdaptationTrigger(
        trigger_type="symptom_report",
        condition="High cramps or fatigue reported",
        adaptation_instructions="Reduce exercise intensity, focus on gentle movement",
        priority="high",
    ),
    AdaptationTrigger(
        trigger_type="energy_change",
        condition="Energy level drops significantly",
        adaptation_instructions="Adjust workout intensity, emphasize rest and nutrition",
        priority="medium",
    ),
]

INSIGHT_FALLBACKS = {
    "key_insights": ["Stay hydrated and listen to your body"],
    "workout_recommendations": ["Light exercise based on energy"],
    "nutrition_focus": ["Balanced meals"],
    "energy_management_tips": ["Get adequate rest"],
    "symptom_prevention": ["Stay consistent with healthy habits"],
    "motivation_message": "You're doing great - keep going!",
}

INSIGHT_LIST_FIELDS = [
    "key_insights",
    "workout_recommendations",
    "nutrition_focus",
    "energy_management_tips",
    "symptom_prevention",
]


@dataclass
class EngineResult(Generic[T]):
    value: T
    cost_estimate: float
    model: str
    token_usage: Optional[int] = None


def estimate_cost(token_usage: Optional[int], fallback: float) -> float:
    """Token-based cost when usage is reported, else the fixed per-operation estimate."""
    if not token_usage:
        return fallback
    return round((token_usage / 1000) * settings.cost_per_1k_tokens, 6)


def parse_json_response(content: str) -> dict[str, Any]:
    cleaned = strip_code_fences(content)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"Failed to parse JSON response: {content[:200]!r}")
        raise ValidationError("Invalid JSON response from AI") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Expected a JSON object from AI, got {type(data).__name__}")
    return data


def parse_section(data: dict[str, Any], key: str, model: Type[M], default: Callable[[], M]) -> M:
    """Validate data[key] against `model`; absent -> default, malformed -> ValidationError."""
    raw = data.get(key)
    if raw is None:
        logger.warning(f"AI response missing '{key}', substituting default")
        return default()
    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"AI response field '{key}' does not match schema: {e.error_count()} errors") from e


def parse_section_list(data: dict[str, Any], key: str, model: Type[M], default: Callable[[], list[M]]) -> list[M]:
    raw = data.get(key)
    if raw is None:
        return default()
    if not isinstance(raw, list):
        raise ValidationError(f"AI response field '{key}' must be a list")
    try:
        return [model.model_validate(item) for item in raw]
    except PydanticValidationError as e:
        raise ValidationError(f"AI response field '{key}' does not match schema: {e.error_count()} errors") from e


class LLMEngine:
    def __init__(
        self,
        client: Optional[AIClient] = None,
        mode: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client or ai_client
        self.mode = mode or settings.ai_mode
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # --- Operations ---

    async def generate_weekly_plan(
        self,
        snapshot: UserDataSnapshot,
        week_start: Optional[date] = None,
    ) -> EngineResult[AIWeeklyPlan]:
        now = self.clock()
        week_start = week_start or week_start_for(now.date())
        forecast = self.predict_phases(snapshot, week_start)

        request = CompletionRequest(
            system_message=SYSTEM_MESSAGE,
            user_message=self._build_weekly_plan_prompt(snapshot, week_start, forecast),
            model=settings.weekly_plan_model,
            temperature=settings.weekly_plan_temperature,
            max_tokens=settings.weekly_plan_max_tokens,
            operation="weekly_plan",
        )
        completion = await self._complete(request, lambda: self._mock_weekly_plan(snapshot, forecast))
        data = parse_json_response(completion.content)

        plan = AIWeeklyPlan(
            plan_id=str(uuid.uuid4()),
            user_id=snapshot.user_id,
            week_start_date=week_start,
            generation_context=GenerationContext(
                cycle_phase_at_generation=snapshot.cycle_data.current_phase.phase,
                predicted_phases=forecast,
                user_goals_considered=[snapshot.exercise_data.fitness_goals.primary_goal],
                ai_model_used=completion.model,
                generation_timestamp=now,
            ),
            exercise_plan=align_exercise_plan(
                parse_section(data, "exercise_plan", ExercisePlan, lambda: default_exercise_plan(forecast)), forecast
            ),
            nutrition_plan=align_nutrition_plan(
                parse_section(data, "nutrition_plan", NutritionPlan, lambda: default_nutrition_plan(snapshot, forecast)),
                snapshot,
                forecast,
            ),
            daily_insights=align_insights(parse_section_list(data, "daily_insights", AIDailyInsight, list), forecast),
            adaptation_triggers=parse_section_list(
                data, "adaptation_triggers", AdaptationTrigger, lambda: [t.model_copy() for t in DEFAULT_TRIGGERS]
            ) or [t.model_copy() for t in DEFAULT_TRIGGERS],
            adaptation_history=[],
            success_metrics=parse_section(data, "success_metrics", SuccessMetrics, SuccessMetrics),
        )

        cost = estimate_cost(completion.token_usage, settings.weekly_plan_fallback_cost)
        return EngineResult(plan, cost, completion.model, completion.token_usage)

    async def generate_daily_insight(
        self,
        snapshot: UserDataSnapshot,
        target_date: date,
    ) -> EngineResult[AIDailyInsight]:
        request = CompletionRequest(
            system_message=SYSTEM_MESSAGE,
            user_message=self._build_daily_insight_prompt(snapshot, target_date),
            model=settings.daily_insight_model,
            temperature=settings.daily_insight_temperature,
            max_tokens=settings.daily_insight_max_tokens,
            operation="daily_insight",
        )
        completion = await self._complete(request, lambda: self._mock_daily_insight(snapshot, target_date))
        data = parse_json_response(completion.content)

        # The date and cycle day come from us, not the model
        payload = {
            **data,
            "date": target_date.isoformat(),
            "cycle_day": snapshot.cycle_data.current_phase.day_in_cycle,
        }
        if not payload.get("predicted_energy"):
            payload["predicted_energy"] = "moderate"
        for field, fallback in INSIGHT_FALLBACKS.items():
            if not payload.get(field):
                payload[field] = fallback

        try:
            insight = AIDailyInsight.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"AI daily insight does not match schema: {e.error_count()} errors") from e

        for field in INSIGHT_LIST_FIELDS:
            setattr(insight, field, [clean_line(line) for line in getattr(insight, field) if clean_line(line)])

        cost = estimate_cost(completion.token_usage, settings.daily_insight_fallback_cost)
        return EngineResult(insight, cost, completion.model, completion.token_usage)

    async def adapt_plan(
        self,
        current_plan: AIWeeklyPlan,
        snapshot: UserDataSnapshot,
        reason: str,
    ) -> PlanAdaptation:
        """Partial regeneration. Only the days/fields the model returns are touched."""
        request = CompletionRequest(
            system_message=SYSTEM_MESSAGE,
            user_message=self._build_adaptation_prompt(current_plan, snapshot, reason),
            model=settings.adaptation_model,
            temperature=settings.adaptation_temperature,
            max_tokens=settings.adaptation_max_tokens,
            operation="plan_adaptation",
        )
        completion = await self._complete(request, lambda: self._mock_adaptation(current_plan, reason))
        data = parse_json_response(completion.content)

        adapted = parse_section(data, "adapted_plan", AdaptedPlan, AdaptedPlan)

        raw_changes = data.get("changes_made") or []
        if not isinstance(raw_changes, list):
            raise ValidationError("AI response field 'changes_made' must be a list")
        changes = [clean_line(str(c)) for c in raw_changes if clean_line(str(c))]
        if not changes:
            changes = describe_patches(adapted)

        return PlanAdaptation(
            adapted_plan=adapted,
            adaptation_reason=reason,
            changes_made=changes,
            cost_estimate=estimate_cost(completion.token_usage, settings.adaptation_fallback_cost),
        )

    # --- Forecast ---

    def predict_phases(self, snapshot: UserDataSnapshot, start: date) -> list[PhaseForecastDay]:
        cycle_settings = snapshot.cycle_data.cycle_settings
        return forecast_phases(
            cycle_settings.last_period_date,
            start,
            cycle_settings.cycle_length,
            cycle_settings.period_length,
        )

    # --- Provider ---

    async def _complete(self, request: CompletionRequest, mock: Callable[[], dict]) -> Completion:
        if self.mode == "mock":
            logger.info(f"AI mock mode: canned {request.operation} response")
            return Completion(content=json.dumps(mock(), default=str), token_usage=None, model="mock-ai")

        logger.info(f"Requesting {request.operation} from {request.model}")
        return await self.client.complete(request)

    # --- Prompts ---

    def _build_weekly_plan_prompt(
        self,
        snapshot: UserDataSnapshot,
        week_start: date,
        forecast: list[PhaseForecastDay],
    ) -> str:
        cycle = snapshot.cycle_data
        exercise = snapshot.exercise_data
        nutrition = snapshot.nutrition_data
        prefs = snapshot.user_preferences

        recent_symptoms = "; ".join(
            ", ".join(log.symptoms) for log in cycle.recent_logs[:3] if log.symptoms
        ) or "none reported"
        restrictions = ", ".join(nutrition.dietary_preferences.restrictions) or "none"
        forecast_lines = "\n".join(
            f"- {day.date.isoformat()}: {day.phase} phase, {day.energy_level} energy"
            + (f" (cycle day {day.day_in_cycle})" if day.day_in_cycle else "")
            for day in forecast
        )

        return f"""
Create a personalized weekly plan for the week starting {week_start.isoformat()}, based on the user's cycle phase and health data.
Coaching style: {prefs.ai_coaching_style}.

USER CONTEXT:
- Current cycle: Day {cycle.current_phase.day_in_cycle}, {cycle.current_phase.phase} phase
- Energy level: {cycle.current_phase.energy_level}
- Fitness level: {exercise.current_fitness_level}
- Primary goal: {exercise.fitness_goals.primary_goal}
- Recent symptoms: {recent_symptoms}

EXERCISE PATTERNS:
- Completion rate: {round(exercise.workout_patterns.completion_rate * 100)}%
- Preferred duration: {exercise.workout_patterns.preferred_duration} minutes
- Weekly workout target: {exercise.fitness_goals.weekly_workout_target}
- Activity level: {exercise.fitness_goals.activity_level}

NUTRITION PATTERNS:
- Daily calories target: {nutrition.nutrition_goals.daily_calories}
- Protein target: {nutrition.nutrition_goals.daily_protein}g
- Recent meal frequency: {nutrition.eating_patterns.meal_frequency} meals/day
- Hydration goal: {nutrition.nutrition_goals.daily_water}ml/day
- Dietary restrictions: {restrictions}

CYCLE FORECAST (authoritative, do not change phases or energy levels):
{forecast_lines}

Create a weekly plan that:
1. Adapts exercise intensity to the forecast phase of each day
2. Optimizes nutrition for hormonal fluctuations
3. Provides daily energy management strategies
4. Uses exactly the 7 dates listed above

Return ONLY valid JSON in this exact format:
{{
  "exercise_plan": {{
    "weekly_overview": {{"total_workouts": 4, "total_minutes": 180, "focus_areas": ["strength"], "cycle_adaptations": ["..."]}},
    "daily_workouts": [
      {{
        "date": "YYYY-MM-DD", "is_rest_day": false, "workout_type": "Strength Training",
        "duration_minutes": 45, "intensity": "low|moderate|high", "cycle_optimization": "...",
        "exercises": [{{"name": "...", "category": "...", "duration_minutes": 10, "sets": 3, "reps": "12-15", "instructions": "...", "cycle_benefit": "..."}}],
        "alternative_options": ["..."]
      }}
    ]
  }},
  "nutrition_plan": {{
    "weekly_overview": {{"calorie_distribution": {{"monday": 2000}}, "macro_focus_by_phase": {{"follicular": ["protein"]}}, "hydration_goals": {{"monday": 2000}}, "cycle_nutrition_priorities": ["..."]}},
    "daily_nutrition": [
      {{
        "date": "YYYY-MM-DD", "calorie_target": 2000, "macro_targets": {{"protein": 120, "carbs": 200, "fat": 65}},
        "hydration_goal": 2000, "cycle_specific_nutrients": ["iron"], "meal_timing_suggestions": {{"breakfast": "07:30"}},
        "energy_support_foods": ["..."], "foods_to_emphasize": ["..."], "foods_to_minimize": ["..."]
      }}
    ]
  }},
  "daily_insights": [
    {{
      "date": "YYYY-MM-DD", "cycle_day": 1, "predicted_energy": "low|moderate|high|building|declining",
      "key_insights": ["..."], "workout_recommendations": ["..."], "nutrition_focus": ["..."],
      "energy_management_tips": ["..."], "symptom_prevention": ["..."], "motivation_message": "..."
    }}
  ],
  "adaptation_triggers": [
    {{"trigger_type": "symptom_report|energy_change|workout_skip|cycle_phase_change", "condition": "...", "adaptation_instructions": "...", "priority": "low|medium|high"}}
  ],
  "success_metrics": {{"target_workout_completion": 0.8, "target_nutrition_adherence": 0.75, "predicted_energy_correlation": 0.7}}
}}
"""

    def _build_daily_insight_prompt(self, snapshot: UserDataSnapshot, target_date: date) -> str:
        cycle = snapshot.cycle_data
        exercise = snapshot.exercise_data
        nutrition = snapshot.nutrition_data
        phase = cycle.current_phase.phase

        recent_symptoms = "; ".join(
            ", ".join(log.symptoms) for log in cycle.recent_logs[:2] if log.symptoms
        ) or "none reported"

        return f"""
Generate a personalized daily insight for {target_date.isoformat()} based on the user's cycle and health patterns.
Coaching style: {snapshot.user_preferences.ai_coaching_style}.

USER CONTEXT:
- Current cycle day: {cycle.current_phase.day_in_cycle}
- Current phase: {phase}
- Energy level: {cycle.current_phase.energy_level}
- Recent symptoms: {recent_symptoms}

PATTERNS:
- Exercise completion rate: {round(exercise.workout_patterns.completion_rate * 100)}%
- Nutrition consistency: {round(nutrition.eating_patterns.macro_balance_consistency * 100)}%
- Typical energy in {phase}: {cycle.cycle_patterns.typical_energy_by_phase.get(phase, "moderate")}

Return ONLY valid JSON:
{{
  "predicted_energy": "low|moderate|high",
  "key_insights": ["Today's key insight about cycle and energy"],
  "workout_recommendations": ["Specific workout advice for today"],
  "nutrition_focus": ["Nutrition priorities for today"],
  "energy_management_tips": ["How to optimize energy today"],
  "symptom_prevention": ["Preventive care tips"],
  "motivation_message": "Encouraging message for today"
}}
"""

    def _build_adaptation_prompt(self, plan: AIWeeklyPlan, snapshot: UserDataSnapshot, reason: str) -> str:
        today = self.clock().date()
        upcoming = [w for w in plan.exercise_plan.daily_workouts if w.date >= today] or plan.exercise_plan.daily_workouts
        schedule = "\n".join(
            f"- {w.date.isoformat()}: {'rest' if w.is_rest_day else w.workout_type}, {w.intensity}, {w.duration_minutes} min"
            for w in upcoming
        ) or "- no scheduled workouts"
        priorities = ", ".join(plan.nutrition_plan.weekly_overview.cycle_nutrition_priorities) or "none"

        return f"""
Adapt the current weekly plan based on new information: {reason}

CURRENT PLAN SUMMARY:
- Exercise: {plan.exercise_plan.weekly_overview.total_workouts} workouts/week
- Nutrition priorities: {priorities}
- Remaining schedule:
{schedule}

USER CURRENT STATE:
- Cycle: Day {snapshot.cycle_data.current_phase.day_in_cycle}, {snapshot.cycle_data.current_phase.phase}
- Energy: {snapshot.cycle_data.current_phase.energy_level}

ADAPTATION NEEDED: {reason}

Change only the days and fields that must change. Every changed day must include an
"adaptation_reason" that explains the change to the user in terms of: {reason}

Return ONLY valid JSON with specific changes:
{{
  "adapted_plan": {{
    "exercise_plan": {{
      "daily_workouts": [
        {{"date": "YYYY-MM-DD", "intensity": "low", "workout_type": "Gentle Yoga", "duration_minutes": 20, "adaptation_reason": "..."}}
      ]
    }},
    "nutrition_plan": {{
      "daily_nutrition": [
        {{"date": "YYYY-MM-DD", "foods_to_emphasize": ["..."], "adaptation_reason": "..."}}
      ]
    }}
  }},
  "changes_made": ["Reduced workout intensity", "..."]
}}
"""

    # --- Mock responses ---

    def _mock_weekly_plan(self, snapshot: UserDataSnapshot, forecast: list[PhaseForecastDay]) -> dict:
        goals = snapshot.nutrition_data.nutrition_goals
        intensity_by_energy = {"low": "low", "declining": "moderate", "building": "moderate", "high": "high"}
        workouts, nutrition, insights = [], [], []
        for i, day in enumerate(forecast):
            rest = i % 3 == 2
            workouts.append({
                "date": day.date.isoformat(),
                "is_rest_day": rest,
                "workout_type": "Rest & Recovery" if rest else "[AI MOCK] Cycle-Synced Training",
                "duration_minutes": 0 if rest else 30,
                "intensity": "low" if rest else intensity_by_energy.get(day.energy_level, "moderate"),
                "cycle_optimization": f"Matched to {day.phase} phase",
                "exercises": [] if rest else [{"name": "Bodyweight Squats", "category": "Lower Body", "duration_minutes": 10, "sets": 3, "reps": "12"}],
                "alternative_options": ["Gentle walk if energy is low"],
            })
            nutrition.append({
                "date": day.date.isoformat(),
                "calorie_target": goals.daily_calories,
                "macro_targets": {"protein": goals.daily_protein, "carbs": goals.daily_carbs, "fat": goals.daily_fat},
                "hydration_goal": goals.daily_water,
                "foods_to_emphasize": ["leafy greens", "berries"],
            })
            insights.append({
                "date": day.date.isoformat(),
                "cycle_day": day.day_in_cycle,
                "predicted_energy": day.energy_level,
                "key_insights": [f"[AI MOCK] {day.phase} phase day"],
                "motivation_message": "Keep going!",
            })
        return {
            "exercise_plan": {
                "weekly_overview": {
                    "total_workouts": sum(1 for w in workouts if not w["is_rest_day"]),
                    "total_minutes": sum(w["duration_minutes"] for w in workouts),
                    "focus_areas": ["strength", "mobility"],
                },
                "daily_workouts": workouts,
            },
            "nutrition_plan": {
                "weekly_overview": {"cycle_nutrition_priorities": ["Stay hydrated", "Eat regular meals"]},
                "daily_nutrition": nutrition,
            },
            "daily_insights": insights,
        }

    def _mock_daily_insight(self, snapshot: UserDataSnapshot, target_date: date) -> dict:
        phase = snapshot.cycle_data.current_phase
        return {
            "predicted_energy": "moderate" if phase.energy_level in ("building", "declining") else phase.energy_level,
            "key_insights": [f"[AI MOCK] Day {phase.day_in_cycle} of your cycle ({phase.phase})"],
            "workout_recommendations": ["Moderate strength session"],
            "motivation_message": "Small steps add up.",
        }

    def _mock_adaptation(self, plan: AIWeeklyPlan, reason: str) -> dict:
        today = self.clock().date()
        targets = [w for w in plan.exercise_plan.daily_workouts if w.date >= today and not w.is_rest_day]
        patches = [
            {"date": w.date.isoformat(), "intensity": "low", "workout_type": "Gentle Yoga",
             "duration_minutes": 20, "adaptation_reason": f"Reduced intensity: {reason}"}
            for w in targets[:1]
        ]
        return {
            "adapted_plan": {"exercise_plan": {"daily_workouts": patches}},
            "changes_made": ["[AI MOCK] Reduced workout intensity"] if patches else [],
        }


# --- Defaults ---

def default_exercise_plan(forecast: list[PhaseForecastDay]) -> ExercisePlan:
    """Safe fallback: every day is a rest day."""
    return ExercisePlan(
        weekly_overview=ExerciseOverview(
            total_workouts=0,
            total_minutes=0,
            focus_areas=["recovery"],
            cycle_adaptations=["Gentle movement during low energy"],
        ),
        daily_workouts=[rest_day(day) for day in forecast],
    )


def rest_day(day: PhaseForecastDay) -> DailyWorkout:
    return DailyWorkout(
        date=day.date,
        is_rest_day=True,
        workout_type="Rest & Recovery",
        duration_minutes=0,
        intensity="low",
        cycle_optimization=f"Rest day during {day.phase} phase",
        alternative_options=["Gentle walk", "Light stretching"],
    )


def default_nutrition_plan(snapshot: UserDataSnapshot, forecast: list[PhaseForecastDay]) -> NutritionPlan:
    """Safe fallback: the user's own goals, unchanged, every day."""
    return NutritionPlan(
        weekly_overview=NutritionOverview(cycle_nutrition_priorities=["Stay hydrated", "Eat regular meals"]),
        daily_nutrition=[goal_nutrition_day(snapshot, day) for day in forecast],
    )


def goal_nutrition_day(snapshot: UserDataSnapshot, day: PhaseForecastDay) -> DailyNutrition:
    goals = snapshot.nutrition_data.nutrition_goals
    return DailyNutrition(
        date=day.date,
        calorie_target=goals.daily_calories,
        macro_targets=MacroTargets(protein=goals.daily_protein, carbs=goals.daily_carbs, fat=goals.daily_fat),
        hydration_goal=goals.daily_water,
        meal_timing_suggestions=dict(snapshot.nutrition_data.eating_patterns.meal_timing_patterns),
    )


# --- Forecast alignment ---

def _by_forecast_date(entries: list[E], forecast: list[PhaseForecastDay], section: str) -> dict[date, E]:
    """First entry per forecast date. Entries dated outside the week are dropped."""
    week = {day.date for day in forecast}
    kept: dict[date, E] = {}
    for entry in entries:
        if entry.date not in week:
            logger.warning(f"Dropping {section} entry dated {entry.date.isoformat()} outside the planned week")
            continue
        kept.setdefault(entry.date, entry)
    return kept


def align_exercise_plan(plan: ExercisePlan, forecast: list[PhaseForecastDay]) -> ExercisePlan:
    """One workout per forecast day, in order; missing days become rest days."""
    kept = _by_forecast_date(plan.daily_workouts, forecast, "workout")
    workouts = [kept.get(day.date) or rest_day(day) for day in forecast]
    overview = plan.weekly_overview.model_copy(update={
        "total_workouts": sum(1 for w in workouts if not w.is_rest_day),
        "total_minutes": sum(w.duration_minutes for w in workouts if not w.is_rest_day),
    })
    return ExercisePlan(weekly_overview=overview, daily_workouts=workouts)


def align_nutrition_plan(
    plan: NutritionPlan,
    snapshot: UserDataSnapshot,
    forecast: list[PhaseForecastDay],
) -> NutritionPlan:
    kept = _by_forecast_date(plan.daily_nutrition, forecast, "nutrition")
    return NutritionPlan(
        weekly_overview=plan.weekly_overview,
        daily_nutrition=[kept.get(day.date) or goal_nutrition_day(snapshot, day) for day in forecast],
    )


def align_insights(insights: list[AIDailyInsight], forecast: list[PhaseForecastDay]) -> list[AIDailyInsight]:
    """Cycle day and energy on each insight are taken from the forecast for its date."""
    kept = _by_forecast_date(insights, forecast, "insight")
    return [
        kept[day.date].model_copy(update={"cycle_day": day.day_in_cycle, "predicted_energy": day.energy_level})
        for day in forecast
        if day.date in kept
    ]


def describe_patches(adapted: AdaptedPlan) -> list[str]:
    changes = []
    if adapted.exercise_plan:
        for patch in adapted.exercise_plan.daily_workouts:
            changes.append(f"Updated workout for {patch.date.isoformat()}")
    if adapted.nutrition_plan:
        for patch in adapted.nutrition_plan.daily_nutrition:
            changes.append(f"Updated nutrition for {patch.date.isoformat()}")
    return changes
