"""Data Aggregator.

Builds a UserDataSnapshot from the health-data store. Each domain (cycle,
exercise, nutrition, preferences) is read independently; a failure in one
domain degrades that domain to defaults and never aborts the snapshot.
"""
import logging
from collections import Counter
from datetime import date, timedelta
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from ..models import (
    Account,
    CycleSettings,
    DailyWaterIntake,
    ExerciseEntry,
    FitnessGoals,
    MealEntry,
    NutritionGoals,
    PeriodLog,
    UserAIPreferences,
    WeeklyExercisePlan,
)
from ..schemas import (
    CycleDataSnapshot,
    CycleLogSnapshot,
    CyclePatterns,
    CycleSettingsSnapshot,
    DietaryPreferences,
    EatingPatterns,
    ExerciseDataSnapshot,
    FitnessGoalsSnapshot,
    MealSnapshot,
    NutritionDataSnapshot,
    NutritionGoalsSnapshot,
    PhaseNutrition,
    PhasePerformance,
    UserDataSnapshot,
    UserPreferences,
    WorkoutPatterns,
    WorkoutSnapshot,
)
from ..settings import settings
from .cycle import DEFAULT_CYCLE_LENGTH, DEFAULT_PERIOD_LENGTH, calculate_phase

logger = logging.getLogger("lunaplan.planner")

T = TypeVar("T")

RECENT_CYCLE_LOGS = 14
RECENT_MEALS = 21
DEFAULT_ACTIVE_DAYS = ["Monday", "Wednesday", "Friday"]
DEFAULT_MEAL_TIMING = {"breakfast": "07:30", "lunch": "12:30", "dinner": "18:30"}

TYPICAL_ENERGY_BY_PHASE = {
    "menstrual": "low",
    "follicular": "building",
    "ovulatory": "high",
    "luteal": "declining",
}

COMMON_SYMPTOMS_BY_PHASE = {
    "menstrual": ["cramps", "fatigue"],
    "follicular": ["increased energy"],
    "ovulatory": ["mood boost"],
    "luteal": ["bloating", "mood changes"],
}

PERFORMANCE_BY_PHASE = {
    "menstrual": PhasePerformance(completion_rate=0.7, avg_intensity="low", preferred_exercises=["yoga", "walking"]),
    "follicular": PhasePerformance(completion_rate=0.9, avg_intensity="moderate", preferred_exercises=["cardio", "strength"]),
    "ovulatory": PhasePerformance(completion_rate=0.95, avg_intensity="high", preferred_exercises=["HIIT", "running"]),
    "luteal": PhasePerformance(completion_rate=0.8, avg_intensity="moderate", preferred_exercises=["strength", "yoga"]),
}

NUTRITION_BY_PHASE = {
    "menstrual": PhaseNutrition(avg_calories=1800, cravings=["chocolate", "comfort foods"], hydration_level="moderate"),
    "follicular": PhaseNutrition(avg_calories=1900, cravings=["fresh foods"], hydration_level="high"),
    "ovulatory": PhaseNutrition(avg_calories=2000, cravings=["protein"], hydration_level="high"),
    "luteal": PhaseNutrition(avg_calories=2100, cravings=["carbs", "sweets"], hydration_level="moderate"),
}


class HealthDataStore:
    """Read queries over the health-data store, keyed by user id."""

    def __init__(self, db: Session):
        self.db = db

    def account(self, user_id: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.user_id == user_id).first()

    def ai_preferences(self, user_id: str) -> Optional[UserAIPreferences]:
        return self.db.query(UserAIPreferences).filter(UserAIPreferences.user_id == user_id).first()

    def cycle_settings(self, user_id: str) -> Optional[CycleSettings]:
        return self.db.query(CycleSettings).filter(CycleSettings.user_id == user_id).first()

    def period_logs(self, user_id: str, since: date) -> list[PeriodLog]:
        return (
            self.db.query(PeriodLog)
            .filter(PeriodLog.user_id == user_id, PeriodLog.date >= since)
            .order_by(PeriodLog.date.desc())
            .all()
        )

    def fitness_goals(self, user_id: str) -> Optional[FitnessGoals]:
        return self.db.query(FitnessGoals).filter(FitnessGoals.user_id == user_id).first()

    def exercise_entries(self, user_id: str, since: date) -> list[ExerciseEntry]:
        return (
            self.db.query(ExerciseEntry)
            .filter(ExerciseEntry.user_id == user_id, ExerciseEntry.logged_date >= since)
            .order_by(ExerciseEntry.logged_date.desc())
            .all()
        )

    def active_exercise_plan(self, user_id: str) -> Optional[WeeklyExercisePlan]:
        return (
            self.db.query(WeeklyExercisePlan)
            .filter(WeeklyExercisePlan.user_id == user_id, WeeklyExercisePlan.is_active.is_(True))
            .first()
        )

    def nutrition_goals(self, user_id: str) -> Optional[NutritionGoals]:
        return self.db.query(NutritionGoals).filter(NutritionGoals.user_id == user_id).first()

    def meal_entries(self, user_id: str, since: date) -> list[MealEntry]:
        return (
            self.db.query(MealEntry)
            .filter(MealEntry.user_id == user_id, MealEntry.logged_date >= since)
            .order_by(MealEntry.logged_date.desc())
            .all()
        )

    def water_entries(self, user_id: str, since: date) -> list[DailyWaterIntake]:
        return (
            self.db.query(DailyWaterIntake)
            .filter(DailyWaterIntake.user_id == user_id, DailyWaterIntake.date >= since)
            .order_by(DailyWaterIntake.date.desc())
            .all()
        )

    def recover(self) -> None:
        """Reset the session after a failed read so later domains can still query."""
        self.db.rollback()


class DataAggregator:
    def __init__(self, store: HealthDataStore, today: Optional[date] = None):
        self.store = store
        self.today = today or date.today()

    def aggregate(self, user_id: str) -> UserDataSnapshot:
        """Fresh snapshot for `user_id`. Never raises for a failing domain."""
        cycle_data = self._resilient("cycle", self.aggregate_cycle_data, default_cycle_data, user_id)
        exercise_data = self._resilient("exercise", self.aggregate_exercise_data, default_exercise_data, user_id)
        nutrition_data = self._resilient("nutrition", self.aggregate_nutrition_data, default_nutrition_data, user_id)
        preferences = self._resilient("preferences", self.aggregate_user_preferences, UserPreferences, user_id)

        return UserDataSnapshot(
            user_id=user_id,
            cycle_data=cycle_data,
            exercise_data=exercise_data,
            nutrition_data=nutrition_data,
            user_preferences=preferences,
        )

    def _resilient(self, domain: str, fetch: Callable[[str], T], default: Callable[[], T], user_id: str) -> T:
        try:
            return fetch(user_id)
        except Exception as e:
            logger.warning(f"Aggregation of {domain} data failed for user {user_id}, using defaults: {e}")
            try:
                self.store.recover()
            except Exception as rollback_error:
                logger.error(f"Session recovery after {domain} failure did not succeed: {rollback_error}")
            return default()

    # --- Cycle ---

    def aggregate_cycle_data(self, user_id: str) -> CycleDataSnapshot:
        cycle_settings = self.store.cycle_settings(user_id)
        since = self.today - timedelta(days=settings.cycle_log_window_days)
        period_logs = self.store.period_logs(user_id, since)

        cycle_length = (cycle_settings.cycle_length if cycle_settings else None) or DEFAULT_CYCLE_LENGTH
        period_length = (cycle_settings.period_length if cycle_settings else None) or DEFAULT_PERIOD_LENGTH
        last_period_date = cycle_settings.last_period_date if cycle_settings else None

        return CycleDataSnapshot(
            current_phase=calculate_phase(last_period_date, self.today, cycle_length, period_length),
            cycle_settings=CycleSettingsSnapshot(
                cycle_length=cycle_length,
                period_length=period_length,
                last_period_date=last_period_date,
            ),
            recent_logs=[
                CycleLogSnapshot(
                    date=log.date,
                    mood=log.mood,
                    flow_intensity=log.flow_intensity,
                    symptoms=log.symptoms or [],
                    energy_reported=log.energy_level,
                )
                for log in period_logs[:RECENT_CYCLE_LOGS]
            ],
            cycle_patterns=analyze_cycle_patterns(period_logs),
        )

    # --- Exercise ---

    def aggregate_exercise_data(self, user_id: str) -> ExerciseDataSnapshot:
        goals = self.store.fitness_goals(user_id)
        since = self.today - timedelta(days=settings.activity_window_days)
        entries = self.store.exercise_entries(user_id, since)
        active_plan = self.store.active_exercise_plan(user_id)

        return ExerciseDataSnapshot(
            current_fitness_level=(goals.experience_level if goals else None) or "beginner",
            preferred_workout_types=(goals.workout_preferences if goals else None) or [],
            recent_workouts=[
                WorkoutSnapshot(
                    date=entry.logged_date,
                    exercise_name=entry.exercise_name,
                    exercise_type=entry.exercise_type,
                    duration_minutes=entry.duration_minutes or 0,
                    intensity=entry.intensity,
                    calories_burned=entry.calories_burned,
                    completed=True,
                )
                for entry in entries
            ],
            workout_patterns=analyze_exercise_patterns(entries, active_plan, self.today),
            fitness_goals=FitnessGoalsSnapshot(
                primary_goal=(goals.primary_goal if goals else None) or "general_fitness",
                weekly_workout_target=(goals.weekly_workouts if goals else None) or 3,
                activity_level=(goals.activity_level if goals else None) or "moderately_active",
            ),
        )

    # --- Nutrition ---

    def aggregate_nutrition_data(self, user_id: str) -> NutritionDataSnapshot:
        goals = self.store.nutrition_goals(user_id)
        since = self.today - timedelta(days=settings.activity_window_days)
        meals = self.store.meal_entries(user_id, since)
        water = self.store.water_entries(user_id, since)

        defaults = NutritionGoalsSnapshot()
        return NutritionDataSnapshot(
            nutrition_goals=NutritionGoalsSnapshot(
                daily_calories=(goals.daily_calories if goals else None) or defaults.daily_calories,
                daily_protein=(goals.daily_protein if goals else None) or defaults.daily_protein,
                daily_carbs=(goals.daily_carbs if goals else None) or defaults.daily_carbs,
                daily_fat=(goals.daily_fat if goals else None) or defaults.daily_fat,
                daily_water=(goals.daily_water if goals else None) or defaults.daily_water,
            ),
            recent_meals=[
                MealSnapshot(
                    date=meal.logged_date,
                    meal_type=meal.meal_type,
                    total_calories=meal.total_calories or 0,
                    total_protein=meal.total_protein or 0,
                    total_carbs=meal.total_carbs or 0,
                    total_fat=meal.total_fat or 0,
                    logged_time=meal.logged_time,
                )
                for meal in meals[:RECENT_MEALS]
            ],
            eating_patterns=analyze_nutrition_patterns(meals, water),
            dietary_preferences=DietaryPreferences(
                restrictions=(goals.dietary_restrictions if goals else None) or [],
                health_conditions=(goals.health_conditions if goals else None) or [],
            ),
        )

    # --- Preferences ---

    def aggregate_user_preferences(self, user_id: str) -> UserPreferences:
        ai_prefs = self.store.ai_preferences(user_id)
        return UserPreferences(
            ai_coaching_style=(ai_prefs.coaching_style if ai_prefs else None) or "supportive",
        )


# --- Pattern analysis ---

def analyze_cycle_patterns(period_logs: list) -> CyclePatterns:
    return CyclePatterns(
        typical_energy_by_phase=dict(TYPICAL_ENERGY_BY_PHASE),
        common_symptoms_by_phase={k: list(v) for k, v in COMMON_SYMPTOMS_BY_PHASE.items()},
        cycle_consistency="regular" if len(period_logs) > 6 else "unknown",
    )


def analyze_exercise_patterns(entries: list, active_plan: Optional[WeeklyExercisePlan], today: date) -> WorkoutPatterns:
    total = len(entries)

    if total:
        preferred_duration = round(sum(e.duration_minutes or 0 for e in entries) / total)
        day_counts = Counter(e.logged_date.strftime("%A") for e in entries)
        most_active_days = [day for day, _ in day_counts.most_common(3)]
    else:
        preferred_duration = 30
        most_active_days = list(DEFAULT_ACTIVE_DAYS)

    # Logged entries are completed workouts; against an active plan, measure last week's adherence
    completion_rate = 1.0 if total else 0.0
    if active_plan and active_plan.workouts_per_week:
        week_ago = today - timedelta(days=7)
        last_week = sum(1 for e in entries if e.logged_date > week_ago)
        completion_rate = min(1.0, last_week / active_plan.workouts_per_week)

    return WorkoutPatterns(
        most_active_days=most_active_days,
        preferred_duration=preferred_duration,
        completion_rate=completion_rate,
        performance_by_cycle_phase={k: v.model_copy() for k, v in PERFORMANCE_BY_PHASE.items()},
    )


def analyze_nutrition_patterns(meals: list, water_entries: list) -> EatingPatterns:
    meal_frequency = round(len(meals) / 7) if meals else 3
    return EatingPatterns(
        meal_frequency=meal_frequency,
        hydration_consistency=0.8 if len(water_entries) > 7 else 0.5,
        macro_balance_consistency=0.7,
        meal_timing_patterns=dict(DEFAULT_MEAL_TIMING),
        nutrition_by_cycle_phase={k: v.model_copy() for k, v in NUTRITION_BY_PHASE.items()},
    )


# --- Domain defaults ---

def default_cycle_data() -> CycleDataSnapshot:
    return CycleDataSnapshot(
        current_phase=calculate_phase(None, date.today()),
        cycle_settings=CycleSettingsSnapshot(),
        recent_logs=[],
        cycle_patterns=analyze_cycle_patterns([]),
    )


def default_exercise_data() -> ExerciseDataSnapshot:
    return ExerciseDataSnapshot(workout_patterns=analyze_exercise_patterns([], None, date.today()))


def default_nutrition_data() -> NutritionDataSnapshot:
    return NutritionDataSnapshot(eating_patterns=analyze_nutrition_patterns([], []))
