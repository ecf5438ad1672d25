import pytest
from datetime import date, timedelta
from unittest.mock import patch

from pydantic import ValidationError as PydanticValidationError

from lunaplan.models import (
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
from lunaplan.planner.aggregator import DataAggregator, HealthDataStore, analyze_exercise_patterns

TODAY = date(2026, 10, 18)
USER = "11111111-1111-1111-1111-111111111111"


def aggregator(db):
    return DataAggregator(HealthDataStore(db), today=TODAY)


def test_aggregate_without_any_rows_returns_defaults(db_session):
    snapshot = aggregator(db_session).aggregate(USER)

    phase = snapshot.cycle_data.current_phase
    assert phase.phase == "unknown"
    assert phase.day_in_cycle == 0
    assert phase.energy_level == "moderate"

    assert snapshot.exercise_data.current_fitness_level == "beginner"
    assert snapshot.exercise_data.workout_patterns.most_active_days == ["Monday", "Wednesday", "Friday"]
    assert snapshot.exercise_data.workout_patterns.preferred_duration == 30
    assert snapshot.nutrition_data.nutrition_goals.daily_calories == 2000
    assert snapshot.nutrition_data.nutrition_goals.daily_protein == 120
    assert snapshot.user_preferences.ai_coaching_style == "supportive"


def test_snapshot_is_frozen_at_every_level(db_session):
    snapshot = aggregator(db_session).aggregate(USER)

    with pytest.raises(PydanticValidationError):
        snapshot.user_id = "someone-else"
    with pytest.raises(PydanticValidationError):
        snapshot.cycle_data.current_phase.phase = "luteal"
    with pytest.raises(PydanticValidationError):
        snapshot.nutrition_data.nutrition_goals.daily_calories = 1200


def test_aggregate_reads_cycle_settings_and_logs(db_session):
    db_session.add(CycleSettings(user_id=USER, cycle_length=28, period_length=5, last_period_date=TODAY - timedelta(days=10)))
    for i in range(8):
        db_session.add(PeriodLog(user_id=USER, date=TODAY - timedelta(days=i), mood="calm", symptoms=["cramps"]))
    # Outside the 60-day window
    db_session.add(PeriodLog(user_id=USER, date=TODAY - timedelta(days=90), mood="sad"))
    db_session.commit()

    cycle = aggregator(db_session).aggregate(USER).cycle_data

    assert cycle.current_phase.phase == "follicular"
    assert cycle.current_phase.day_in_cycle == 11
    assert len(cycle.recent_logs) == 8
    assert cycle.recent_logs[0].date == TODAY
    assert cycle.recent_logs[0].symptoms == ["cramps"]
    assert cycle.cycle_patterns.cycle_consistency == "regular"


def test_aggregate_reads_exercise_and_nutrition(db_session):
    db_session.add(FitnessGoals(user_id=USER, experience_level="intermediate", primary_goal="strength", weekly_workouts=4,
                                workout_preferences=["yoga"]))
    db_session.add(ExerciseEntry(user_id=USER, logged_date=date(2026, 10, 12), exercise_name="Run", duration_minutes=40))
    db_session.add(ExerciseEntry(user_id=USER, logged_date=date(2026, 10, 5), exercise_name="Run", duration_minutes=20))
    db_session.add(ExerciseEntry(user_id=USER, logged_date=date(2026, 10, 14), exercise_name="Lift", duration_minutes=30))
    db_session.add(NutritionGoals(user_id=USER, daily_calories=1800, dietary_restrictions=["vegetarian"]))
    db_session.add(MealEntry(user_id=USER, logged_date=TODAY, meal_type="lunch", total_calories=600))
    db_session.add(DailyWaterIntake(user_id=USER, date=TODAY, amount_ml=1500))
    db_session.add(UserAIPreferences(user_id=USER, coaching_style="direct"))
    db_session.commit()

    snapshot = aggregator(db_session).aggregate(USER)

    exercise = snapshot.exercise_data
    assert exercise.current_fitness_level == "intermediate"
    assert exercise.preferred_workout_types == ["yoga"]
    assert exercise.fitness_goals.primary_goal == "strength"
    assert exercise.fitness_goals.weekly_workout_target == 4
    assert len(exercise.recent_workouts) == 3
    assert exercise.workout_patterns.preferred_duration == 30
    # Oct 5 and Oct 12 2026 are both Mondays
    assert exercise.workout_patterns.most_active_days[0] == "Monday"

    nutrition = snapshot.nutrition_data
    assert nutrition.nutrition_goals.daily_calories == 1800
    # Unset goal columns fall back to defaults
    assert nutrition.nutrition_goals.daily_protein == 120
    assert nutrition.dietary_preferences.restrictions == ["vegetarian"]
    assert len(nutrition.recent_meals) == 1
    assert snapshot.user_preferences.ai_coaching_style == "direct"


def test_failing_domain_degrades_to_defaults(db_session):
    db_session.add(CycleSettings(user_id=USER, cycle_length=28, period_length=5, last_period_date=TODAY - timedelta(days=10)))
    db_session.add(NutritionGoals(user_id=USER, daily_calories=1800))
    db_session.commit()

    with patch.object(HealthDataStore, "exercise_entries", side_effect=RuntimeError("relation does not exist")):
        snapshot = aggregator(db_session).aggregate(USER)

    # Other domains are unaffected
    assert snapshot.cycle_data.current_phase.phase == "follicular"
    assert snapshot.nutrition_data.nutrition_goals.daily_calories == 1800
    assert snapshot.exercise_data.recent_workouts == []
    assert snapshot.exercise_data.workout_patterns.preferred_duration == 30


def test_other_users_rows_are_ignored(db_session):
    db_session.add(CycleSettings(user_id="someone-else", last_period_date=TODAY))
    db_session.commit()

    snapshot = aggregator(db_session).aggregate(USER)
    assert snapshot.cycle_data.current_phase.phase == "unknown"


def test_completion_rate_against_active_plan():
    class Entry:
        def __init__(self, logged_date, duration_minutes=30):
            self.logged_date = logged_date
            self.duration_minutes = duration_minutes

    entries = [Entry(TODAY - timedelta(days=1)), Entry(TODAY - timedelta(days=3)), Entry(TODAY - timedelta(days=20))]
    plan = WeeklyExercisePlan(user_id=USER, is_active=True, workouts_per_week=4)

    patterns = analyze_exercise_patterns(entries, plan, TODAY)
    assert patterns.completion_rate == pytest.approx(0.5)

    assert analyze_exercise_patterns(entries, None, TODAY).completion_rate == 1.0
    assert analyze_exercise_patterns([], None, TODAY).completion_rate == 0.0
