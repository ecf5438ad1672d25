"""Pydantic schemas for the LunaPlan planner.

- Snapshot models (aggregator output, never persisted)
- Plan/insight models (validated LLM output, persisted as JSON)
- Adaptation models (partial plan patches + trigger events)
- API request/response envelopes
"""

from datetime import datetime, date
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Phase = Literal["menstrual", "follicular", "ovulatory", "luteal", "unknown"]
PhaseEnergy = Literal["low", "building", "high", "declining", "moderate"]
Intensity = Literal["low", "moderate", "high"]
Priority = Literal["low", "medium", "high"]
TriggerType = Literal["symptom_report", "energy_change", "workout_skip", "cycle_phase_change"]


# --- Snapshot ---

class SnapshotModel(BaseModel):
    """Snapshot models are frozen at every level."""
    model_config = ConfigDict(frozen=True)


class CurrentPhase(SnapshotModel):
    phase: Phase
    day_in_cycle: int
    energy_level: PhaseEnergy
    days_remaining_in_phase: int


class CycleSettingsSnapshot(SnapshotModel):
    cycle_length: int = 28
    period_length: int = 5
    last_period_date: Optional[date] = None


class CycleLogSnapshot(SnapshotModel):
    date: date
    mood: Optional[str] = None
    flow_intensity: Optional[str] = None
    symptoms: list[str] = []
    energy_reported: Optional[str] = None


class CyclePatterns(SnapshotModel):
    typical_energy_by_phase: dict[str, str]
    common_symptoms_by_phase: dict[str, list[str]]
    cycle_consistency: Literal["regular", "irregular", "unknown"] = "unknown"


class CycleDataSnapshot(SnapshotModel):
    current_phase: CurrentPhase
    cycle_settings: CycleSettingsSnapshot
    recent_logs: list[CycleLogSnapshot] = []
    cycle_patterns: CyclePatterns


class WorkoutSnapshot(SnapshotModel):
    date: date
    exercise_name: str
    exercise_type: Optional[str] = None
    duration_minutes: int = 0
    intensity: Optional[str] = None
    calories_burned: Optional[int] = None
    completed: bool = True


class PhasePerformance(SnapshotModel):
    completion_rate: float
    avg_intensity: Intensity
    preferred_exercises: list[str]


class WorkoutPatterns(SnapshotModel):
    most_active_days: list[str]
    preferred_duration: int
    completion_rate: float
    performance_by_cycle_phase: dict[str, PhasePerformance]


class FitnessGoalsSnapshot(SnapshotModel):
    primary_goal: str = "general_fitness"
    weekly_workout_target: int = 3
    activity_level: str = "moderately_active"


class ExerciseDataSnapshot(SnapshotModel):
    current_fitness_level: str = "beginner"
    preferred_workout_types: list[str] = []
    recent_workouts: list[WorkoutSnapshot] = []
    workout_patterns: WorkoutPatterns
    fitness_goals: FitnessGoalsSnapshot = FitnessGoalsSnapshot()


class NutritionGoalsSnapshot(SnapshotModel):
    daily_calories: int = 2000
    daily_protein: int = 120
    daily_carbs: int = 200
    daily_fat: int = 65
    daily_water: int = 2000  # ml


class MealSnapshot(SnapshotModel):
    date: date
    meal_type: str
    total_calories: float = 0
    total_protein: float = 0
    total_carbs: float = 0
    total_fat: float = 0
    logged_time: Optional[str] = None


class PhaseNutrition(SnapshotModel):
    avg_calories: int
    cravings: list[str]
    hydration_level: Literal["low", "moderate", "high"]


class EatingPatterns(SnapshotModel):
    meal_frequency: int
    hydration_consistency: float
    macro_balance_consistency: float
    meal_timing_patterns: dict[str, str]
    nutrition_by_cycle_phase: dict[str, PhaseNutrition]


class DietaryPreferences(SnapshotModel):
    restrictions: list[str] = []
    health_conditions: list[str] = []
    meal_preferences: list[str] = []


class NutritionDataSnapshot(SnapshotModel):
    nutrition_goals: NutritionGoalsSnapshot = NutritionGoalsSnapshot()
    recent_meals: list[MealSnapshot] = []
    eating_patterns: EatingPatterns
    dietary_preferences: DietaryPreferences = DietaryPreferences()


class NotificationPreferences(SnapshotModel):
    workout_reminders: bool = True
    meal_reminders: bool = True
    cycle_insights: bool = True


class UserPreferences(SnapshotModel):
    timezone: str = "UTC"
    preferred_workout_time: Literal["morning", "afternoon", "evening", "flexible"] = "flexible"
    notification_preferences: NotificationPreferences = NotificationPreferences()
    ai_coaching_style: str = "supportive"
    focus_areas: list[str] = ["energy_management", "fitness_goals"]


class UserDataSnapshot(SnapshotModel):
    """Read-only aggregated view of a user's state. Rebuilt per request."""

    user_id: str
    cycle_data: CycleDataSnapshot
    exercise_data: ExerciseDataSnapshot
    nutrition_data: NutritionDataSnapshot
    user_preferences: UserPreferences


# --- Plan (validated provider output) ---

class LLMModel(BaseModel):
    """Base for provider-facing models: unknown keys are dropped, known keys are strict."""
    model_config = ConfigDict(extra="ignore")


class Exercise(LLMModel):
    name: str
    category: str = "general"
    duration_minutes: int = Field(0, ge=0)
    sets: Optional[int] = Field(None, ge=0)
    reps: Optional[str] = None
    instructions: str = ""
    cycle_benefit: str = ""


class DailyWorkout(LLMModel):
    date: date
    is_rest_day: bool = False
    workout_type: str
    duration_minutes: int = Field(0, ge=0)
    intensity: Intensity
    cycle_optimization: str = ""
    exercises: list[Exercise] = []
    alternative_options: list[str] = []
    adaptation_reason: Optional[str] = None


class ExerciseOverview(LLMModel):
    total_workouts: int = Field(0, ge=0)
    total_minutes: int = Field(0, ge=0)
    focus_areas: list[str] = []
    cycle_adaptations: list[str] = []


class ExercisePlan(LLMModel):
    weekly_overview: ExerciseOverview = ExerciseOverview()
    daily_workouts: list[DailyWorkout] = []


class MacroTargets(LLMModel):
    protein: float = Field(ge=0)
    carbs: float = Field(ge=0)
    fat: float = Field(ge=0)


class DailyNutrition(LLMModel):
    date: date
    calorie_target: int = Field(ge=0)
    macro_targets: MacroTargets
    hydration_goal: int = Field(0, ge=0)
    cycle_specific_nutrients: list[str] = []
    meal_timing_suggestions: dict[str, str] = {}
    energy_support_foods: list[str] = []
    foods_to_emphasize: list[str] = []
    foods_to_minimize: list[str] = []
    adaptation_reason: Optional[str] = None


class NutritionOverview(LLMModel):
    calorie_distribution: dict[str, float] = {}
    macro_focus_by_phase: dict[str, list[str]] = {}
    hydration_goals: dict[str, float] = {}
    cycle_nutrition_priorities: list[str] = []


class NutritionPlan(LLMModel):
    weekly_overview: NutritionOverview = NutritionOverview()
    daily_nutrition: list[DailyNutrition] = []


class AIDailyInsight(LLMModel):
    date: date
    cycle_day: int = 0
    predicted_energy: PhaseEnergy = "moderate"
    key_insights: list[str] = []
    workout_recommendations: list[str] = []
    nutrition_focus: list[str] = []
    energy_management_tips: list[str] = []
    symptom_prevention: list[str] = []
    motivation_message: str = ""


class AdaptationTrigger(LLMModel):
    trigger_type: TriggerType
    condition: str
    adaptation_instructions: str
    priority: Priority = "medium"


class SuccessMetrics(LLMModel):
    target_workout_completion: float = Field(0.8, ge=0, le=1)
    target_nutrition_adherence: float = Field(0.75, ge=0, le=1)
    predicted_energy_correlation: float = Field(0.7, ge=0, le=1)


class PhaseForecastDay(BaseModel):
    date: date
    phase: Phase
    energy_level: PhaseEnergy
    day_in_cycle: int


class GenerationContext(BaseModel):
    cycle_phase_at_generation: str
    predicted_phases: list[PhaseForecastDay]
    user_goals_considered: list[str]
    ai_model_used: str
    generation_timestamp: datetime


class AdaptationHistoryEntry(BaseModel):
    timestamp: datetime
    trigger: Optional[dict[str, Any]] = None
    reason: str
    changes_made: list[str] = Field(min_length=1)


class AIWeeklyPlan(BaseModel):
    plan_id: str
    user_id: str
    week_start_date: date
    generation_context: GenerationContext
    exercise_plan: ExercisePlan
    nutrition_plan: NutritionPlan
    daily_insights: list[AIDailyInsight] = []
    adaptation_triggers: list[AdaptationTrigger] = []
    adaptation_history: list[AdaptationHistoryEntry] = []
    success_metrics: SuccessMetrics = SuccessMetrics()


# --- Adaptation ---

class WorkoutPatch(LLMModel):
    date: date
    is_rest_day: Optional[bool] = None
    workout_type: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    intensity: Optional[Intensity] = None
    cycle_optimization: Optional[str] = None
    exercises: Optional[list[Exercise]] = None
    alternative_options: Optional[list[str]] = None
    adaptation_reason: Optional[str] = None


class NutritionPatch(LLMModel):
    date: date
    calorie_target: Optional[int] = Field(None, ge=0)
    macro_targets: Optional[MacroTargets] = None
    hydration_goal: Optional[int] = Field(None, ge=0)
    cycle_specific_nutrients: Optional[list[str]] = None
    energy_support_foods: Optional[list[str]] = None
    foods_to_emphasize: Optional[list[str]] = None
    foods_to_minimize: Optional[list[str]] = None
    adaptation_reason: Optional[str] = None


class ExercisePlanPatch(LLMModel):
    daily_workouts: list[WorkoutPatch] = []


class NutritionPlanPatch(LLMModel):
    daily_nutrition: list[NutritionPatch] = []


class AdaptedPlan(LLMModel):
    exercise_plan: Optional[ExercisePlanPatch] = None
    nutrition_plan: Optional[NutritionPlanPatch] = None


class PlanAdaptation(BaseModel):
    adapted_plan: AdaptedPlan
    adaptation_reason: str
    changes_made: list[str]
    cost_estimate: float = 0.0


class TriggerEvent(BaseModel):
    """Change event from the health-data store (database webhook payload)."""
    model_config = ConfigDict(extra="allow")

    user_id: str
    table: str
    event_type: Literal["INSERT", "UPDATE", "DELETE"] = "INSERT"
    new_record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None


# --- API ---

class AdaptPlanRequest(BaseModel):
    adaptation_reason: Optional[str] = None
    current_plan_id: Optional[str] = None


class CheckAdaptationRequest(BaseModel):
    trigger_data: Optional[dict[str, Any]] = None
    event_id: Optional[str] = None


class WeeklyPlanResponse(BaseModel):
    success: bool = True
    plan: AIWeeklyPlan
    cost_estimate: float
    generation_time_ms: int
    cached: bool


class DailyInsightResponse(BaseModel):
    success: bool = True
    insights: AIDailyInsight
    cost_estimate: float
    generation_time_ms: int
    cached: bool


class AdaptationResponse(BaseModel):
    success: bool = True
    plan_id: str
    adapted_plan: AdaptedPlan
    adaptation_reason: str
    changes_made: list[str]
    cost_estimate: float


class CurrentPlanResponse(BaseModel):
    success: bool = True
    plan: AIWeeklyPlan
    plan_id: str
    created_at: datetime


class CheckAdaptationResponse(BaseModel):
    success: bool = True
    adapted: bool
    duplicate: bool = False
    reason: Optional[str] = None
    message: str
