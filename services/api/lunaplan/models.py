"""SQLAlchemy ORM models for the LunaPlan planner service.

Tables owned by the planner:
- ai_weekly_plans: one generated plan per user per calendar week
- ai_insights: daily insights, valid for 24h after creation
- ai_usage_tracking: per-user/per-feature/per-day invocation counters

Tables read from the health-data store (written by the mobile app, never by us):
- accounts, user_ai_preferences
- cycle_settings, period_logs
- fitness_goals, exercise_entries, weekly_exercise_plans
- nutrition_goals, meal_entries, daily_water_intake
"""

from __future__ import annotations

import uuid
from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    Boolean,
    Float,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Health-data store (read-only) ---

class Account(Base):
    """Account row; carries the subscription status used for entitlement."""
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    subscription_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # active | canceled | ...
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserAIPreferences(Base):
    __tablename__ = "user_ai_preferences"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    coaching_style: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class CycleSettings(Base):
    __tablename__ = "cycle_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    cycle_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    period_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_period_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


class PeriodLog(Base):
    __tablename__ = "period_logs"
    __table_args__ = (
        Index("ix_period_logs_user_date", "user_id", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    mood: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    flow_intensity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    symptoms: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    energy_level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class FitnessGoals(Base):
    __tablename__ = "fitness_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    experience_level: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    workout_preferences: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    primary_goal: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    weekly_workouts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    activity_level: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)


class ExerciseEntry(Base):
    __tablename__ = "exercise_entries"
    __table_args__ = (
        Index("ix_exercise_entries_user_date", "user_id", "logged_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    logged_date: Mapped[date] = mapped_column(Date, nullable=False)
    exercise_name: Mapped[str] = mapped_column(String(200), nullable=False)
    exercise_type: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    intensity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # low | moderate | high
    calories_burned: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class WeeklyExercisePlan(Base):
    """User-authored weekly exercise plan (not the AI plan)."""
    __tablename__ = "weekly_exercise_plans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    workouts_per_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class NutritionGoals(Base):
    __tablename__ = "nutrition_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    daily_calories: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    daily_protein: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    daily_carbs: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    daily_fat: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    daily_water: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # ml
    dietary_restrictions: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    health_conditions: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)


class MealEntry(Base):
    __tablename__ = "meal_entries"
    __table_args__ = (
        Index("ix_meal_entries_user_date", "user_id", "logged_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    logged_date: Mapped[date] = mapped_column(Date, nullable=False)
    meal_type: Mapped[str] = mapped_column(String(20), nullable=False)  # breakfast | lunch | dinner | snack
    total_calories: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_protein: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_carbs: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_fat: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    logged_time: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)  # HH:MM


class DailyWaterIntake(Base):
    __tablename__ = "daily_water_intake"
    __table_args__ = (
        Index("ix_daily_water_intake_user_date", "user_id", "date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_ml: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# --- Planner-owned state ---

class AIWeeklyPlanRecord(Base):
    """Persisted weekly plan.

    The (user_id, week_start) unique constraint is what enforces "one plan per
    user per week" across processes; the store relies on it for upsert-or-fetch.
    """
    __tablename__ = "ai_weekly_plans"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_ai_weekly_plans_user_week"),
        Index("ix_ai_weekly_plans_user_week", "user_id", "week_start"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)

    plan_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    generation_context: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    ai_model_used: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    # Append-only list of {timestamp, trigger, reason, changes_made}
    adaptation_history: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class AIInsightRecord(Base):
    __tablename__ = "ai_insights"
    __table_args__ = (
        UniqueConstraint("user_id", "insight_type", "target_date", name="uq_ai_insights_user_type_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    insight_type: Mapped[str] = mapped_column(String(20), nullable=False, default="daily")
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    insights_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    relevance_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AIUsageRecord(Base):
    __tablename__ = "ai_usage_tracking"
    __table_args__ = (
        UniqueConstraint("user_id", "feature_type", "usage_date", name="uq_ai_usage_user_feature_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    feature_type: Mapped[str] = mapped_column(String(40), nullable=False)
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_estimate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
