"""Usage Tracker.

Upserts one row per (user, feature, day) with a running count and cost.
Tracking must never break a generation request: every failure is logged
and swallowed.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import AIUsageRecord

logger = logging.getLogger("lunaplan.usage")

FEATURE_WEEKLY_PLAN = "weekly_plan_generation"
FEATURE_DAILY_INSIGHT = "daily_insight_generation"
FEATURE_ADAPTATION = "plan_adaptation"


class UsageTracker:
    def __init__(self, db: Session):
        self.db = db

    def track(self, user_id: str, feature_type: str, cost_estimate: float, usage_date: Optional[date] = None) -> None:
        usage_date = usage_date or datetime.now(timezone.utc).date()
        try:
            self._upsert(user_id, feature_type, usage_date, cost_estimate)
        except Exception as e:
            logger.error(f"Error tracking AI usage for user {user_id} ({feature_type}): {e}")
            try:
                self.db.rollback()
            except Exception:
                logger.exception("Rollback after usage tracking failure also failed")

    def _upsert(self, user_id: str, feature_type: str, usage_date: date, cost_estimate: float) -> None:
        for _ in range(2):
            record = (
                self.db.query(AIUsageRecord)
                .filter(
                    AIUsageRecord.user_id == user_id,
                    AIUsageRecord.feature_type == feature_type,
                    AIUsageRecord.usage_date == usage_date,
                )
                .first()
            )
            if record:
                record.usage_count += 1
                record.cost_estimate = (record.cost_estimate or 0.0) + cost_estimate
                self.db.commit()
                return

            self.db.add(AIUsageRecord(
                user_id=user_id,
                feature_type=feature_type,
                usage_date=usage_date,
                usage_count=1,
                cost_estimate=cost_estimate,
            ))
            try:
                self.db.commit()
                return
            except IntegrityError:
                # Another request created today's row first; increment theirs
                self.db.rollback()

        raise RuntimeError("usage row kept conflicting")
