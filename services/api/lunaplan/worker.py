"""Weekly plan auto-generation worker.

Polls for premium users without a plan for the current week and generates
one through the same service path the API uses:
1. Select accounts with an active subscription and no ai_weekly_plans row
   for this week's start date
2. Generate each plan in its own session; the store's unique constraint
   settles any race with a concurrent API request
3. A failure for one user is logged and never stops the batch

Usage:
    python -m lunaplan.worker
"""

import asyncio
import logging
import os
import sys
import time
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import init_engine, session_scope, SessionLocal
from .deps import ACTIVE_SUBSCRIPTION
from .errors import PlannerError
from .models import Account, AIWeeklyPlanRecord
from .planner.cycle import week_start_for
from .planner.service import WeeklyPlannerService
from .settings import settings

logger = logging.getLogger("lunaplan.worker")

POLL_INTERVAL = int(os.environ.get("POLL_INTERVAL", settings.scheduler_poll_seconds))
WORKER_ID = f"worker-{uuid.uuid4().hex[:8]}"


def users_missing_plan(db: Session, week_start: date) -> list[str]:
    has_plan = (
        select(AIWeeklyPlanRecord.user_id)
        .filter(AIWeeklyPlanRecord.week_start == week_start)
    )
    stmt = (
        select(Account.user_id)
        .filter(
            Account.subscription_status == ACTIVE_SUBSCRIPTION,
            Account.user_id.not_in(has_plan),
        )
        .order_by(Account.user_id)
    )
    return list(db.execute(stmt).scalars())


async def run_once(now: Optional[datetime] = None) -> dict:
    """Generate missing plans for this week. Returns counts for logging and tests."""
    now = now or datetime.now(timezone.utc)
    week_start = week_start_for(now.date())

    with session_scope(SessionLocal()) as db:
        pending = users_missing_plan(db, week_start)

    generated, failed = 0, 0
    for user_id in pending:
        with session_scope(SessionLocal()) as db:
            try:
                await WeeklyPlannerService(db, clock=lambda: now).generate_weekly_plan(user_id)
                generated += 1
            except PlannerError as e:
                failed += 1
                logger.error(f"[{WORKER_ID}] Plan generation for user {user_id} failed: {e.error_code} {e.detail}")
                db.rollback()

    if pending:
        logger.info(f"[{WORKER_ID}] Week {week_start}: generated {generated}, failed {failed}")
    return {"week_start": week_start, "pending": len(pending), "generated": generated, "failed": failed}


def main():
    """Main worker loop."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logger.info(f"[{WORKER_ID}] Starting (Poll: {POLL_INTERVAL}s)")

    init_engine()

    while True:
        try:
            asyncio.run(run_once())
        except Exception:
            logger.exception(f"[{WORKER_ID}] Loop error")
        time.sleep(POLL_INTERVAL)


if __name__ == "__main__":
    main()
