import pytest
from unittest.mock import patch

from lunaplan import worker
from lunaplan.errors import ProviderError
from lunaplan.models import Account, AIWeeklyPlanRecord
from lunaplan.planner.service import WeeklyPlannerService


@pytest.fixture(autouse=True)
def worker_sessions(session_factory):
    # The worker opens its own sessions; point them at the test database
    with patch.object(worker, "SessionLocal", lambda: session_factory):
        yield


def add_accounts(db, statuses):
    for i, status in enumerate(statuses):
        db.add(Account(user_id=f"user-{i}", subscription_status=status))
    db.commit()


@pytest.mark.asyncio
async def test_run_once_generates_for_active_users_only(db_session, clock):
    add_accounts(db_session, ["active", "active", "canceled", None])

    summary = await worker.run_once(now=clock.now)

    assert summary["pending"] == 2
    assert summary["generated"] == 2
    assert summary["week_start"] == clock.now.date()
    users = {r.user_id for r in db_session.query(AIWeeklyPlanRecord).all()}
    assert users == {"user-0", "user-1"}


@pytest.mark.asyncio
async def test_run_once_skips_users_with_a_plan(db_session, clock):
    add_accounts(db_session, ["active", "active"])
    await worker.run_once(now=clock.now)

    summary = await worker.run_once(now=clock.now)

    assert summary["pending"] == 0
    assert db_session.query(AIWeeklyPlanRecord).count() == 2


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_batch(db_session, clock):
    add_accounts(db_session, ["active", "active"])
    real = WeeklyPlannerService.generate_weekly_plan

    async def flaky(self, user_id):
        if user_id == "user-0":
            raise ProviderError("provider down")
        return await real(self, user_id)

    with patch.object(WeeklyPlannerService, "generate_weekly_plan", flaky):
        summary = await worker.run_once(now=clock.now)

    assert summary["generated"] == 1
    assert summary["failed"] == 1
    assert [r.user_id for r in db_session.query(AIWeeklyPlanRecord).all()] == ["user-1"]
