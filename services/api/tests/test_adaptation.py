import json
import pytest
from unittest.mock import AsyncMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from lunaplan.errors import BadRequestError, ForbiddenError, InternalError, ProviderError
from lunaplan.infra.event_dedupe import event_key
from lunaplan.models import AIUsageRecord, AIWeeklyPlanRecord
from lunaplan.planner.adaptation import (
    REASON_IRON_MISSED,
    REASON_LOW_ENERGY_WORKOUT,
    REASON_MOOD_CHANGE,
    REASON_SEVERE_SYMPTOMS,
    REASON_WORKOUT_SKIPPED,
    determine_adaptation_reason,
)
from lunaplan.planner.llm_engine import LLMEngine
from lunaplan.planner.service import WeeklyPlannerService
from lunaplan.schemas import TriggerEvent

USER = "11111111-1111-1111-1111-111111111111"


def event(table, event_type="INSERT", new=None, old=None, user_id=USER):
    return {"user_id": user_id, "table": table, "event_type": event_type, "new_record": new, "old_record": old}


@pytest.mark.parametrize("data,reason", [
    (event("period_logs", new={"symptoms": ["severe_cramps"]}), REASON_SEVERE_SYMPTOMS),
    (event("period_logs", new={"symptoms": ["extreme_fatigue", "bloating"], "mood": "anxious"}), REASON_SEVERE_SYMPTOMS),
    (event("period_logs", new={"mood": "irritable"}), REASON_MOOD_CHANGE),
    (event("period_logs", new={"mood": "happy", "symptoms": ["cramps"]}), None),
    (event("exercise_entries", "DELETE", old={"id": "w1"}), REASON_WORKOUT_SKIPPED),
    (event("exercise_entries", new={"intensity": "low", "duration_minutes": 10}), REASON_LOW_ENERGY_WORKOUT),
    (event("exercise_entries", new={"intensity": "low", "duration_minutes": 15}), None),
    (event("exercise_entries", new={"intensity": "high", "duration_minutes": 5}), None),
    (event("supplement_logs", "UPDATE", new={"taken": False, "supplement_name": "Iron Bisglycinate"}), REASON_IRON_MISSED),
    (event("supplement_logs", new={"taken": True, "supplement_name": "iron"}), None),
    (event("supplement_logs", new={"taken": False, "supplement_name": "Vitamin D"}), None),
    (event("meal_entries", new={"total_calories": 900}), None),
])
def test_determine_adaptation_reason(data, reason):
    assert determine_adaptation_reason(TriggerEvent.model_validate(data)) == reason


def test_workout_skipped_reason_text():
    assert REASON_WORKOUT_SKIPPED == "workout skipped — redistribute weekly load"


@pytest.fixture
def service(db_session, clock):
    return WeeklyPlannerService(db_session, engine=LLMEngine(mode="mock", clock=clock), clock=clock)


@pytest.mark.asyncio
async def test_deleted_workout_adapts_current_plan(service, db_session, premium_user):
    await service.generate_weekly_plan(premium_user)

    result = await service.check_adaptation(premium_user, event("exercise_entries", "DELETE", old={"id": "w1"}))

    assert result.adapted is True
    assert result.reason == REASON_WORKOUT_SKIPPED
    assert result.duplicate is False

    record = db_session.query(AIWeeklyPlanRecord).one()
    db_session.refresh(record)
    assert len(record.adaptation_history) == 1
    entry = record.adaptation_history[0]
    assert entry["reason"] == REASON_WORKOUT_SKIPPED
    assert entry["trigger"]["table"] == "exercise_entries"
    assert entry["changes_made"]

    usage = db_session.query(AIUsageRecord).filter(AIUsageRecord.feature_type == "plan_adaptation").one()
    assert usage.usage_count == 1


@pytest.mark.asyncio
async def test_redelivered_event_is_skipped(service, db_session, premium_user):
    await service.generate_weekly_plan(premium_user)
    data = event("exercise_entries", "DELETE", old={"id": "w1"})

    first = await service.check_adaptation(premium_user, data)
    second = await service.check_adaptation(premium_user, data)

    assert first.adapted is True
    assert second.adapted is False
    assert second.duplicate is True

    record = db_session.query(AIWeeklyPlanRecord).one()
    db_session.refresh(record)
    assert len(record.adaptation_history) == 1


@pytest.mark.asyncio
async def test_explicit_event_ids_distinguish_identical_payloads(service, db_session, premium_user):
    await service.generate_weekly_plan(premium_user)
    data = event("exercise_entries", "DELETE", old={"id": "w1"})

    await service.check_adaptation(premium_user, data, event_id="evt-1")
    second = await service.check_adaptation(premium_user, data, event_id="evt-2")

    assert second.adapted is True
    record = db_session.query(AIWeeklyPlanRecord).one()
    db_session.refresh(record)
    assert len(record.adaptation_history) == 2


@pytest.mark.asyncio
async def test_event_completion_is_recorded(service, premium_user, mock_redis):
    await service.generate_weekly_plan(premium_user)
    data = event("period_logs", new={"symptoms": ["severe_cramps"]})

    await service.check_adaptation(premium_user, data, event_id="evt-9")

    stored = json.loads(await mock_redis.get(f"lunaplan:adapt-event:{USER}:evt-9"))
    assert stored["state"] == "done"
    assert stored["reason"] == REASON_SEVERE_SYMPTOMS
    assert await mock_redis.ttl(f"lunaplan:adapt-event:{USER}:evt-9") > 0


@pytest.mark.asyncio
async def test_failed_adaptation_releases_claim(service, db_session, premium_user, mock_redis):
    await service.generate_weekly_plan(premium_user)
    data = event("exercise_entries", "DELETE", old={"id": "w1"})

    with patch.object(service.engine, "adapt_plan", AsyncMock(side_effect=ProviderError("down"))):
        with pytest.raises(ProviderError):
            await service.check_adaptation(premium_user, data)

    assert await mock_redis.get(f"lunaplan:adapt-event:{USER}:{event_key(data)}") is None

    # Redelivery after the outage goes through
    retried = await service.check_adaptation(premium_user, data)
    assert retried.adapted is True


@pytest.mark.asyncio
async def test_event_store_outage_is_internal_error(service, db_session, premium_user, mock_redis):
    await service.generate_weekly_plan(premium_user)
    data = event("exercise_entries", "DELETE", old={"id": "w1"})

    with patch.object(mock_redis, "set", AsyncMock(side_effect=RedisConnectionError("redis down"))):
        with pytest.raises(InternalError):
            await service.check_adaptation(premium_user, data)

    record = db_session.query(AIWeeklyPlanRecord).one()
    db_session.refresh(record)
    assert not record.adaptation_history


@pytest.mark.asyncio
async def test_completion_write_failure_still_reports_adaptation(service, db_session, premium_user, mock_redis):
    await service.generate_weekly_plan(premium_user)
    data = event("exercise_entries", "DELETE", old={"id": "w1"})

    with patch.object(mock_redis, "set", AsyncMock(side_effect=[True, RedisConnectionError("redis down")])):
        result = await service.check_adaptation(premium_user, data)

    assert result.adapted is True
    record = db_session.query(AIWeeklyPlanRecord).one()
    db_session.refresh(record)
    assert len(record.adaptation_history) == 1


@pytest.mark.asyncio
async def test_event_without_plan_is_not_adapted(service, premium_user):
    result = await service.check_adaptation(premium_user, event("exercise_entries", "DELETE"))

    assert result.adapted is False
    assert result.reason == REASON_WORKOUT_SKIPPED


@pytest.mark.asyncio
async def test_irrelevant_event_is_not_adapted(service, db_session, premium_user):
    await service.generate_weekly_plan(premium_user)

    result = await service.check_adaptation(premium_user, event("meal_entries", new={"total_calories": 400}))

    assert result.adapted is False
    assert result.reason is None
    record = db_session.query(AIWeeklyPlanRecord).one()
    assert not record.adaptation_history


@pytest.mark.asyncio
async def test_event_for_another_user_is_rejected(service, premium_user, other_user_id):
    with pytest.raises(ForbiddenError):
        await service.check_adaptation(premium_user, event("exercise_entries", "DELETE", user_id=other_user_id))


@pytest.mark.asyncio
async def test_malformed_event_is_rejected(service, premium_user):
    with pytest.raises(BadRequestError):
        await service.check_adaptation(premium_user, {"table": "exercise_entries"})
