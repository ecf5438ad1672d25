import pytest
from unittest.mock import patch

from lunaplan.infra import redis_client
from lunaplan.infra.event_dedupe import claim_event, complete_event, event_key, release_event

USER = "11111111-1111-1111-1111-111111111111"


def test_event_key_prefers_explicit_id():
    assert event_key({"table": "x"}, "evt-1") == "evt-1"


def test_event_key_is_order_independent():
    a = event_key({"table": "period_logs", "new_record": {"mood": "anxious", "symptoms": []}})
    b = event_key({"new_record": {"symptoms": [], "mood": "anxious"}, "table": "period_logs"})
    assert a == b
    assert len(a) == 64


def test_event_key_differs_by_payload():
    assert event_key({"table": "a"}) != event_key({"table": "b"})


@pytest.mark.asyncio
async def test_claim_once(mock_redis):
    rkey = await claim_event(USER, "evt-1")
    assert rkey == f"lunaplan:adapt-event:{USER}:evt-1"
    assert await claim_event(USER, "evt-1") is None
    # Per-user namespace
    assert await claim_event("someone-else", "evt-1") is not None


@pytest.mark.asyncio
async def test_release_allows_reclaim(mock_redis):
    rkey = await claim_event(USER, "evt-2")
    await release_event(rkey)
    assert await claim_event(USER, "evt-2") == rkey


@pytest.mark.asyncio
async def test_completed_event_stays_claimed(mock_redis):
    rkey = await claim_event(USER, "evt-3")
    await complete_event(rkey, adapted=False, reason=None)
    assert await claim_event(USER, "evt-3") is None


@pytest.mark.asyncio
async def test_release_swallows_redis_errors():
    with patch("lunaplan.infra.event_dedupe.get_redis", side_effect=ConnectionError("redis down")):
        await release_event("lunaplan:adapt-event:x:y")


@pytest.mark.asyncio
async def test_get_redis_reuses_client(mock_redis):
    assert await redis_client.get_redis() is mock_redis
    assert await redis_client.get_redis() is mock_redis
