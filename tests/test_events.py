import asyncio
import json
import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from livescreen.modules.events import EventBroker, EventType


@pytest.mark.asyncio
async def test_publish_reaches_session_subscribers_only(broker):
    mine = broker.subscribe("s1")
    other = broker.subscribe("s2")

    event = await broker.publish("s1", EventType.BUNDLE_UPDATED, {"size": 10})

    assert (await asyncio.wait_for(mine.get(), 1)) is event
    assert other.queue.empty()


@pytest.mark.asyncio
async def test_event_ids_increase(broker):
    first = await broker.publish("s1", EventType.FILE_CHANGED)
    second = await broker.publish("s1", EventType.FILE_CHANGED)

    assert second.event_id > first.event_id


@pytest.mark.asyncio
async def test_history_filters_by_type_and_id(broker):
    first = await broker.publish("s1", EventType.FILE_CHANGED, {"n": 1})
    await broker.publish("s1", EventType.SCREEN_HOT_RELOAD, {"n": 2})
    await broker.publish("s1", EventType.FILE_CHANGED, {"n": 3})

    assert [e.data["n"] for e in broker.history("s1", EventType.FILE_CHANGED)] == [1, 3]
    assert [e.data["n"] for e in broker.history("s1", since_id=first.event_id)] == [2, 3]


@pytest.mark.asyncio
async def test_history_is_bounded():
    broker = EventBroker(history_size=2)
    for n in range(5):
        await broker.publish("s1", EventType.FILE_CHANGED, {"n": n})

    assert [e.data["n"] for e in broker.history("s1")] == [3, 4]


@pytest.mark.asyncio
async def test_full_queue_drops_oldest():
    broker = EventBroker(queue_size=2)
    subscription = broker.subscribe("s1")
    for n in range(3):
        await broker.publish("s1", EventType.FILE_CHANGED, {"n": n})

    assert (await subscription.get()).data["n"] == 1
    assert (await subscription.get()).data["n"] == 2


@pytest.mark.asyncio
async def test_subscription_context_manager_unsubscribes(broker):
    with broker.subscribe("s1"):
        assert broker.subscriber_count("s1") == 1

    assert broker.subscriber_count("s1") == 0


@pytest.mark.asyncio
async def test_sse_shape(broker):
    event = await broker.publish("s1", EventType.SCREEN_INJECTION, {"module_id": "Home"})

    sse = event.to_sse()

    assert sse["event"] == "screen-injection"
    assert sse["id"] == str(event.event_id)
    assert json.loads(sse["data"])["data"] == {"module_id": "Home"}


@pytest.mark.asyncio
async def test_mirror_to_redis(mock_redis):
    broker = EventBroker(redis_client=mock_redis, history_size=10)

    await broker.publish("s1", EventType.BUNDLE_ERROR, {"error": "x"})

    channel, payload = mock_redis.publish.call_args[0]
    assert channel == "livescreen:events:s1"
    assert json.loads(payload)["type"] == "bundle-error"
    mock_redis.ltrim.assert_called_once_with("livescreen:events:s1:history", 0, 9)


@pytest.mark.asyncio
async def test_drop_session(broker):
    broker.subscribe("s1")
    await broker.publish("s1", EventType.FILE_CHANGED)

    broker.drop_session("s1")

    assert broker.history("s1") == []
    assert broker.subscriber_count("s1") == 0
