"""
Change bus: in-process queues and Redis pub/sub
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatfeed.core.config import settings
from chatfeed.infra import bus as bus_module
from chatfeed.infra.bus import (
    LocalChangeBus,
    RedisChangeBus,
    chat_channel,
    get_change_bus,
    reset_change_bus,
)


async def test_publish_reaches_every_subscriber_of_the_channel():
    bus = LocalChangeBus()
    channel = chat_channel("alice_bob")

    async with bus.subscribe(channel) as first, bus.subscribe(channel) as second:
        assert bus.subscriber_count(channel) == 2
        await bus.publish(channel, "m1")
        await bus.publish(chat_channel("alice_carol"), "other")

        assert await asyncio.wait_for(first.__anext__(), 0.1) == "m1"
        assert await asyncio.wait_for(second.__anext__(), 0.1) == "m1"

    assert bus.subscriber_count(channel) == 0


async def test_publish_without_subscribers_is_dropped():
    bus = LocalChangeBus()
    await bus.publish(chat_channel("alice_bob"), "m1")

    async with bus.subscribe(chat_channel("alice_bob")) as changes:
        waiting = asyncio.ensure_future(changes.__anext__())
        await asyncio.sleep(0.01)
        assert not waiting.done()
        waiting.cancel()


async def test_burst_of_changes_wakes_subscriber_once():
    bus = LocalChangeBus()
    channel = chat_channel("alice_bob")

    async with bus.subscribe(channel) as changes:
        for data in ("m1", "m2", "m3"):
            await bus.publish(channel, data)

        assert await asyncio.wait_for(changes.__anext__(), 0.1) == "m1"
        waiting = asyncio.ensure_future(changes.__anext__())
        await asyncio.sleep(0.01)
        assert not waiting.done()

        await bus.publish(channel, "m4")
        assert await asyncio.wait_for(waiting, 0.1) == "m4"


async def test_default_bus_is_local_singleton():
    reset_change_bus()
    try:
        bus = await get_change_bus()
        assert isinstance(bus, LocalChangeBus)
        assert await get_change_bus() is bus
    finally:
        reset_change_bus()


def fake_redis(frames):
    """Redis client whose pub/sub replays `frames` from listen()."""
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    async def listen():
        for frame in frames:
            yield frame

    pubsub.listen = listen
    redis = MagicMock()
    redis.pubsub.return_value = pubsub
    redis.publish = AsyncMock()
    return redis, pubsub


async def test_redis_bus_publishes_to_channel():
    redis, _ = fake_redis([])

    await RedisChangeBus(redis).publish(chat_channel("alice_bob"), "m1")

    redis.publish.assert_awaited_once_with("chat-changes:alice_bob", "m1")


async def test_redis_bus_subscribes_before_yielding_and_filters_frames():
    channel = chat_channel("alice_bob")
    redis, pubsub = fake_redis([
        {"type": "subscribe", "channel": channel, "data": 1},
        {"type": "message", "channel": channel, "data": "m1"},
        {"type": "pong", "data": None},
        {"type": "message", "channel": channel, "data": "m2"},
    ])

    async with RedisChangeBus(redis).subscribe(channel) as changes:
        redis.pubsub.assert_called_once_with(ignore_subscribe_messages=True)
        pubsub.subscribe.assert_awaited_once_with(channel)
        pubsub.unsubscribe.assert_not_awaited()
        received = [data async for data in changes]

    assert received == ["m1", "m2"]
    pubsub.unsubscribe.assert_awaited_once_with(channel)
    pubsub.aclose.assert_awaited_once()


async def test_redis_bus_cleans_up_when_body_raises():
    channel = chat_channel("alice_bob")
    redis, pubsub = fake_redis([])

    with pytest.raises(RuntimeError):
        async with RedisChangeBus(redis).subscribe(channel):
            raise RuntimeError("subscriber failed")

    pubsub.unsubscribe.assert_awaited_once_with(channel)
    pubsub.aclose.assert_awaited_once()


async def test_redis_setting_selects_redis_bus(monkeypatch):
    redis, _ = fake_redis([])
    monkeypatch.setattr(settings, "change_bus", "REDIS")
    monkeypatch.setattr(bus_module, "get_redis_client", AsyncMock(return_value=redis))
    reset_change_bus()
    try:
        bus = await get_change_bus()
        assert isinstance(bus, RedisChangeBus)
        assert bus.redis is redis
    finally:
        reset_change_bus()
