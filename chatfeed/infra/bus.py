"""
Change bus

Tells live subscriptions that a chat changed so they can re-query the
newest page. Payloads are short strings (the changed message ID); the
subscriber never trusts them as data.

- RedisChangeBus: pub/sub across processes
- LocalChangeBus: in-process asyncio queues (single worker, tests)
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Set

from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from chatfeed.core.config import settings
from chatfeed.core.logging import get_logger
from chatfeed.infra.redis import get_redis_client

logger = get_logger(__name__)

CHANNEL_PREFIX = "chat-changes:"


def chat_channel(chat_id: str) -> str:
    return f"{CHANNEL_PREFIX}{chat_id}"


class LocalChangeBus:
    def __init__(self):
        # channel -> queues of current subscribers. A queue holds at most one
        # pending change, so a burst of writes is a single wake-up.
        self._queues: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    async def publish(self, channel: str, data: str) -> None:
        for queue in list(self._queues.get(channel, ())):
            if not queue.full():
                queue.put_nowait(data)

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[AsyncIterator[str]]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._queues[channel].add(queue)
        try:
            yield self._drain(queue)
        finally:
            self._queues[channel].discard(queue)
            if not self._queues[channel]:
                del self._queues[channel]

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator[str]:
        while True:
            yield await queue.get()

    def subscriber_count(self, channel: str) -> int:
        return len(self._queues.get(channel, ()))


class RedisChangeBus:
    def __init__(self, redis: Redis):
        self.redis = redis

    async def publish(self, channel: str, data: str) -> None:
        await self.redis.publish(channel, data)

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[AsyncIterator[str]]:
        pubsub = self.redis.pubsub(ignore_subscribe_messages=True)
        # Subscribe before yielding so no change between the caller's first
        # query and its first read is lost
        await pubsub.subscribe(channel)
        try:
            yield self._messages(pubsub)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    @staticmethod
    async def _messages(pubsub: PubSub) -> AsyncIterator[str]:
        async for message in pubsub.listen():
            if message.get("type") == "message":
                yield message["data"]


_bus = None


async def get_change_bus():
    """Process-wide bus selected by CHANGE_BUS."""
    global _bus
    if _bus is None:
        if settings.use_redis_bus:
            _bus = RedisChangeBus(await get_redis_client())
            logger.info("Using Redis change bus")
        else:
            _bus = LocalChangeBus()
            logger.info("Using in-process change bus")
    return _bus


def reset_change_bus(bus: Optional[object] = None) -> None:
    global _bus
    _bus = bus
