"""Redis pub/sub binding for the MessageBus protocol."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisBus:
    """Pub/sub over a shared ``redis.asyncio`` client.

    Publishing goes through the client's connection pool; each subscription
    holds its own dedicated pub/sub connection.  The client itself is owned
    by whoever created it and is not closed here.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client
        self._pubsubs: list[redis.client.PubSub] = []

    @property
    def name(self) -> str:
        return "redis"

    async def connect(self) -> None:
        await self._redis.ping()
        logger.info("Redis bus connected")

    async def close(self) -> None:
        for pubsub in self._pubsubs:
            await pubsub.aclose()
        self._pubsubs.clear()

    async def publish(self, channel: str, payload: str) -> int:
        return await self._redis.publish(channel, payload)

    async def subscribe(self, channel: str) -> AsyncIterator[str]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        self._pubsubs.append(pubsub)
        logger.info("Subscribed to %s", channel)
        return self._listen(channel, pubsub)

    async def _listen(self, channel: str, pubsub: redis.client.PubSub) -> AsyncIterator[str]:
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8", errors="replace")
                yield data
        finally:
            if pubsub in self._pubsubs:
                self._pubsubs.remove(pubsub)
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
