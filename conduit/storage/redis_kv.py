"""Redis binding for the KeyValueStore protocol."""

from __future__ import annotations

import logging

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """KeyValueStore over a shared ``redis.asyncio`` client.

    The client must be created with ``decode_responses=True``.  It owns a
    connection pool, so one instance is safe to share across concurrent
    request tasks.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        if ttl is None:
            await self._redis.set(key, value)
        else:
            await self._redis.setex(key, ttl, value)

    async def list_push(
        self, key: str, value: str, *, max_len: int, ttl: int | None = None
    ) -> int:
        # LPUSH + LTRIM + EXPIRE in one MULTI so the list never exceeds max_len
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.lpush(key, value)
            pipe.ltrim(key, 0, max_len - 1)
            if ttl is not None:
                pipe.expire(key, ttl)
            results = await pipe.execute()
        return min(int(results[0]), max_len)

    async def list_range(self, key: str, start: int, stop: int) -> list[str]:
        return await self._redis.lrange(key, start, stop)

    async def list_len(self, key: str) -> int:
        return await self._redis.llen(key)

    async def stream_add(
        self, key: str, fields: dict[str, str], *, maxlen: int | None = None
    ) -> str:
        if maxlen:
            message_id = await self._redis.xadd(key, fields, maxlen=maxlen, approximate=True)
        else:
            message_id = await self._redis.xadd(key, fields)
        if isinstance(message_id, bytes):
            message_id = message_id.decode("utf-8")
        return message_id

    async def close(self) -> None:
        await self._redis.aclose()
