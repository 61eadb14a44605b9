"""In-process binding for the MessageBus protocol."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class LocalBus:
    """Fan-out pub/sub over asyncio queues.

    Every subscriber gets its own unbounded queue; publishing to a channel
    with no subscribers drops the payload, as Redis pub/sub does.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[str]]] = {}
        self._connected = False

    @property
    def name(self) -> str:
        return "local"

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    async def publish(self, channel: str, payload: str) -> int:
        queues = self._subscribers.get(channel, [])
        for queue in queues:
            queue.put_nowait(payload)
        return len(queues)

    async def subscribe(self, channel: str) -> AsyncIterator[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        self._subscribers.setdefault(channel, []).append(queue)
        return self._drain(channel, queue)

    async def _drain(self, channel: str, queue: asyncio.Queue[str]) -> AsyncIterator[str]:
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[channel].remove(queue)
