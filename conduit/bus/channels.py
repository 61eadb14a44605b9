"""MessageBus protocol: the interface every publish/subscribe transport implements."""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable


@runtime_checkable
class MessageBus(Protocol):
    """Protocol that all bus bindings must satisfy."""

    @property
    def name(self) -> str:
        """Transport identifier (e.g. 'redis', 'local')."""
        ...

    async def connect(self) -> None:
        """Establish the connection. Raises if the transport is unreachable."""
        ...

    async def close(self) -> None: ...

    async def publish(self, channel: str, payload: str) -> int:
        """Publish a serialized payload. Returns the number of receivers."""
        ...

    async def subscribe(self, channel: str) -> AsyncIterator[str]:
        """Subscribe to *channel* and return an iterator of raw payloads.

        The subscription is active once this coroutine returns, so nothing
        published afterwards is missed.
        """
        ...
