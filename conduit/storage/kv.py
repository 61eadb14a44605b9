"""KeyValueStore protocol and the in-process binding.

The session and conversation stores only need a handful of primitives:
plain get/set with expiry, a bounded list with newest-first ordering, and
an append-only stream.  Production runs on Redis
(``conduit.storage.redis_kv``); ``MemoryKeyValueStore`` serves single-process
runs and tests.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """Primitives the stores rely on. All values are strings."""

    async def get(self, key: str) -> str | None:
        """Return the value at *key*, or None when missing or expired."""
        ...

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        """Write *value*, replacing any previous value and expiry."""
        ...

    async def list_push(
        self, key: str, value: str, *, max_len: int, ttl: int | None = None
    ) -> int:
        """Push to the front, trim to *max_len*, refresh expiry. Returns new length."""
        ...

    async def list_range(self, key: str, start: int, stop: int) -> list[str]:
        """Return items *start* through *stop* inclusive (Redis LRANGE semantics)."""
        ...

    async def list_len(self, key: str) -> int: ...

    async def stream_add(
        self, key: str, fields: dict[str, str], *, maxlen: int | None = None
    ) -> str:
        """Append an entry to a stream. Returns the entry ID."""
        ...

    async def close(self) -> None: ...


class MemoryKeyValueStore:
    """In-process store with per-key expiry.

    *clock* returns seconds; pass a controllable callable in tests to step
    past TTLs without sleeping.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._values: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self._streams: dict[str, list[tuple[str, dict[str, str]]]] = {}
        self._expires: dict[str, float] = {}
        self._seq = itertools.count(1)

    # -- Expiry ----------------------------------------------------------------

    def _expire_if_due(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._lists.pop(key, None)
            self._expires.pop(key, None)

    def _set_ttl(self, key: str, ttl: int | None) -> None:
        if ttl is None:
            self._expires.pop(key, None)
        else:
            self._expires[key] = self._clock() + ttl

    def ttl(self, key: str) -> float | None:
        """Remaining seconds before *key* expires, or None if it never does."""
        self._expire_if_due(key)
        deadline = self._expires.get(key)
        if deadline is None:
            return None
        return deadline - self._clock()

    # -- Values ----------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        self._expire_if_due(key)
        return self._values.get(key)

    async def set(self, key: str, value: str, *, ttl: int | None = None) -> None:
        self._values[key] = value
        self._set_ttl(key, ttl)

    # -- Lists -----------------------------------------------------------------

    async def list_push(
        self, key: str, value: str, *, max_len: int, ttl: int | None = None
    ) -> int:
        self._expire_if_due(key)
        items = self._lists.setdefault(key, [])
        items.insert(0, value)
        del items[max_len:]
        self._set_ttl(key, ttl)
        return len(items)

    async def list_range(self, key: str, start: int, stop: int) -> list[str]:
        self._expire_if_due(key)
        items = self._lists.get(key, [])
        end = len(items) if stop == -1 else stop + 1
        return items[start:end]

    async def list_len(self, key: str) -> int:
        self._expire_if_due(key)
        return len(self._lists.get(key, []))

    # -- Streams ---------------------------------------------------------------

    async def stream_add(
        self, key: str, fields: dict[str, str], *, maxlen: int | None = None
    ) -> str:
        entries = self._streams.setdefault(key, [])
        entry_id = f"{int(time.time() * 1000)}-{next(self._seq)}"
        entries.append((entry_id, dict(fields)))
        if maxlen is not None and len(entries) > maxlen:
            del entries[: len(entries) - maxlen]
        return entry_id

    def stream_entries(self, key: str) -> list[tuple[str, dict[str, str]]]:
        return list(self._streams.get(key, []))

    async def close(self) -> None:
        return None
