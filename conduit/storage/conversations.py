"""ConversationStore: bounded newest-first history per user."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from conduit.storage.models import ConversationEntry

if TYPE_CHECKING:
    from conduit.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class ConversationStore:
    """Appends to and reads ``{prefix}:{user_id}`` history lists.

    Each append trims the list to *max_entries* (oldest evicted) and
    refreshes the list's expiry.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        prefix: str = "conversations",
        max_entries: int = 100,
        ttl: int = 604800,
    ) -> None:
        self._kv = kv
        self._prefix = prefix
        self._max_entries = max_entries
        self._ttl = ttl

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    async def append(self, user_id: str, entry: ConversationEntry) -> bool:
        """Store *entry* at the head of the user's history. Never raises."""
        try:
            await self._kv.list_push(
                self.key(user_id),
                entry.model_dump_json(),
                max_len=self._max_entries,
                ttl=self._ttl,
            )
        except Exception:
            logger.exception("Failed to store conversation for %s", user_id)
            return False
        logger.info("Stored conversation for %s (%d chars)", user_id, len(entry.user_message))
        return True

    async def history(self, user_id: str, limit: int = 5) -> tuple[list[ConversationEntry], int]:
        """Return up to *limit* most recent entries and the total stored count.

        Store failures propagate; callers decide how to surface them.
        """
        if limit <= 0:
            return [], await self._kv.list_len(self.key(user_id))
        key = self.key(user_id)
        raw_entries = await self._kv.list_range(key, 0, limit - 1)
        total = await self._kv.list_len(key)

        entries: list[ConversationEntry] = []
        for raw in raw_entries:
            try:
                entries.append(ConversationEntry.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping unreadable conversation entry for %s", user_id)
        return entries, total
