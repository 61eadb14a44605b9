"""SessionStore: per-user preferences and activity with a rolling expiry."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import ValidationError

from conduit.models import AgentMode
from conduit.storage.models import Preferences, SessionRecord

if TYPE_CHECKING:
    from conduit.models import Request
    from conduit.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class SessionStore:
    """Reads and writes ``{prefix}:{user_id}`` session records.

    Concurrent upserts for the same user are last-write-wins.
    """

    def __init__(self, kv: KeyValueStore, *, prefix: str = "sessions", ttl: int = 86400) -> None:
        self._kv = kv
        self._prefix = prefix
        self._ttl = ttl

    def key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    async def get(self, user_id: str) -> SessionRecord | None:
        """Return the stored record, or None if absent, expired, or unreadable."""
        raw = await self._kv.get(self.key(user_id))
        if raw is None:
            return None
        try:
            return SessionRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable session for %s", user_id)
            return None

    async def upsert(self, user_id: str, request: Request) -> SessionRecord | None:
        """Merge *request* into the user's session and refresh its expiry.

        Returns the written record, or None when the store is unavailable.
        The request proceeds either way.
        """
        try:
            existing = await self.get(user_id)
            prefs = Preferences(
                agentic_mode=request.agent_mode == AgentMode.AUTONOMOUS,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
            if existing is None:
                record = SessionRecord(
                    user_id=user_id,
                    preferences=prefs,
                    context=request.context or "",
                    last_activity=datetime.now(UTC).isoformat(),
                    conversation_count=1,
                )
            else:
                merged = existing.preferences.model_copy(update=prefs.model_dump())
                record = SessionRecord(
                    user_id=user_id,
                    preferences=merged,
                    context=request.context or existing.context,
                    last_activity=datetime.now(UTC).isoformat(),
                    conversation_count=existing.conversation_count + 1,
                )
            await self._kv.set(self.key(user_id), record.model_dump_json(), ttl=self._ttl)
        except Exception:
            logger.exception("Failed to update session for %s", user_id)
            return None

        logger.info(
            "Updated session for %s (conversation %d)", user_id, record.conversation_count
        )
        return record
