"""Per-conversation session store.

Sessions live in a :class:`~diag_dialogue.cache.TTLCache`; idle
conversations expire after ``session_ttl_seconds``.  Turns for the same
conversation id are serialised with one :class:`asyncio.Lock` each.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import structlog

from diag_dialogue.cache import TTLCache
from diag_dialogue.session import Session

logger = structlog.get_logger(__name__)


class ConversationStore:
    """Session lookup plus per-conversation turn locks."""

    def __init__(
        self,
        ttl_seconds: float = 86_400,
        max_size: int = 500,
        sweep_interval_seconds: float = 600.0,
    ) -> None:
        self._sessions: TTLCache[Session] = TTLCache(
            ttl_seconds=ttl_seconds,
            max_size=max_size,
            sweep_interval_seconds=sweep_interval_seconds,
        )
        self._locks: Dict[str, asyncio.Lock] = {}

    def get_or_create(self, conversation_id: str) -> Session:
        session = self._sessions.get(conversation_id)
        if session is None:
            session = Session(conversation_id=conversation_id)
            logger.info("session_created", conversation_id=conversation_id)
        self._save(session)
        return session

    def get(self, conversation_id: str) -> Optional[Session]:
        return self._sessions.get(conversation_id)

    def _save(self, session: Session) -> None:
        evicted = self._sessions.put(session.conversation_id, session)
        if evicted is not None:
            self._locks.pop(evicted, None)
            logger.info("session_evicted", conversation_id=evicted)

    @asynccontextmanager
    async def turn(self, conversation_id: str) -> AsyncIterator[Session]:
        """Hold the conversation's lock and yield its session."""
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        async with lock:
            session = self.get_or_create(conversation_id)
            yield session
            self._save(session)

    async def reset(self, conversation_id: str) -> bool:
        """Clear a conversation.  Returns ``False`` when it did not exist."""
        if self._sessions.get(conversation_id) is None:
            return False
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        async with lock:
            # Re-read under the lock: the session may have expired meanwhile.
            session = self._sessions.get(conversation_id)
            if session is None:
                return False
            session.reset()
            logger.info("session_reset", conversation_id=conversation_id)
            return True

    def sweep_expired(self) -> int:
        """Drop expired sessions and the locks of conversations that are gone."""
        removed = self._sessions.sweep_expired()
        stale = [k for k, lock in self._locks.items() if not lock.locked() and self._sessions.get(k) is None]
        for key in stale:
            del self._locks[key]
        if removed or stale:
            logger.info("sessions_swept", removed=removed, locks_dropped=len(stale))
        return removed

    async def start_cleanup_loop(self) -> None:
        await self._sessions.start_cleanup_loop(self.sweep_expired)

    async def stop_cleanup_loop(self) -> None:
        await self._sessions.stop_cleanup_loop()

    def size(self) -> int:
        return self._sessions.size()

    def clear(self) -> None:
        self._sessions.clear()
        self._locks.clear()
