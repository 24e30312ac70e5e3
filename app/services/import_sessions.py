from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional
from uuid import UUID

from app.logging_config import get_logger
from app.schemas.journal import TradeCreate, TradeRead
from app.services import journal as journal_service
from app.services.journal import JournalNotFoundError
from app.services.trade_import import (
    ImportSession,
    ImportStep,
    Notifier,
    TradeCreator,
    TradeRecord,
    log_notice,
)

logger = get_logger("imports.sessions")


async def create_journal_trade(record: TradeRecord) -> TradeRead:
    """Persist one coerced import record through the journal service."""
    dto = TradeCreate.model_validate(record)
    return await asyncio.to_thread(journal_service.create_trade, dto)


class ImportSessionStore:
    """In-memory registry of import sessions, keyed by session id.

    Sessions untouched for ``idle_ttl_seconds`` are dropped, and once
    ``max_sessions`` is reached the least recently used one makes room for a
    new session. A session that is mid-import is never dropped.
    """

    def __init__(
        self,
        creator: Optional[TradeCreator] = None,
        *,
        notifier: Optional[Notifier] = None,
        preview_rows: int = 5,
        max_upload_bytes: int = 5 * 1024 * 1024,
        max_sessions: int = 100,
        idle_ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._creator = creator or create_journal_trade
        self._notifier = notifier or log_notice
        self.preview_rows = preview_rows
        self.max_upload_bytes = max_upload_bytes
        self.max_sessions = max_sessions
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._sessions: Dict[UUID, ImportSession] = {}
        self._last_used: Dict[UUID, float] = {}
        self._lock = asyncio.Lock()

    def _drop(self, session_id: UUID) -> Optional[ImportSession]:
        self._last_used.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def _evictable(self) -> List[UUID]:
        return [
            sid
            for sid in sorted(self._last_used, key=self._last_used.__getitem__)
            if self._sessions[sid].step is not ImportStep.IMPORTING
        ]

    def _expire(self, now: float) -> None:
        for sid in self._evictable():
            if now - self._last_used[sid] > self.idle_ttl_seconds:
                self._drop(sid)
                logger.info("Dropped idle import session %s", sid)

    def _make_room(self) -> None:
        for sid in self._evictable():
            if len(self._sessions) < self.max_sessions:
                break
            self._drop(sid)
            logger.info("Dropped import session %s to stay under %d sessions", sid, self.max_sessions)

    async def create(self) -> ImportSession:
        session = ImportSession(
            self._creator,
            notifier=self._notifier,
            preview_rows=self.preview_rows,
        )
        async with self._lock:
            now = self._clock()
            self._expire(now)
            self._make_room()
            self._sessions[session.id] = session
            self._last_used[session.id] = now
        return session

    async def get(self, session_id: UUID) -> ImportSession:
        async with self._lock:
            now = self._clock()
            self._expire(now)
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_used[session_id] = now
        if session is None:
            raise JournalNotFoundError(str(session_id))
        return session

    async def discard(self, session_id: UUID) -> None:
        async with self._lock:
            removed = self._drop(session_id)
        if removed is None:
            raise JournalNotFoundError(str(session_id))

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["ImportSessionStore", "create_journal_trade"]
