"""
Session Manager — Persisted conversation state per session id.

Wraps the `sessions` table of DBService and exposes high-level helpers
to the facade:
1. Lazy creation: a session only hits the database when it is saved
2. Whole-row persistence: history and metadata are written together
3. Per-session asyncio.Lock so turns of the same session never interleave

SQLite calls run in a worker thread (asyncio.to_thread).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncIterator, Dict, Optional

from agent.db_service import DBService
from agent.models import Session, Turn, new_session_id, utc_now

logger = logging.getLogger(__name__)


class SessionManager:
    """Loads, creates and saves sessions."""

    def __init__(self, db: DBService):
        self._db = db
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def lock(self, session_id: str) -> asyncio.Lock:
        """Returns the lock serialising turns of ``session_id``."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @asynccontextmanager
    async def locked(self, session_id: str) -> AsyncIterator[None]:
        """Holds the session lock for one turn.

        The lock is dropped from the registry once no turn holds or waits
        for it, so the registry only grows with concurrently active sessions.
        """
        lock = self.lock(session_id)
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                self._locks.pop(session_id, None)

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    def release_lock(self, session_id: str) -> None:
        if self._holders.get(session_id):
            return
        self._locks.pop(session_id, None)

    async def get_session(self, session_id: str) -> Optional[Session]:
        row = await asyncio.to_thread(self._db.get_session, session_id)
        if row is None:
            return None
        return Session(
            id=row["id"],
            agent_id=row["agent_id"],
            user_id=row["user_id"],
            history=[Turn.from_dict(t) for t in row["history"]],
            metadata=row["metadata"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def load_or_create_session(
        self,
        session_id: Optional[str] = None,
        agent_id: str = "",
        user_id: Optional[str] = None,
    ) -> Session:
        """
        Returns the stored session, or a fresh one under that id.

        Without a session id a new uuid4 hex id is generated. A new session
        is NOT written here; the facade saves it at the end of the turn.
        """
        if session_id:
            existing = await self.get_session(session_id)
            if existing is not None:
                if existing.agent_id != agent_id:
                    logger.warning(
                        f"[{session_id}] session belongs to {existing.agent_id}, "
                        f"loaded by {agent_id}"
                    )
                return existing
        else:
            session_id = new_session_id()

        now = utc_now()
        logger.debug(f"[{session_id}] new session for agent {agent_id}")
        return Session(
            id=session_id,
            agent_id=agent_id,
            user_id=user_id or "anonymous",
            created_at=now,
            updated_at=now,
        )

    async def save_session(self, session: Session) -> None:
        """Writes history and metadata in one transaction."""
        session.updated_at = utc_now()
        await asyncio.to_thread(self._db.upsert_session, asdict(session))
        logger.debug(f"[{session.id}] session saved ({len(session.history)} turns)")

    async def delete_session(self, session_id: str) -> bool:
        deleted = await asyncio.to_thread(self._db.delete_session, session_id)
        self.release_lock(session_id)
        return deleted
