"""
DB Service — Data access layer for sessions and memory.

Wraps EVERY SQLite operation of the agent runtime in typed methods so no
inline SQL leaks into the managers or the facade. Any sqlite3 error is
re-raised as StorageUnavailable.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from agent.errors import StorageUnavailable

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    history TEXT NOT NULL DEFAULT '[]',
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS facts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_id TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_facts_agent ON facts (agent_id, id);

CREATE TABLE IF NOT EXISTS episodes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    session_id TEXT,
    summary TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_episodes_user_agent
ON episodes (user_id, agent_id, created_at);
"""


class DBService:
    """SQLite data access for the conversational runtime."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    # helpers

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"SQLite error on {self.db_path}: {e}")
            raise StorageUnavailable(f"Storage error: {e}") from e
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Creates the tables if they do not exist yet."""
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._conn() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Schema ready at {self.db_path}")

    # Sessions

    def get_session(self, session_id: str) -> Optional[Dict]:
        """Loads a session row with history/metadata decoded."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row is None:
                return None
            d = dict(row)
            d["history"] = json.loads(d["history"])
            d["metadata"] = json.loads(d["metadata"])
            return d

    def upsert_session(self, session: Dict) -> None:
        """Creates or replaces the whole session row in one statement."""
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO sessions (id, agent_id, user_id, history, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    agent_id = excluded.agent_id,
                    user_id = excluded.user_id,
                    history = excluded.history,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
                """,
                (
                    session["id"],
                    session["agent_id"],
                    session["user_id"],
                    json.dumps(session["history"], ensure_ascii=False),
                    json.dumps(session["metadata"], ensure_ascii=False),
                    session["created_at"],
                    session["updated_at"],
                ),
            )

    def delete_session(self, session_id: str) -> bool:
        with self._conn() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0

    # Facts

    def insert_fact(
        self, agent_id: str, content: str, metadata: Dict, created_at: str
    ) -> Dict:
        """Appends a fact and returns it."""
        with self._conn() as conn:
            cursor = conn.execute(
                """
                INSERT INTO facts (agent_id, content, metadata, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (agent_id, content, json.dumps(metadata, ensure_ascii=False), created_at),
            )
            row = conn.execute(
                "SELECT * FROM facts WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return self._decode(row)

    def list_facts(self, agent_id: str, limit: Optional[int] = None) -> List[Dict]:
        """Facts of an agent, newest first."""
        sql = "SELECT * FROM facts WHERE agent_id = ? ORDER BY id DESC"
        params: tuple = (agent_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (agent_id, limit)
        with self._conn() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._decode(r) for r in rows]

    # Episodes

    def insert_episode(
        self,
        user_id: str,
        agent_id: str,
        summary: str,
        session_id: Optional[str],
        metadata: Dict,
        created_at: str,
    ) -> Dict:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                INSERT INTO episodes (user_id, agent_id, session_id, summary, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    agent_id,
                    session_id,
                    summary,
                    json.dumps(metadata, ensure_ascii=False),
                    created_at,
                ),
            )
            row = conn.execute(
                "SELECT * FROM episodes WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return self._decode(row)

    def list_episodes(self, user_id: str, agent_id: str, limit: int) -> List[Dict]:
        """Episodes of a user with an agent, most recent first."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM episodes
                WHERE user_id = ? AND agent_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, agent_id, limit),
            ).fetchall()
            return [self._decode(r) for r in rows]

    @staticmethod
    def _decode(row: sqlite3.Row) -> Dict:
        d = dict(row)
        d["metadata"] = json.loads(d["metadata"])
        return d
