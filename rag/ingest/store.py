"""
Knowledge Store - SQLite persistence for documents and their chunks.

Tables:
- knowledge_documents: one row per (agent_id, document_id)
- knowledge_chunks: text span + float32 embedding BLOB per chunk

Documents are immutable: re-ingesting a document id deletes its previous
chunks and inserts the new ones in the same transaction.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import numpy as np

from agent.errors import StorageUnavailable

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS knowledge_documents (
    agent_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    doc_type TEXT NOT NULL DEFAULT 'text',
    metadata TEXT NOT NULL DEFAULT '{}',
    chunk_count INTEGER NOT NULL DEFAULT 0,
    ingested_at TEXT NOT NULL,
    PRIMARY KEY (agent_id, document_id)
);

CREATE TABLE IF NOT EXISTS knowledge_chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    ordinal INTEGER NOT NULL,
    section TEXT,
    text TEXT NOT NULL,
    embedding BLOB NOT NULL,
    UNIQUE (agent_id, document_id, ordinal)
);

CREATE INDEX IF NOT EXISTS idx_chunks_agent ON knowledge_chunks (agent_id);
"""


class KnowledgeStore:
    """Documents and chunk embeddings in SQLite."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

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
            raise StorageUnavailable(f"Knowledge storage error: {e}") from e
        finally:
            conn.close()

    def init_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._conn() as conn:
            conn.executescript(SCHEMA)

    def replace_document(
        self,
        agent_id: str,
        document: Dict,
        chunks: List[Dict],
        embeddings: np.ndarray,
        ingested_at: str,
    ) -> int:
        """Supersedes every chunk of ``document['id']`` in one transaction."""
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"{len(chunks)} chunks but {len(embeddings)} embeddings"
            )
        doc_id = str(document["id"])
        extra = {
            k: v for k, v in document.items() if k not in ("id", "title", "content", "type")
        }

        with self._conn() as conn:
            conn.execute(
                "DELETE FROM knowledge_chunks WHERE agent_id = ? AND document_id = ?",
                (agent_id, doc_id),
            )
            conn.executemany(
                """
                INSERT INTO knowledge_chunks
                    (agent_id, document_id, ordinal, section, text, embedding)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        agent_id,
                        doc_id,
                        chunk["ordinal"],
                        chunk.get("section"),
                        chunk["text"],
                        np.asarray(vector, dtype=np.float32).tobytes(),
                    )
                    for chunk, vector in zip(chunks, embeddings)
                ],
            )
            conn.execute(
                """
                INSERT INTO knowledge_documents
                    (agent_id, document_id, title, doc_type, metadata, chunk_count, ingested_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(agent_id, document_id) DO UPDATE SET
                    title = excluded.title,
                    doc_type = excluded.doc_type,
                    metadata = excluded.metadata,
                    chunk_count = excluded.chunk_count,
                    ingested_at = excluded.ingested_at
                """,
                (
                    agent_id,
                    doc_id,
                    document.get("title") or "",
                    document.get("type") or "text",
                    json.dumps(extra, ensure_ascii=False, default=str),
                    len(chunks),
                    ingested_at,
                ),
            )
        return len(chunks)

    def delete_document(self, agent_id: str, document_id: str) -> bool:
        with self._conn() as conn:
            conn.execute(
                "DELETE FROM knowledge_chunks WHERE agent_id = ? AND document_id = ?",
                (agent_id, document_id),
            )
            cursor = conn.execute(
                "DELETE FROM knowledge_documents WHERE agent_id = ? AND document_id = ?",
                (agent_id, document_id),
            )
            return cursor.rowcount > 0

    def list_documents(self, agent_id: str) -> List[Dict]:
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT document_id, title, doc_type, metadata, chunk_count, ingested_at
                FROM knowledge_documents
                WHERE agent_id = ?
                ORDER BY document_id
                """,
                (agent_id,),
            ).fetchall()
        docs = []
        for row in rows:
            d = dict(row)
            d["metadata"] = json.loads(d["metadata"])
            docs.append(d)
        return docs

    def count_chunks(self, agent_id: str, document_id: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM knowledge_chunks WHERE agent_id = ?"
        params: tuple = (agent_id,)
        if document_id is not None:
            sql += " AND document_id = ?"
            params = (agent_id, document_id)
        with self._conn() as conn:
            return conn.execute(sql, params).fetchone()[0]

    def load_chunks(self, agent_id: str) -> List[Dict]:
        """All chunks of an agent with embeddings decoded to float32 arrays."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT document_id, ordinal, section, text, embedding
                FROM knowledge_chunks
                WHERE agent_id = ?
                ORDER BY document_id, ordinal
                """,
                (agent_id,),
            ).fetchall()
        chunks = []
        for row in rows:
            d = dict(row)
            d["embedding"] = np.frombuffer(d["embedding"], dtype=np.float32)
            chunks.append(d)
        return chunks
