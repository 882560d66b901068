"""
RAG Engine - Per-agent knowledge ingestion and retrieval.

Pipeline:
1. ingest_document: chunk → embed → persist (supersedes the same document id)
2. retrieve: embed query → FAISS cosine search scoped to the agent → top_k

Blocking work (SQLite, embeddings, FAISS) runs in asyncio.to_thread.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from rag.embeddings import Embedder
from rag.ingest.chunker import chunk_document
from rag.ingest.store import KnowledgeStore
from rag.query.retriever import FAISSRetriever

logger = logging.getLogger(__name__)


class RAGEngine:
    """Knowledge index shared by every agent, partitioned by agent_id."""

    def __init__(
        self,
        db_path: Path,
        embedder: Embedder,
        chunk_size: int = 1024,
        chunk_overlap: int = 128,
        top_k: int = 3,
        threshold: float = 0.35,
    ):
        self.store = KnowledgeStore(db_path)
        self.store.init_schema()
        self.embedder = embedder
        self.retriever = FAISSRetriever(self.store, embedder)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.top_k = top_k
        self.threshold = threshold

    # Ingestion

    def _ingest_sync(self, agent_id: str, document: Dict) -> Dict:
        if not document.get("id"):
            raise ValueError("Document requires an 'id'")

        chunks = chunk_document(document, self.chunk_size, self.chunk_overlap)
        embeddings = self.embedder.encode([c["text"] for c in chunks])
        stored = self.store.replace_document(
            agent_id,
            document,
            chunks,
            embeddings,
            datetime.now(timezone.utc).isoformat(),
        )
        self.retriever.invalidate(agent_id)
        logger.info(
            f"[{agent_id}] document '{document['id']}' ingested ({stored} chunks)"
        )
        return {
            "document_id": str(document["id"]),
            "chunks": stored,
            "embeddings": int(len(embeddings)),
        }

    async def ingest_document(self, agent_id: str, document: Dict) -> Dict:
        """
        Ingests a document for an agent.

        Args:
            agent_id: Knowledge scope
            document: {id, title, content, type}

        Returns:
            {document_id, chunks, embeddings}
        """
        return await asyncio.to_thread(self._ingest_sync, agent_id, document)

    async def delete_document(self, agent_id: str, document_id: str) -> bool:
        deleted = await asyncio.to_thread(
            self.store.delete_document, agent_id, document_id
        )
        self.retriever.invalidate(agent_id)
        return deleted

    async def list_documents(self, agent_id: str) -> List[Dict]:
        return await asyncio.to_thread(self.store.list_documents, agent_id)

    async def count_chunks(self, agent_id: str, document_id: Optional[str] = None) -> int:
        return await asyncio.to_thread(self.store.count_chunks, agent_id, document_id)

    # Retrieval

    async def retrieve(
        self,
        agent_id: str,
        query: str,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[Dict]:
        """Chunks of ``agent_id`` similar to ``query`` (see FAISSRetriever)."""
        return await asyncio.to_thread(
            self.retriever.retrieve,
            agent_id,
            query,
            self.top_k if top_k is None else top_k,
            self.threshold if threshold is None else threshold,
        )

    def format_context(self, chunks: List[Dict]) -> str:
        return self.retriever.format_context(chunks)
