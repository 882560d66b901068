"""
Retriever - Cosine similarity search over an agent's knowledge chunks.

This module:
1. Builds one FAISS IndexFlatIP per agent from the stored chunk embeddings
   (normalized, so inner product is cosine similarity)
2. Caches the index until that agent's knowledge changes
3. Returns chunks with similarity >= threshold, best first
"""

import logging
import threading
from typing import Dict, List, Optional

import faiss
import numpy as np

from rag.embeddings import Embedder, normalize
from rag.ingest.store import KnowledgeStore

logger = logging.getLogger(__name__)


class _AgentIndex:
    def __init__(self, index: Optional[faiss.IndexFlatIP], chunks: List[Dict]):
        self.index = index
        self.chunks = chunks


class FAISSRetriever:
    """Per-agent exact search with FAISS."""

    def __init__(self, store: KnowledgeStore, embedder: Embedder):
        self.store = store
        self.embedder = embedder
        self._indices: Dict[str, _AgentIndex] = {}
        self._lock = threading.Lock()

    def invalidate(self, agent_id: str) -> None:
        """Drops the cached index of an agent (call after ingest/delete)."""
        with self._lock:
            self._indices.pop(agent_id, None)

    def _get_index(self, agent_id: str) -> _AgentIndex:
        with self._lock:
            cached = self._indices.get(agent_id)
            if cached is not None:
                return cached

            chunks = self.store.load_chunks(agent_id)
            if not chunks:
                entry = _AgentIndex(None, [])
            else:
                vectors = normalize(np.vstack([c["embedding"] for c in chunks]))
                index = faiss.IndexFlatIP(vectors.shape[1])
                index.add(vectors)
                entry = _AgentIndex(index, chunks)
                logger.info(f"[{agent_id}] FAISS index built ({index.ntotal} vectors)")

            self._indices[agent_id] = entry
            return entry

    def retrieve(
        self,
        agent_id: str,
        query: str,
        top_k: int = 3,
        threshold: float = 0.0,
    ) -> List[Dict]:
        """
        Retrieves the chunks of ``agent_id`` most similar to ``query``.

        Args:
            agent_id: Knowledge scope
            query: User query
            top_k: Max number of chunks
            threshold: Min cosine similarity

        Returns:
            List of {document_id, ordinal, section, text, score, rank},
            score descending, ties by ordinal then document_id
        """
        if top_k <= 0 or not query or not query.strip():
            return []

        entry = self._get_index(agent_id)
        if entry.index is None:
            return []

        query_embedding = normalize(self.embedder.encode([query]))
        if query_embedding.shape[1] != entry.index.d:
            logger.warning(
                f"[{agent_id}] query dimension {query_embedding.shape[1]} "
                f"!= index dimension {entry.index.d}"
            )
            return []

        # Search the whole index so ties are ordered here, not by FAISS
        scores, indices = entry.index.search(query_embedding, entry.index.ntotal)

        hits = []
        for score, idx in zip(scores[0], indices[0]):
            if idx == -1:
                continue
            score = float(score)
            if score < threshold:
                continue
            chunk = entry.chunks[idx]
            hits.append((score, chunk))

        hits.sort(key=lambda h: (-h[0], h[1]["ordinal"], h[1]["document_id"]))

        return [
            {
                "document_id": chunk["document_id"],
                "ordinal": chunk["ordinal"],
                "section": chunk.get("section"),
                "text": chunk["text"],
                "score": score,
                "rank": rank,
            }
            for rank, (score, chunk) in enumerate(hits[:top_k], 1)
        ]

    @staticmethod
    def format_context(results: List[Dict]) -> str:
        """
        Formats retrieved chunks as prompt context.

        Args:
            results: Chunks returned by retrieve()

        Returns:
            One ``[document - section]`` block per chunk
        """
        if not results:
            return "No relevant information found in the knowledge base."

        context_parts = []
        for result in results:
            source = result.get("document_id", "document")
            section = result.get("section")
            if section:
                context_parts.append(f"[{source} - {section}]\n{result['text']}")
            else:
                context_parts.append(f"[{source}]\n{result['text']}")

        return "\n\n".join(context_parts)
