"""
Memory Manager — Semantic (facts) and episodic (episodes) memory.

This module:
1. Stores agent-scoped facts (append-only, immutable)
2. Stores user+agent scoped episodes (summaries of past sessions)
3. Recalls a deterministic, ranked MemoryBundle for a turn:
   facts sharing a token with the context, ranked by BM25 then recency;
   episodes most-recent-first
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from rank_bm25 import BM25Plus

from agent.db_service import DBService
from agent.models import Episode, Fact, MemoryBundle, Session, utc_now

logger = logging.getLogger(__name__)


def _tokenize(text: str) -> list[str]:
    """Lowercase + split on non-alphanumerics."""
    return re.findall(r"[a-z0-9áéíóúüñ]+", text.lower())


class MemoryManager:
    """Facts and episodes on top of DBService."""

    def __init__(self, db: DBService, recall_limit: int = 5):
        self._db = db
        self.recall_limit = recall_limit

    # Writes

    async def store_fact(
        self, agent_id: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Fact:
        row = await asyncio.to_thread(
            self._db.insert_fact, agent_id, content, metadata or {}, utc_now()
        )
        logger.debug(f"[{agent_id}] fact #{row['id']} stored")
        return Fact(**row)

    async def store_episode(
        self,
        user_id: str,
        agent_id: str,
        summary: str,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Episode:
        row = await asyncio.to_thread(
            self._db.insert_episode,
            user_id,
            agent_id,
            summary,
            session_id,
            metadata or {},
            utc_now(),
        )
        logger.debug(f"[{agent_id}/{user_id}] episode #{row['id']} stored")
        return Episode(**row)

    @staticmethod
    def summarize_session(session: Session, max_chars: int = 500) -> str:
        """
        Builds a deterministic summary of a session.

        Lists the detected intents and the first user request; no model
        call is involved so the same session always yields the same text.
        """
        user_turns = [t for t in session.history if t.role == "user"]
        if not user_turns:
            return f"Empty session {session.id}."

        intents: List[str] = []
        for t in session.history:
            if t.intent and t.intent not in intents:
                intents.append(t.intent)

        parts = [
            f"{len(user_turns)} user message(s) with {session.agent_id}.",
            f"First request: {user_turns[0].content.strip()}",
        ]
        if len(user_turns) > 1:
            parts.append(f"Last request: {user_turns[-1].content.strip()}")
        if intents:
            parts.append(f"Intents: {', '.join(intents)}.")
        summary = " ".join(parts)
        if len(summary) > max_chars:
            summary = summary[: max_chars - 3].rstrip() + "..."
        return summary

    # Reads

    async def get_facts(self, agent_id: str, limit: Optional[int] = None) -> List[Fact]:
        rows = await asyncio.to_thread(self._db.list_facts, agent_id, limit)
        return [Fact(**r) for r in rows]

    async def get_episodes(
        self, user_id: str, agent_id: str, limit: int = 5
    ) -> List[Episode]:
        rows = await asyncio.to_thread(self._db.list_episodes, user_id, agent_id, limit)
        return [Episode(**r) for r in rows]

    async def recall(
        self,
        session_id: Optional[str],
        user_id: str,
        agent_id: str,
        context: str = "",
        limit: Optional[int] = None,
    ) -> MemoryBundle:
        """
        Returns the facts and episodes relevant to ``context``.

        Args:
            session_id: Current session (only used for logging)
            user_id: Owner of the episodes
            agent_id: Scope of facts and episodes
            context: Free text the facts are matched against
            limit: Max items per kind (default: recall_limit)
        """
        limit = self.recall_limit if limit is None else limit
        if limit <= 0:
            return MemoryBundle()

        facts = await self.get_facts(agent_id)
        ranked = rank_facts(facts, context, limit)
        episodes = await self.get_episodes(user_id, agent_id, limit)
        logger.debug(
            f"[{session_id}] recall: {len(ranked)} facts, {len(episodes)} episodes"
        )
        return MemoryBundle(facts=ranked, episodes=episodes)


def rank_facts(facts: List[Fact], context: str, limit: int) -> List[Fact]:
    """
    Ranks facts against a context string.

    Only facts sharing at least one token with the context are kept. Order is
    BM25 score descending, then id descending (newest first). An empty
    context returns the newest facts.
    """
    query = _tokenize(context or "")
    if not query:
        return sorted(facts, key=lambda f: f.id, reverse=True)[:limit]

    query_set = set(query)
    tokenized = [_tokenize(f.content) for f in facts]
    candidates = [
        (fact, tokens)
        for fact, tokens in zip(facts, tokenized)
        if query_set.intersection(tokens)
    ]
    if not candidates:
        return []

    bm25 = BM25Plus([tokens or [""] for _, tokens in candidates])
    scores = bm25.get_scores(query)
    order = sorted(
        range(len(candidates)),
        key=lambda i: (-float(scores[i]), -candidates[i][0].id),
    )
    return [candidates[i][0] for i in order[:limit]]
