"""
Tests for agent/memory.py — Facts, episodes and recall ranking.
"""

import pytest

from agent.memory import MemoryManager, rank_facts
from agent.models import Fact, Session


@pytest.fixture
def memory(db):
    return MemoryManager(db, recall_limit=3)


def _fact(fact_id, content):
    return Fact(id=fact_id, agent_id="a", content=content)


class TestRankFacts:
    def test_requires_shared_token(self):
        facts = [_fact(1, "Shop opens at nine"), _fact(2, "DTF needs 160 degrees")]
        ranked = rank_facts(facts, "what temperature for dtf", 5)
        assert [f.id for f in ranked] == [2]

    def test_more_relevant_first(self):
        facts = [
            _fact(1, "dtf printing"),
            _fact(2, "dtf printing needs curing at 160 degrees for dtf"),
            _fact(3, "unrelated note"),
        ]
        ranked = rank_facts(facts, "dtf curing degrees", 5)
        assert [f.id for f in ranked] == [2, 1]

    def test_ties_newest_first(self):
        facts = [_fact(1, "rush orders"), _fact(2, "rush orders"), _fact(3, "rush orders")]
        assert [f.id for f in rank_facts(facts, "rush", 2)] == [3, 2]

    def test_empty_context_returns_newest(self):
        facts = [_fact(1, "a"), _fact(5, "b"), _fact(3, "c")]
        assert [f.id for f in rank_facts(facts, "", 2)] == [5, 3]

    def test_deterministic(self):
        facts = [_fact(i, f"note {i} about vinyl") for i in range(1, 6)]
        assert rank_facts(facts, "vinyl note", 5) == rank_facts(facts, "vinyl note", 5)


class TestMemoryManager:
    @pytest.mark.asyncio
    async def test_store_and_get_facts(self, memory):
        fact = await memory.store_fact("a", "Printer B is down", {"source": "staff"})
        assert fact.id > 0
        facts = await memory.get_facts("a")
        assert [f.content for f in facts] == ["Printer B is down"]
        assert facts[0].metadata == {"source": "staff"}

    @pytest.mark.asyncio
    async def test_recall_bundle(self, memory):
        await memory.store_fact("a", "John handles embroidery tasks")
        await memory.store_fact("a", "Printer B is down")
        await memory.store_fact("other", "John is on leave")
        await memory.store_episode("u1", "a", "Asked about embroidery", session_id="s1")
        await memory.store_episode("u2", "a", "Someone else")

        bundle = await memory.recall("s2", "u1", "a", "who does embroidery")
        assert [f.content for f in bundle.facts] == ["John handles embroidery tasks"]
        assert [e.summary for e in bundle.episodes] == ["Asked about embroidery"]

    @pytest.mark.asyncio
    async def test_recall_respects_limit(self, memory):
        for i in range(5):
            await memory.store_fact("a", f"vinyl fact {i}")
            await memory.store_episode("u1", "a", f"episode {i}")

        bundle = await memory.recall(None, "u1", "a", "vinyl", limit=2)
        assert len(bundle.facts) == 2
        assert len(bundle.episodes) == 2
        assert [f.content for f in bundle.facts] == ["vinyl fact 4", "vinyl fact 3"]

    @pytest.mark.asyncio
    async def test_recall_zero_limit(self, memory):
        await memory.store_fact("a", "x")
        assert (await memory.recall(None, "u1", "a", "x", limit=0)).is_empty()


class TestSummarizeSession:
    def test_summary_is_deterministic(self):
        session = Session(id="s1", agent_id="task-manager", user_id="u1")
        session.add_turn("user", "show tasks", intent="task_query")
        session.add_turn("assistant", "Here.", intent="task_query")
        session.add_turn("user", "who is busy", intent="workload_analysis")

        summary = MemoryManager.summarize_session(session)
        assert summary == MemoryManager.summarize_session(session)
        assert "First request: show tasks" in summary
        assert "Last request: who is busy" in summary
        assert "task_query, workload_analysis" in summary

    def test_empty_session(self):
        session = Session(id="s1", agent_id="a", user_id="u1")
        assert MemoryManager.summarize_session(session) == "Empty session s1."
