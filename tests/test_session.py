"""
Tests for agent/session.py — Session persistence and per-session locks.
"""

import asyncio

import pytest

from agent.models import Session
from agent.session import SessionManager


@pytest.fixture
def sessions(db):
    return SessionManager(db)


class TestLoadOrCreate:
    @pytest.mark.asyncio
    async def test_generates_id_when_missing(self, sessions):
        session = await sessions.load_or_create_session(None, "task-manager", "u1")
        assert len(session.id) == 32
        assert session.history == []
        assert session.user_id == "u1"

    @pytest.mark.asyncio
    async def test_creates_under_given_id_lazily(self, sessions):
        session = await sessions.load_or_create_session("abc", "task-manager", None)
        assert session.id == "abc"
        assert session.user_id == "anonymous"
        # nothing is written until save
        assert await sessions.get_session("abc") is None

    @pytest.mark.asyncio
    async def test_reload_keeps_history_and_metadata(self, sessions):
        session = await sessions.load_or_create_session("abc", "task-manager", "u1")
        session.add_turn("user", "show tasks", intent="task_query")
        session.add_turn("assistant", "Here they are.", handler="TaskQueryHandler")
        session.metadata["currentTask"] = "TSK-7"
        await sessions.save_session(session)

        first = await sessions.load_or_create_session("abc", "task-manager", "u1")
        second = await sessions.load_or_create_session("abc", "task-manager", "u1")
        assert first.history == second.history == session.history
        assert second.metadata == {"currentTask": "TSK-7"}
        assert second.history[1].handler == "TaskQueryHandler"

    @pytest.mark.asyncio
    async def test_save_overwrites(self, sessions):
        session = Session(id="s", agent_id="a", user_id="u")
        await sessions.save_session(session)
        session.add_turn("user", "hello")
        await sessions.save_session(session)

        loaded = await sessions.get_session("s")
        assert [t.content for t in loaded.history] == ["hello"]

    @pytest.mark.asyncio
    async def test_delete(self, sessions):
        await sessions.save_session(Session(id="s", agent_id="a", user_id="u"))
        assert await sessions.delete_session("s") is True
        assert await sessions.get_session("s") is None


class TestLocks:
    def test_same_lock_per_session(self, sessions):
        assert sessions.lock("a") is sessions.lock("a")
        assert sessions.lock("a") is not sessions.lock("b")

    @pytest.mark.asyncio
    async def test_lock_serialises_turns(self, sessions):
        order = []

        async def turn(name):
            async with sessions.locked("s"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(turn("one"), turn("two"))
        assert order == ["one-start", "one-end", "two-start", "two-end"]
        assert sessions.active_locks == 0

    @pytest.mark.asyncio
    async def test_lock_dropped_after_turn(self, sessions):
        for i in range(5):
            async with sessions.locked(f"s{i}"):
                assert sessions.active_locks == 1
        assert sessions.active_locks == 0

    @pytest.mark.asyncio
    async def test_lock_kept_while_a_turn_waits(self, sessions):
        async with sessions.locked("s"):
            waiter = asyncio.create_task(_hold(sessions, "s"))
            await asyncio.sleep(0)
        assert sessions.active_locks == 1
        await waiter
        assert sessions.active_locks == 0


async def _hold(sessions, session_id):
    async with sessions.locked(session_id):
        await asyncio.sleep(0.01)
