"""
Tests for agent/db_service.py — Data access layer.

Uses a temporary SQLite database per test.
"""

import sqlite3

import pytest

from agent.db_service import DBService
from agent.errors import StorageUnavailable


def _session_row(session_id="s1", history=None, metadata=None):
    return {
        "id": session_id,
        "agent_id": "task-manager",
        "user_id": "u1",
        "history": history or [],
        "metadata": metadata or {},
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }


# Schema


class TestSchema:
    def test_init_schema_is_idempotent(self, db):
        db.init_schema()
        db.init_schema()

    def test_creates_parent_directory(self, tmp_path):
        service = DBService(tmp_path / "nested" / "dir" / "x.db")
        service.init_schema()
        assert (tmp_path / "nested" / "dir" / "x.db").exists()

    def test_tables_exist(self, db):
        conn = sqlite3.connect(db.db_path)
        names = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()
        assert {"sessions", "facts", "episodes"} <= names


# Sessions


class TestSessionOperations:
    def test_missing_session_returns_none(self, db):
        assert db.get_session("nope") is None

    def test_upsert_and_get_roundtrip(self, db):
        history = [{"role": "user", "content": "hola", "timestamp": "t"}]
        db.upsert_session(_session_row(history=history, metadata={"currentTask": "TSK-1"}))

        row = db.get_session("s1")
        assert row["history"] == history
        assert row["metadata"] == {"currentTask": "TSK-1"}
        assert row["agent_id"] == "task-manager"

    def test_upsert_replaces_whole_row(self, db):
        db.upsert_session(_session_row(metadata={"a": 1}))
        updated = _session_row(metadata={"b": 2})
        updated["updated_at"] = "2026-02-01T00:00:00+00:00"
        db.upsert_session(updated)

        row = db.get_session("s1")
        assert row["metadata"] == {"b": 2}
        assert row["updated_at"] == "2026-02-01T00:00:00+00:00"
        assert row["created_at"] == "2026-01-01T00:00:00+00:00"

    def test_delete_session(self, db):
        db.upsert_session(_session_row())
        assert db.delete_session("s1") is True
        assert db.delete_session("s1") is False


# Facts


class TestFactOperations:
    def test_insert_returns_row(self, db):
        fact = db.insert_fact("general-assistant", "Office opens at 9", {"src": "hr"}, "t1")
        assert fact["id"] > 0
        assert fact["metadata"] == {"src": "hr"}

    def test_list_is_agent_scoped_newest_first(self, db):
        db.insert_fact("a", "first", {}, "t1")
        db.insert_fact("b", "other agent", {}, "t2")
        db.insert_fact("a", "second", {}, "t3")

        facts = db.list_facts("a")
        assert [f["content"] for f in facts] == ["second", "first"]

    def test_list_with_limit(self, db):
        for i in range(4):
            db.insert_fact("a", f"fact {i}", {}, f"t{i}")
        assert len(db.list_facts("a", limit=2)) == 2


# Episodes


class TestEpisodeOperations:
    def test_list_most_recent_first_with_limit(self, db):
        db.insert_episode("u1", "a", "old", None, {}, "2026-01-01T00:00:00")
        db.insert_episode("u1", "a", "new", "s9", {}, "2026-03-01T00:00:00")
        db.insert_episode("u1", "a", "mid", None, {}, "2026-02-01T00:00:00")
        db.insert_episode("u2", "a", "someone else", None, {}, "2026-04-01T00:00:00")

        episodes = db.list_episodes("u1", "a", limit=2)
        assert [e["summary"] for e in episodes] == ["new", "mid"]
        assert episodes[0]["session_id"] == "s9"


# Errors


class TestStorageErrors:
    def test_missing_schema_raises_storage_unavailable(self, tmp_path):
        service = DBService(tmp_path / "empty.db")
        with pytest.raises(StorageUnavailable):
            service.get_session("s1")

    def test_unopenable_path_raises_storage_unavailable(self, tmp_path):
        service = DBService(tmp_path / "missing-dir" / "x.db")
        with pytest.raises(StorageUnavailable):
            service.list_facts("a")
