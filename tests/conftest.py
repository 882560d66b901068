"""
Shared fixtures for the Deskmate tests.

Provides:
- Test settings (no real .env needed)
- Deterministic fake embedder and scripted fake generator
- Temporary SQLite databases
- Agents wired with the fakes, and a FastAPI TestClient with dependency overrides
"""

import asyncio
import re
import sys
import zlib
from pathlib import Path
from typing import Dict, List

import numpy as np
import pytest
from fastapi.testclient import TestClient

# Add the project root to the path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from agent.db_service import DBService
from agent.factory import build_services, create_agent, create_all_agents
from api.config import Settings
from api.main import app, get_agents


# Fakes


class FakeEmbedder:
    """Bag-of-words hashing embedder: same tokens → same vector."""

    dimension = 64

    def __init__(self):
        self.calls = 0

    def encode(self, texts: List[str]) -> np.ndarray:
        self.calls += 1
        vectors = np.zeros((len(texts), self.dimension), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in re.findall(r"[a-z0-9]+", text.lower()):
                vectors[row, zlib.crc32(token.encode()) % self.dimension] += 1.0
        return vectors


class FakeGenerator:
    """Scripted generation provider that records every call."""

    model = "fake-model"

    def __init__(self, reply: str = "Generated reply."):
        self.reply = reply
        self.error: Exception | None = None
        self.delay: float = 0.0
        self.calls: List[Dict] = []

    async def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        self.calls.append({"system_prompt": system_prompt, "messages": messages})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    @property
    def last_system_prompt(self) -> str:
        return self.calls[-1]["system_prompt"]


# Settings


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Safe settings for testing (no .env needed)."""
    return Settings(
        GROQ_API_KEY="test-key-fake-12345",
        LLM_MODEL="llama-3.3-70b-versatile",
        GENERATION_TIMEOUT_SECONDS=0.5,
        HISTORY_WINDOW=4,
        CHUNK_SIZE=200,
        CHUNK_OVERLAP=40,
        TOP_K_RETRIEVAL=3,
        SIMILARITY_THRESHOLD=0.2,
        MEMORY_RECALL_LIMIT=5,
        DATABASE_PATH=str(tmp_path / "deskmate.db"),
    )


# Databases


@pytest.fixture
def db(tmp_path) -> DBService:
    """DBService with the schema on a temporary database."""
    service = DBService(tmp_path / "test.db")
    service.init_schema()
    return service


# Services and agents


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def services(test_settings, fake_generator, fake_embedder):
    return build_services(test_settings, provider=fake_generator, embedder=fake_embedder)


@pytest.fixture
def task_agent(services):
    return create_agent("task-manager", services)


@pytest.fixture
def artwork_agent(services):
    return create_agent("artwork-analyzer", services)


@pytest.fixture
def general_agent(services):
    return create_agent("general-assistant", services)


# TestClient with DI overrides


@pytest.fixture
def agents(services):
    return create_all_agents(services)


@pytest.fixture
def client(agents) -> TestClient:
    """
    FastAPI TestClient with dependency overrides.

    get_agents → agents wired with the fake embedder/generator
    """
    app.dependency_overrides[get_agents] = lambda: agents

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
