"""
Factory — Wires the shared services and builds agents by kind.

build_services(settings) creates one DBService, SessionManager,
MemoryManager, RAGEngine, fallback bridge, intent detector and constraint
validator; every agent built from them shares the same database and the
same global constraint pool.
"""

import logging
from typing import Dict, Optional, Type

from agent.agents import ArtworkAgent, GeneralAssistantAgent, TaskManagerAgent
from agent.constraints import ConstraintValidator, no_empty_response
from agent.db_service import DBService
from agent.fallback import GenerationFallbackBridge, GenerationProvider, GroqGenerator
from agent.intent import IntentDetector
from agent.memory import MemoryManager
from agent.orchestrator import AgentOrchestrator, AgentServices
from agent.session import SessionManager
from rag.embeddings import Embedder, SentenceTransformerEmbedder
from rag.engine import RAGEngine

logger = logging.getLogger(__name__)


AGENT_KINDS: Dict[str, Type[AgentOrchestrator]] = {
    cls.agent_id: cls for cls in (GeneralAssistantAgent, ArtworkAgent, TaskManagerAgent)
}


def build_services(
    settings,
    provider: Optional[GenerationProvider] = None,
    embedder: Optional[Embedder] = None,
) -> AgentServices:
    """
    Builds the shared services from settings.

    Args:
        settings: api.config.Settings
        provider: Generation provider (default: GroqGenerator)
        embedder: Embedding provider (default: SentenceTransformerEmbedder)
    """
    db = DBService(settings.db_full_path)
    db.init_schema()

    if provider is None:
        provider = GroqGenerator(
            api_key=settings.GROQ_API_KEY,
            model=settings.LLM_MODEL,
            temperature=settings.GENERATION_TEMPERATURE,
            max_tokens=settings.GENERATION_MAX_TOKENS,
        )
    if embedder is None:
        embedder = SentenceTransformerEmbedder(settings.EMBEDDING_MODEL)

    knowledge = RAGEngine(
        settings.db_full_path,
        embedder,
        chunk_size=settings.CHUNK_SIZE,
        chunk_overlap=settings.CHUNK_OVERLAP,
        top_k=settings.TOP_K_RETRIEVAL,
        threshold=settings.SIMILARITY_THRESHOLD,
    )

    validator = ConstraintValidator()
    validator.register_constraint(no_empty_response())

    services = AgentServices(
        sessions=SessionManager(db),
        memory=MemoryManager(db, recall_limit=settings.MEMORY_RECALL_LIMIT),
        bridge=GenerationFallbackBridge(
            provider,
            timeout_seconds=settings.GENERATION_TIMEOUT_SECONDS,
            history_window=settings.HISTORY_WINDOW,
            memory_limit=settings.MEMORY_RECALL_LIMIT,
        ),
        detector=IntentDetector(),
        validator=validator,
        knowledge=knowledge,
    )
    logger.info(f"Services ready (db: {settings.db_full_path})")
    return services


def create_agent(kind: str, services: AgentServices) -> AgentOrchestrator:
    """Builds the agent registered under ``kind`` (its agent id)."""
    try:
        cls = AGENT_KINDS[kind]
    except KeyError:
        raise ValueError(
            f"Unknown agent kind '{kind}'. Available: {sorted(AGENT_KINDS)}"
        ) from None
    return cls(services)


def create_all_agents(services: AgentServices) -> Dict[str, AgentOrchestrator]:
    """One instance of every agent kind, keyed by agent id."""
    return {kind: create_agent(kind, services) for kind in AGENT_KINDS}
