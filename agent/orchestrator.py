"""
Orchestrator — Single entry point of a conversational agent.

Flow of process_message():
1. Reject a missing/blank message (nothing persisted)
2. Take the session lock, load or create the session
3. Parse embedded context markers (``[Label: payload]``) into session metadata
4. Detect intent on the cleaned text
5. Route: handlers first, generative fallback second
6. On GenerationFailure, answer with the agent's safe default
7. Validate/fix the reply against the agent's constraints
8. Append the user and assistant turns, save the session (one transaction)

Concrete agents (agent/agents.py) subclass AgentOrchestrator and declare
their handlers, constraints, context markers and system prompt.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from agent.constraints import Constraint, ConstraintValidator
from agent.errors import (
    GenerationFailure,
    MalformedEmbeddedContext,
    StorageUnavailable,
    ValidationInputError,
)
from agent.fallback import GenerationFallbackBridge
from agent.handlers import Handler, HandlerContext
from agent.intent import IntentDetector
from agent.memory import MemoryManager
from agent.models import Episode, Fact, Intent, Response, Session, new_session_id
from agent.router import ResponseRouter
from agent.session import SessionManager

logger = logging.getLogger(__name__)


# Safe default replies when generation is unavailable

SAFE_DEFAULT_REPLIES = [
    "Hmm, I'm not quite sure what you're asking. Could you tell me a bit more about what you're trying to do? I'm here to help!",
    "I want to make sure I give you the right answer! Could you rephrase that or give me a bit more detail?",
    "Let me make sure I understand you correctly. Could you give me a bit more context about what you're looking for?",
]


@dataclass
class AgentServices:
    """Shared collaborators injected into every agent."""

    sessions: SessionManager
    memory: MemoryManager
    bridge: GenerationFallbackBridge
    detector: IntentDetector
    validator: ConstraintValidator
    knowledge: Optional[Any] = None  # rag.engine.RAGEngine


# Context markers


@dataclass
class ContextMarker:
    """``[label: payload]`` embedded in a message, stored under ``metadata_key``.

    ``payload_pattern`` bounds what the regex captures; ``parser`` turns the
    captured text into a JSON value or raises MalformedEmbeddedContext.
    """

    label: str
    metadata_key: str
    parser: Callable[[str], Any]
    payload_pattern: str = r"[^\]]*"

    @property
    def regex(self) -> re.Pattern:
        return re.compile(
            r"\[" + re.escape(self.label) + r":\s*(" + self.payload_pattern + r")\s*\]",
            re.IGNORECASE | re.DOTALL,
        )


def parse_json_object(label: str) -> Callable[[str], Dict[str, Any]]:
    def _parse(payload: str) -> Dict[str, Any]:
        try:
            value = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedEmbeddedContext(label, payload, str(e)) from e
        if not isinstance(value, dict):
            raise MalformedEmbeddedContext(label, payload, "expected a JSON object")
        return value

    return _parse


def parse_token(label: str, pattern: str) -> Callable[[str], str]:
    token = re.compile(pattern, re.IGNORECASE)

    def _parse(payload: str) -> str:
        match = token.search(payload)
        if match is None:
            raise MalformedEmbeddedContext(label, payload, f"no token matching {pattern}")
        return match.group(1).upper()

    return _parse


class AgentOrchestrator:
    """Agent facade: sessions, intent, routing, validation and persistence."""

    agent_id = "agent"
    name = "Agent"
    version = "1.0.0"
    description = ""
    system_prompt = "You are a helpful support assistant."
    safe_default_replies = SAFE_DEFAULT_REPLIES

    def __init__(self, services: AgentServices):
        self.services = services
        self.sessions = services.sessions
        self.memory = services.memory
        self.knowledge = services.knowledge
        self.detector = services.detector
        self.validator = services.validator

        self.router = ResponseRouter(bridge=services.bridge)
        for handler in self.build_handlers():
            self.router.register_handler(handler)

        self.context_markers: List[ContextMarker] = self.build_context_markers()
        self.validator.register_agent_constraints(self.agent_id, self.build_constraints())

        logger.info(
            f"{self.name} ({self.agent_id}) ready: "
            f"{[h.name for h in self.router.handlers]}"
        )

    # Declarations overridden by concrete agents

    def build_handlers(self) -> List[Handler]:
        return []

    def build_constraints(self) -> List[Constraint]:
        return []

    def build_context_markers(self) -> List[ContextMarker]:
        return []

    def get_system_prompt(self, session: Session) -> str:
        return self.system_prompt

    # Entry point

    async def process_message(
        self,
        message: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Response:
        """
        Processes one user message and returns the validated reply.

        Raises:
            ValidationInputError: message missing or blank
            StorageUnavailable: session load failed, or save failed
                (then ``err.response`` holds the reply)
        """
        if message is None or not str(message).strip():
            raise ValidationInputError("Message is required")

        start = time.perf_counter()
        message = str(message).strip()
        session_id = session_id or new_session_id()

        async with self.sessions.locked(session_id):
            session = await self.sessions.load_or_create_session(
                session_id, self.agent_id, user_id
            )
            logger.info(f"[{session.id}] {self.agent_id} message: {message[:60]}")

            text = self.apply_context_markers(message, session)
            intent = self.detector.detect(text)
            logger.info(
                f"[{session.id}] intent={intent.type.value} "
                f"confidence={intent.confidence:.2f}"
            )

            context = HandlerContext(
                session=session,
                agent_id=self.agent_id,
                system_prompt=self.get_system_prompt(session),
                knowledge=self.knowledge,
                memory=self.memory,
            )

            try:
                response = await self.router.route(text, intent, context)
            except GenerationFailure as e:
                logger.warning(f"[{session.id}] generation failed, using safe default: {e}")
                response = self.safe_default(session, e)

            response = self.validator.validate(response, self.agent_id)
            response.metadata.update(
                {
                    "agent_id": self.agent_id,
                    "session_id": session.id,
                    "intent": intent.type.value,
                    "intent_confidence": intent.confidence,
                    "processing_time": round((time.perf_counter() - start) * 1000, 2),
                }
            )

            session.add_turn("user", text or message, intent=intent.type.value)
            session.add_turn(
                "assistant",
                response.content,
                intent=intent.type.value,
                handler=response.metadata.get("handler_name"),
            )

            try:
                await self.sessions.save_session(session)
            except StorageUnavailable as e:
                logger.error(f"[{session.id}] session save failed: {e}")
                e.response = response
                raise

        return response

    def apply_context_markers(self, message: str, session: Session) -> str:
        """Moves embedded context markers into session metadata.

        Malformed payloads are logged and left in the text; metadata is
        only touched by markers that parsed.
        """
        text = message
        for marker in self.context_markers:
            parsed: Dict[str, Any] = {}

            def _replace(match: re.Match, marker=marker, parsed=parsed) -> str:
                try:
                    parsed["value"] = marker.parser(match.group(1).strip())
                except MalformedEmbeddedContext as e:
                    logger.warning(f"[{session.id}] {e}")
                    return match.group(0)
                return " "

            text = marker.regex.sub(_replace, text)
            if "value" in parsed:
                session.metadata[marker.metadata_key] = parsed["value"]
                logger.debug(f"[{session.id}] {marker.metadata_key} set from [{marker.label}]")

        return re.sub(r"[ \t]{2,}", " ", text).strip()

    def safe_default(self, session: Session, error: GenerationFailure) -> Response:
        content = self.safe_default_replies[len(session.history) % len(self.safe_default_replies)]
        metadata: Dict[str, Any] = {
            "handler_name": "FallbackHandler",
            "handler_version": self.version,
            "confidence": 0.5,
            "cached": False,
            "fallback": True,
        }
        metadata.update(error.hints)
        if error.deferred_by:
            metadata["deferred_by"] = error.deferred_by
        metadata["generation_error"] = str(error)
        metadata["generation_timed_out"] = error.timed_out
        return Response(content=content, metadata=metadata)

    # Capability surface

    def can_handle(self, intent: Intent) -> bool:
        return self.router.select(intent) is not None

    def can_contribute(self, intent: Intent) -> bool:
        return False

    def get_capabilities(self) -> List[str]:
        return []

    def get_metadata(self) -> Dict[str, Any]:
        return {
            "id": self.agent_id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "capabilities": self.get_capabilities(),
            "handlers": [
                {"name": h.name, "version": h.version, "priority": h.priority}
                for h in self.router.handlers
            ],
            "constraints": [c.id for c in self.validator.constraints_for(self.agent_id)],
            "context_markers": [m.label for m in self.context_markers],
        }

    # Knowledge and memory

    async def ingest_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        if self.knowledge is None:
            raise RuntimeError(f"{self.agent_id} has no knowledge index configured")
        return await self.knowledge.ingest_document(self.agent_id, document)

    async def search_knowledge(self, query: str, top_k: Optional[int] = None) -> List[Dict]:
        if self.knowledge is None:
            return []
        return await self.knowledge.retrieve(self.agent_id, query, top_k=top_k)

    async def remember(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> Fact:
        if not content or not content.strip():
            raise ValidationInputError("Fact content is required")
        return await self.memory.store_fact(self.agent_id, content.strip(), metadata)

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.sessions.get_session(session_id)

    async def close_session(self, session_id: str) -> Optional[Episode]:
        """Summarises a session into an episode of its user."""
        async with self.sessions.locked(session_id):
            session = await self.sessions.get_session(session_id)
            if session is None or not session.history:
                return None
            summary = self.memory.summarize_session(session)
            episode = await self.memory.store_episode(
                session.user_id,
                self.agent_id,
                summary,
                session_id=session.id,
                metadata={"turns": len(session.history)},
            )
        logger.info(f"[{session_id}] closed into episode #{episode.id}")
        return episode
