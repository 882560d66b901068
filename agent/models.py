"""
Models — Domain types shared by every component of the runtime.

Sessions, turns, memory records, intents, responses and the tagged
handler outcomes (Resolved / DeferToGeneration).
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def utc_now() -> str:
    """ISO-8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


def new_session_id() -> str:
    return uuid.uuid4().hex


# Intents


class IntentType(str, Enum):
    """Closed set of intents the detector can produce."""

    GREETING = "greeting"
    TASK_CREATION = "task_creation"
    TASK_QUERY = "task_query"
    WORKLOAD_ANALYSIS = "workload_analysis"
    CALCULATION = "calculation"
    HOWTO = "howto"
    INFORMATION = "information"
    UNKNOWN = "unknown"


@dataclass
class Intent:
    """Classified purpose of a user message."""

    type: IntentType
    confidence: float
    original_message: str
    entities: Dict[str, Any] = field(default_factory=dict)
    matched_keyword: Optional[str] = None
    requires_rag: bool = False
    requires_domain_data: bool = False

    def as_unknown(self) -> "Intent":
        """Copy of this intent re-labelled as UNKNOWN (nothing handled it)."""
        return Intent(
            type=IntentType.UNKNOWN,
            confidence=0.0,
            original_message=self.original_message,
            entities=dict(self.entities),
            matched_keyword=None,
            requires_rag=True,
            requires_domain_data=self.requires_domain_data,
        )


# Sessions


@dataclass
class Turn:
    role: str
    content: str
    timestamp: str = field(default_factory=utc_now)
    intent: Optional[str] = None
    handler: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=data.get("timestamp") or utc_now(),
            intent=data.get("intent"),
            handler=data.get("handler"),
        )


@dataclass
class Session:
    """Persisted state of one ongoing conversation.

    ``metadata`` is an open string-keyed JSON map. The runtime never
    interprets it; each agent documents the keys it reads and writes.
    """

    id: str
    agent_id: str
    user_id: str
    history: List[Turn] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def add_turn(
        self,
        role: str,
        content: str,
        intent: Optional[str] = None,
        handler: Optional[str] = None,
    ) -> Turn:
        turn = Turn(role=role, content=content, intent=intent, handler=handler)
        self.history.append(turn)
        self.updated_at = turn.timestamp
        return turn

    def recent_history(self, limit: int) -> List[Turn]:
        if limit <= 0:
            return []
        return self.history[-limit:]


# Memory


@dataclass
class Fact:
    id: int
    agent_id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)


@dataclass
class Episode:
    id: int
    user_id: str
    agent_id: str
    summary: str
    session_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)


@dataclass
class MemoryBundle:
    """Ranked facts and episodes relevant to one turn."""

    facts: List[Fact] = field(default_factory=list)
    episodes: List[Episode] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.facts and not self.episodes


# Responses


@dataclass
class Response:
    """Reply leaving the runtime: text plus structured metadata."""

    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Resolved:
    """Handler outcome: the handler answered the turn itself."""

    content: str
    confidence: float = 1.0
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeferToGeneration:
    """Handler outcome: let the generative model answer, using these hints."""

    hints: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.8
    reason: str = ""


HandlerOutcome = Union[Resolved, DeferToGeneration]
