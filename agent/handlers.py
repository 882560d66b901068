"""
Handlers — Deterministic answers for the intents an agent owns.

Every handler exposes name, version, priority, can_handle(intent) and an
async handle(message, intent, context) returning a HandlerOutcome:

- Resolved(content, ...)        → the handler answered the turn
- DeferToGeneration(hints, ...) → the fallback bridge answers, using the hints

Handlers are stateless; per-turn state travels in HandlerContext.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from agent.models import (
    DeferToGeneration,
    HandlerOutcome,
    Intent,
    IntentType,
    Resolved,
    Session,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class Handler(Protocol):
    name: str
    version: str
    priority: int

    def can_handle(self, intent: Intent) -> bool: ...

    async def handle(
        self, message: str, intent: Intent, context: "HandlerContext"
    ) -> HandlerOutcome: ...


@dataclass
class HandlerContext:
    """Per-turn state shared by handlers and the fallback bridge."""

    session: Session
    agent_id: str
    system_prompt: str = ""
    knowledge: Optional[Any] = None  # rag.engine.RAGEngine
    memory: Optional[Any] = None  # agent.memory.MemoryManager
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.session.metadata


class BaseHandler:
    """Common attributes and outcome helpers."""

    name = "BaseHandler"
    version = "1.0.0"
    priority = 0

    def can_handle(self, intent: Intent) -> bool:
        raise NotImplementedError

    async def handle(
        self, message: str, intent: Intent, context: HandlerContext
    ) -> HandlerOutcome:
        raise NotImplementedError

    def defer(self, reason: str = "", confidence: float = 0.8, **hints: Any) -> DeferToGeneration:
        return DeferToGeneration(hints=hints, confidence=confidence, reason=reason)

    def __repr__(self) -> str:
        return f"<{self.name} v{self.version} p={self.priority}>"


# Greeting

GREETINGS = [
    "Hi there! How can I help you today?",
    "Hello! What can I do for you?",
    "Hey! I'm here to help. What do you need?",
]


def pick_greeting(options: List[str], session: Session) -> str:
    """Rotates through greetings by turn count so replies stay deterministic."""
    return options[len(session.history) % len(options)]


class GreetingHandler(BaseHandler):
    name = "GreetingHandler"
    priority = 100

    greetings = GREETINGS

    def can_handle(self, intent: Intent) -> bool:
        return intent.type == IntentType.GREETING

    async def handle(self, message, intent, context):
        return Resolved(content=pick_greeting(self.greetings, context.session))


# Knowledge-backed handlers


async def lookup_knowledge(context: HandlerContext, query: str) -> List[Dict]:
    """Retrieves chunks for the agent, empty list if there is no index."""
    if context.knowledge is None:
        return []
    chunks = await context.knowledge.retrieve(context.agent_id, query)
    # the bridge reuses them instead of querying again
    context.extra["chunks"] = chunks
    return chunks


class InformationHandler(BaseHandler):
    """Defers to generation with the retrieved knowledge as grounding."""

    name = "InformationHandler"
    priority = 50

    def can_handle(self, intent: Intent) -> bool:
        return intent.type == IntentType.INFORMATION

    async def handle(self, message, intent, context):
        chunks = await lookup_knowledge(context, message)
        return self.defer(
            reason="information request",
            knowledge_sources=sorted({c["document_id"] for c in chunks}),
        )


class HowToHandler(BaseHandler):
    """Answers with the best matching knowledge excerpt, else defers."""

    name = "HowToHandler"
    priority = 60

    def can_handle(self, intent: Intent) -> bool:
        return intent.type == IntentType.HOWTO

    async def handle(self, message, intent, context):
        chunks = await lookup_knowledge(context, message)
        if not chunks:
            return self.defer(reason="no matching guide")

        top = chunks[0]
        title = top.get("section") or top["document_id"]
        return Resolved(
            content=f"Here's what our guide on **{title}** says:\n\n{top['text']}",
            confidence=round(min(max(top["score"], 0.0), 1.0), 3),
            data={"knowledge_sources": [top["document_id"]]},
        )


# Artwork calculations

DEFAULT_DPI = 300
CM_PER_INCH = 2.54


def print_quality(dpi: int) -> str:
    if dpi >= 250:
        return "optimal"
    if dpi >= 200:
        return "good"
    if dpi >= 150:
        return "acceptable"
    return "poor"


QUALITY_ADVICE = {
    "optimal": "That's excellent quality for professional printing!",
    "good": "That's good quality, suitable for most printing needs.",
    "acceptable": (
        "This will work for larger prints viewed from a distance, "
        "but you might notice some pixelation up close."
    ),
    "poor": (
        "Heads up: that resolution is really low for printing and the result "
        "won't look sharp. I'd recommend at least 200 DPI, ideally 300 DPI."
    ),
}


def compute_print_size(width_px: int, height_px: int, dpi: int) -> Dict[str, Any]:
    """Physical print size of an image at a given DPI."""
    if dpi <= 0:
        raise ValueError("dpi must be positive")
    width_in = width_px / dpi
    height_in = height_px / dpi
    return {
        "width_px": width_px,
        "height_px": height_px,
        "dpi": dpi,
        "width_in": round(width_in, 2),
        "height_in": round(height_in, 2),
        "width_cm": round(width_in * CM_PER_INCH, 2),
        "height_cm": round(height_in * CM_PER_INCH, 2),
        "quality": print_quality(dpi),
    }


class CalculationHandler(BaseHandler):
    """Print size / DPI maths from the message or the session's artwork data."""

    name = "CalculationHandler"
    priority = 70

    def can_handle(self, intent: Intent) -> bool:
        return intent.type == IntentType.CALCULATION

    def _params(self, intent: Intent, context: HandlerContext) -> Optional[Dict[str, int]]:
        dims = intent.entities.get("dimensions")
        dpi = intent.entities.get("dpi")
        artwork = context.metadata.get("artworkData") or {}

        if dims:
            width, height = dims["width"], dims["height"]
        elif artwork.get("width") and artwork.get("height"):
            width, height = artwork["width"], artwork["height"]
        else:
            return None

        if not dpi:
            dpi = artwork.get("dpi") or DEFAULT_DPI
        try:
            return {"width": int(width), "height": int(height), "dpi": int(dpi)}
        except (TypeError, ValueError):
            return None

    async def handle(self, message, intent, context):
        params = self._params(intent, context)
        if params is None or params["dpi"] <= 0:
            return Resolved(
                content=(
                    "I can help with print size calculations! Please give me the "
                    "artwork dimensions in pixels and the DPI (e.g. '4000x6000 pixels at 300 DPI')."
                ),
                confidence=0.5,
            )

        result = compute_print_size(params["width"], params["height"], params["dpi"])
        lines = [
            f"**Your artwork:** {result['width_px']} x {result['height_px']} pixels at {result['dpi']} DPI",
            f"**Print size:** {result['width_cm']:.2f}cm x {result['height_cm']:.2f}cm "
            f"({result['width_in']:.2f}\" x {result['height_in']:.2f}\")",
            f"**Quality:** {result['quality'].upper()}. {QUALITY_ADVICE[result['quality']]}",
        ]
        if result["dpi"] < 200:
            at_300 = compute_print_size(result["width_px"], result["height_px"], DEFAULT_DPI)
            lines.append(
                f"**Recommendation:** for sharp prints, go for {at_300['width_in']:.2f}\" x "
                f"{at_300['height_in']:.2f}\" at 300 DPI instead."
            )

        return Resolved(content="\n\n".join(lines), data={"calculation": result})
