"""
Router — Ordered handler dispatch with automatic generative fallback.

Handlers are kept sorted by (priority desc, registration order asc). The
first handler whose can_handle() is true answers; a deferral (explicit, an
empty Resolved, or a handle() that raised) goes to the fallback bridge and
the handler's hints are merged back into the final metadata, with the
deferral's own confidence kept as ``handler_confidence``.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from agent.errors import GenerationFailure
from agent.handlers import Handler, HandlerContext
from agent.models import DeferToGeneration, Intent, Resolved, Response

logger = logging.getLogger(__name__)


class ResponseRouter:
    """Handler registry and dispatcher for one agent."""

    def __init__(self, bridge=None):
        self._bridge = bridge  # agent.fallback.GenerationFallbackBridge
        self._entries: List[tuple] = []  # (-priority, registration index, handler)
        self._counter = 0

    @property
    def handlers(self) -> List[Handler]:
        return [entry[2] for entry in self._entries]

    def register_handler(self, handler: Handler) -> None:
        """Adds a handler and re-sorts the registry."""
        if not isinstance(handler, Handler):
            raise TypeError(
                f"{type(handler).__name__} is not a handler "
                "(needs name, version, priority, can_handle and handle)"
            )
        self._entries.append((-int(handler.priority), self._counter, handler))
        self._counter += 1
        self._entries.sort(key=lambda e: (e[0], e[1]))
        logger.debug(f"Handler registered: {handler.name} (priority {handler.priority})")

    def select(self, intent: Intent) -> Optional[Handler]:
        """First handler, in order, whose can_handle() is true."""
        for handler in self.handlers:
            try:
                if handler.can_handle(intent):
                    return handler
            except Exception as e:
                logger.error(
                    f"{handler.name}.can_handle raised: {e}", exc_info=True
                )
        return None

    async def route(
        self, message: str, intent: Intent, context: HandlerContext
    ) -> Response:
        """
        Dispatches a turn to a handler or to the fallback bridge.

        Raises:
            GenerationFailure: the bridge failed; ``hints`` and
                ``deferred_by`` are attached for the caller's safe default
        """
        start = time.perf_counter()
        handler = self.select(intent)

        if handler is None:
            logger.info(f"No handler for intent '{intent.type.value}', using fallback")
            response = await self._generate(message, intent.as_unknown(), context, {}, None)
            response.metadata["processing_time"] = _elapsed_ms(start)
            return response

        try:
            outcome = await handler.handle(message, intent, context)
        except Exception as e:
            logger.error(f"{handler.name}.handle raised: {e}", exc_info=True)
            outcome = DeferToGeneration(confidence=0.0, reason=f"handler error: {e}")

        if isinstance(outcome, Resolved) and outcome.content and outcome.content.strip():
            metadata: Dict[str, Any] = {
                "handler_name": handler.name,
                "handler_version": handler.version,
                "confidence": outcome.confidence,
                "cached": False,
            }
            metadata.update(outcome.data)
            metadata["processing_time"] = _elapsed_ms(start)
            return Response(content=outcome.content, metadata=metadata)

        if isinstance(outcome, DeferToGeneration):
            hints = dict(outcome.hints)
            reason = outcome.reason
            handler_confidence = outcome.confidence
        else:
            if not isinstance(outcome, Resolved):
                logger.warning(
                    f"{handler.name} returned {type(outcome).__name__}, treating as deferral"
                )
            hints, reason = {}, "empty content"
            handler_confidence = getattr(outcome, "confidence", 0.0)

        logger.info(f"{handler.name} deferred to generation ({reason or 'no reason'})")
        response = await self._generate(message, intent, context, hints, handler.name)
        response.metadata["handler_confidence"] = handler_confidence
        response.metadata["processing_time"] = _elapsed_ms(start)
        return response

    async def _generate(
        self,
        message: str,
        intent: Intent,
        context: HandlerContext,
        hints: Dict[str, Any],
        deferred_by: Optional[str],
    ) -> Response:
        if self._bridge is None:
            raise GenerationFailure("No generation fallback configured", hints=hints)

        try:
            response = await self._bridge.generate(message, intent, context, hints)
        except GenerationFailure as e:
            e.hints = {**e.hints, **hints}
            e.deferred_by = deferred_by
            raise

        metadata = dict(response.metadata)
        metadata.update(hints)
        metadata["fallback"] = True
        if deferred_by:
            metadata["deferred_by"] = deferred_by
        return Response(content=response.content, metadata=metadata)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
