"""
Fallback — Generative answers when no handler resolves a turn.

This module:
1. GroqGenerator: chat completions through the Groq API (async client)
2. GenerationFallbackBridge: assembles the prompt (agent system prompt,
   recalled memory, retrieved knowledge, handler hints, recent history)
   and calls the provider under an explicit timeout

Provider errors, timeouts and empty output all raise GenerationFailure.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from groq import AsyncGroq

from agent.errors import GenerationFailure
from agent.handlers import HandlerContext
from agent.models import Intent, MemoryBundle, Response

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.3-70b-versatile"


@runtime_checkable
class GenerationProvider(Protocol):
    async def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> str: ...


class GroqGenerator:
    """Generates replies with the Groq chat completions API."""

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        temperature: float = 0.5,
        max_tokens: int = 1024,
    ):
        """
        Args:
            api_key: Groq API key (required)
            model: Model name (default: llama-3.3-70b-versatile)
            temperature: Sampling temperature
            max_tokens: Completion token limit
        """
        if not api_key:
            raise ValueError(
                "GROQ_API_KEY not found. "
                "Create a .env file with your key from https://console.groq.com/keys"
            )

        self.client = AsyncGroq(api_key=api_key)
        self.model = model or DEFAULT_MODEL
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(f"Groq generator ready (model: {self.model})")

    async def generate(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        chat_completion = await self.client.chat.completions.create(
            messages=[{"role": "system", "content": system_prompt}, *messages],
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=0.9,
        )

        response_text = chat_completion.choices[0].message.content or ""
        if chat_completion.usage is not None:
            logger.debug(f"Groq tokens used: {chat_completion.usage.total_tokens}")

        # Strip wrapping quotes the model sometimes adds
        return response_text.strip().strip('"“”«»')


class GenerationFallbackBridge:
    """Builds the generation prompt and calls the provider with a timeout."""

    def __init__(
        self,
        provider: GenerationProvider,
        timeout_seconds: float = 20.0,
        history_window: int = 6,
        memory_limit: int = 5,
    ):
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.history_window = history_window
        self.memory_limit = memory_limit

    async def _recall(self, message: str, context: HandlerContext) -> MemoryBundle:
        if context.memory is None:
            return MemoryBundle()
        try:
            return await context.memory.recall(
                context.session.id,
                context.session.user_id,
                context.agent_id,
                message,
                self.memory_limit,
            )
        except Exception as e:
            logger.warning(
                f"[{context.session.id}] memory recall failed, continuing without it: {e}"
            )
            return MemoryBundle()

    async def _knowledge(
        self, message: str, intent: Intent, context: HandlerContext
    ) -> List[Dict]:
        if "chunks" in context.extra:
            return context.extra["chunks"]
        if context.knowledge is None or not intent.requires_rag:
            return []
        try:
            return await context.knowledge.retrieve(context.agent_id, message)
        except Exception as e:
            logger.warning(
                f"[{context.session.id}] knowledge retrieval failed, continuing without it: {e}"
            )
            return []

    def build_system_prompt(
        self,
        context: HandlerContext,
        intent: Intent,
        memory: MemoryBundle,
        chunks: List[Dict],
        hints: Dict[str, Any],
    ) -> str:
        """Agent system prompt followed by the turn's grounding sections."""
        parts = [context.system_prompt.strip() or "You are a helpful support assistant."]

        if memory.facts:
            parts.append(
                "KNOWN FACTS:\n" + "\n".join(f"- {f.content}" for f in memory.facts)
            )
        if memory.episodes:
            parts.append(
                "PREVIOUS CONVERSATIONS WITH THIS USER:\n"
                + "\n".join(f"- {e.summary}" for e in memory.episodes)
            )
        if chunks:
            sources = []
            for i, chunk in enumerate(chunks[:5], 1):
                sources.append(f"[Source {i}: {chunk.get('document_id', 'document')}]\n{chunk['text']}")
            parts.append("KNOWLEDGE BASE:\n" + "\n\n".join(sources))
        if context.metadata:
            parts.append(
                "SESSION CONTEXT:\n"
                + json.dumps(context.metadata, ensure_ascii=False, default=str, sort_keys=True)
            )

        notes = [f"- detected intent: {intent.type.value}"]
        notes.extend(
            f"- {key}: {json.dumps(value, ensure_ascii=False, default=str)}"
            for key, value in hints.items()
        )
        parts.append("NOTES FOR THIS REPLY:\n" + "\n".join(notes))

        parts.append(
            "Answer the user's last message directly. Do not wrap your answer in quotes."
        )
        return "\n\n".join(parts)

    def build_messages(self, message: str, context: HandlerContext) -> List[Dict[str, str]]:
        messages = [
            {"role": turn.role, "content": turn.content}
            for turn in context.session.recent_history(self.history_window)
        ]
        messages.append({"role": "user", "content": message})
        return messages

    async def generate(
        self,
        message: str,
        intent: Intent,
        context: HandlerContext,
        hints: Optional[Dict[str, Any]] = None,
    ) -> Response:
        """
        Produces a generated reply for the turn.

        Raises:
            GenerationFailure: provider error, timeout or empty output
        """
        hints = dict(hints or {})
        memory = await self._recall(message, context)
        chunks = await self._knowledge(message, intent, context)

        system_prompt = self.build_system_prompt(context, intent, memory, chunks, hints)
        messages = self.build_messages(message, context)

        try:
            content = await asyncio.wait_for(
                self.provider.generate(system_prompt, messages),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"[{context.session.id}] generation timed out after {self.timeout_seconds}s"
            )
            raise GenerationFailure(
                f"Generation timed out after {self.timeout_seconds}s",
                hints=hints,
                timed_out=True,
            ) from e
        except GenerationFailure:
            raise
        except Exception as e:
            logger.error(f"[{context.session.id}] generation failed: {e}", exc_info=True)
            raise GenerationFailure(f"Generation failed: {e}", hints=hints) from e

        if not content or not content.strip():
            raise GenerationFailure("Generation returned no content", hints=hints)

        metadata: Dict[str, Any] = {
            "handler_name": "GenerationFallbackBridge",
            "handler_version": "1.0.0",
            "confidence": 0.7,
            "cached": False,
            "model": getattr(self.provider, "model", None),
        }
        if chunks:
            metadata["knowledge_sources"] = sorted({c["document_id"] for c in chunks})
        if not memory.is_empty():
            metadata["memory"] = {
                "facts": len(memory.facts),
                "episodes": len(memory.episodes),
            }
        return Response(content=content.strip(), metadata=metadata)
