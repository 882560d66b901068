"""
Errors — Error taxonomy of the agent runtime.

Every failure the Facade distinguishes has its own class so callers
(the HTTP layer, an external coordinator) can decide what to do:

- ValidationInputError: bad input, surfaces immediately, nothing persisted
- StorageUnavailable: SQLite read/write failure (sessions, memory, knowledge)
- GenerationFailure: the generative model errored, timed out or said nothing
- MalformedEmbeddedContext: a `[Label: payload]` marker could not be parsed
"""

from typing import Any, Dict, Optional


class AgentError(Exception):
    """Base class for every runtime error."""


class ValidationInputError(AgentError):
    """The incoming message is missing or empty."""


class StorageUnavailable(AgentError):
    """The persistence layer could not be reached.

    When raised after a reply was already built (session save), the reply is
    attached in ``response`` so the caller can still deliver it.
    """

    def __init__(self, message: str, response: Optional[Any] = None):
        super().__init__(message)
        self.response = response


class GenerationFailure(AgentError):
    """The fallback generation call failed or timed out."""

    def __init__(
        self,
        message: str,
        hints: Optional[Dict[str, Any]] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.hints = dict(hints or {})
        self.timed_out = timed_out
        self.deferred_by: Optional[str] = None


class MalformedEmbeddedContext(AgentError):
    """An embedded context marker carried an unparseable payload."""

    def __init__(self, label: str, payload: str, reason: str):
        super().__init__(f"Malformed [{label}] payload: {reason}")
        self.label = label
        self.payload = payload
