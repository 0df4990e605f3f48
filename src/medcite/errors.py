"""
Typed failures for the retrieval and citation pipeline.

Collaborator calls (embedding, vector search, LLM) never leak SDK
exceptions to callers. They return a ``Failure`` value instead, and the
caller decides whether to degrade (empty context) or surface it.

Usage:
    result = retriever.retrieve(vector, threshold=0.7, limit=5)
    if is_failure(result):
        logger.warning("retrieval_failed", reason=result.reason)
"""

from dataclasses import dataclass
from typing import Any, TypeGuard


class MedCiteError(Exception):
    """Base class for pipeline errors."""


class ValidationFailure(MedCiteError):
    """Input could not be used (e.g. empty after sanitization)."""


class RetrievalFailure(MedCiteError):
    """Embedding or vector-search call failed."""

    def __init__(self, message: str, stage: str = "vector_search"):
        super().__init__(message)
        self.stage = stage


class LLMFailure(MedCiteError):
    """Completion call failed. Always fatal to the request."""


@dataclass(frozen=True)
class Failure:
    """
    A failed collaborator call, returned instead of raised.

    ``error`` is the typed cause; ``reason`` is the human-readable
    message shown to callers.
    """
    error: MedCiteError

    @property
    def reason(self) -> str:
        return str(self.error)

    @property
    def kind(self) -> str:
        return type(self.error).__name__

    @classmethod
    def retrieval(cls, message: str, stage: str = "vector_search") -> "Failure":
        return cls(RetrievalFailure(message, stage=stage))

    @classmethod
    def llm(cls, message: str) -> "Failure":
        return cls(LLMFailure(message))

    @classmethod
    def validation(cls, message: str) -> "Failure":
        return cls(ValidationFailure(message))


def is_failure(value: Any) -> TypeGuard[Failure]:
    """True if ``value`` is a Failure."""
    return isinstance(value, Failure)
