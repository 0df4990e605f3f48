"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from medcite.config import Settings
from medcite.errors import Failure
from medcite.models import PassageSet, RetrievedPassage

DIMENSION = 8


def basis_vector(index: int, dimension: int = DIMENSION) -> np.ndarray:
    vector = np.zeros(dimension)
    vector[index] = 1.0
    return vector


class FakeEmbedder:
    """Maps known texts to basis vectors; unknown texts map to index 0."""

    def __init__(self, slots: dict[str, int] | None = None, fail_on: set[str] | None = None):
        self.slots = slots or {}
        self.fail_on = fail_on or set()
        self.calls: list[str] = []

    def embed(self, text: str):
        self.calls.append(text)
        if text in self.fail_on:
            return Failure.retrieval("embedding service unavailable", stage="embedding")
        return basis_vector(self.slots.get(text, 0))


class FakeVectorStore:
    """
    Returns canned rows per query vector slot (the index of the 1.0).

    A slot mapped to an exception raises it, like a backend error.
    Rows are returned as-is, ignoring threshold and limit.
    """

    def __init__(self, rows_by_slot: dict | None = None):
        self.rows_by_slot = rows_by_slot or {}
        self.calls: list[dict] = []

    def similarity_search(self, vector, specialty_filter=None, threshold=0.7, limit=5):
        slot = int(np.argmax(vector))
        self.calls.append({
            "slot": slot,
            "specialty_filter": specialty_filter,
            "threshold": threshold,
            "limit": limit,
        })
        rows = self.rows_by_slot.get(slot, [])
        if isinstance(rows, Exception):
            raise rows
        return [dict(r) if isinstance(r, dict) else r for r in rows]


class FakeLLM:
    """Returns a fixed completion (or Failure) and records every call."""

    def __init__(self, response="", failure: str | None = None):
        self.response = response
        self.failure = failure
        self.calls: list[dict] = []

    def complete(self, system_prompt, user_message, temperature=0.3, max_tokens=2000, model=None):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "model": model,
        })
        if self.failure is not None:
            return Failure.llm(self.failure)
        return self.response


class RecordingSink:
    def __init__(self):
        self.saved = []

    def save(self, answer, citations):
        self.saved.append((answer, citations))


def row(passage_id, similarity, content=None, **metadata):
    return {
        "id": passage_id,
        "content": content or f"Content of passage {passage_id}",
        "metadata": metadata,
        "similarity": similarity,
    }


def passage(passage_id, similarity, content=None, **metadata) -> RetrievedPassage:
    return RetrievedPassage(
        id=passage_id,
        content=content or f"Content of passage {passage_id}",
        metadata=metadata,
        similarity=similarity,
    )


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Settings with defaults only, ignoring any local .env file or API keys."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return Settings(_env_file=None)


@pytest.fixture
def sample_passages() -> PassageSet:
    return PassageSet.from_passages([
        passage(
            "htn-1",
            0.91,
            content="First-line therapy for hypertension includes thiazide diuretics.",
            title="Hypertension guideline",
            authors="Whelton PK",
            journal="Hypertension",
            year="2018",
        ),
        passage(
            "dm-1",
            0.82,
            content="Metformin remains first-line therapy for type 2 diabetes.",
            title="Standards of care",
            journal="Diabetes Care",
        ),
    ])
