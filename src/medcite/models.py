"""
Core data models for the MedCite pipeline.

These represent the per-request structures that flow from the user query
through retrieval, prompt assembly and citation extraction. Nothing here
is persisted; the persistence collaborator receives ``AnswerResult``.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np

# Metadata fields rendered into a citation string, in this order
CITATION_FIELDS = ("title", "authors", "journal", "year")

EmbeddingVector = np.ndarray


@dataclass(frozen=True)
class Query:
    """
    A single retrieval request.

    Constructed per request and never shared between requests.
    """
    raw_text: str
    sanitized_text: str
    specialty_id: str | None = None
    threshold: float = 0.7
    limit: int = 5

    def __post_init__(self) -> None:
        if not 0.0 < self.threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {self.threshold}")
        if self.limit < 1:
            raise ValueError(f"limit must be a positive integer, got {self.limit}")


@dataclass(frozen=True)
class RetrievedPassage:
    """
    A reference passage returned by similarity search.

    metadata may carry title, authors, journal and year (all free text,
    all optional). similarity is in [0, 1].
    """
    id: str
    content: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    similarity: float = 0.0

    def citation_string(self) -> str:
        """Present bibliographic fields joined with ', '."""
        parts = []
        for name in CITATION_FIELDS:
            value = self.metadata.get(name)
            if value is None:
                continue
            text = str(value).strip()
            if text:
                parts.append(text)
        return ", ".join(parts)

    def __repr__(self) -> str:
        preview = self.content[:40] + "..." if len(self.content) > 40 else self.content
        return f"RetrievedPassage(id={self.id}, similarity={self.similarity:.3f}, preview='{preview}')"


class PassageSet:
    """
    Ranked passages, unique by id, ordered by descending similarity.

    Build one through ``PassageSet.from_passages`` (which enforces the
    ordering and uniqueness) or ``PassageSet.empty()``.
    """

    __slots__ = ("_passages", "threshold")

    def __init__(self, passages: tuple[RetrievedPassage, ...] = (), threshold: float | None = None):
        self._passages = passages
        self.threshold = threshold

    @classmethod
    def empty(cls) -> "PassageSet":
        return cls(())

    @classmethod
    def from_passages(
            cls,
            passages: list[RetrievedPassage],
            threshold: float | None = None,
            limit: int | None = None,
    ) -> "PassageSet":
        """
        Normalize passages into a valid set.

        Keeps the first occurrence of each id, drops anything below
        threshold, sorts by descending similarity (stable, so ties keep
        their retrieval order) and truncates to limit.
        """
        seen: set[str] = set()
        kept = []
        for passage in passages:
            if passage.id in seen:
                continue
            if threshold is not None and passage.similarity < threshold:
                continue
            seen.add(passage.id)
            kept.append(passage)

        kept.sort(key=lambda p: p.similarity, reverse=True)
        if limit is not None:
            kept = kept[:limit]
        return cls(tuple(kept), threshold=threshold)

    @property
    def passages(self) -> tuple[RetrievedPassage, ...]:
        return self._passages

    @property
    def ids(self) -> list[str]:
        return [p.id for p in self._passages]

    def __iter__(self) -> Iterator[RetrievedPassage]:
        return iter(self._passages)

    def __len__(self) -> int:
        return len(self._passages)

    def __bool__(self) -> bool:
        return len(self._passages) > 0

    def __getitem__(self, index: int) -> RetrievedPassage:
        return self._passages[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PassageSet):
            return NotImplemented
        return self._passages == other._passages

    def __repr__(self) -> str:
        return f"PassageSet({[(p.id, round(p.similarity, 3)) for p in self._passages]})"


@dataclass
class ExtractedCitation:
    """
    A numbered reference pulled out of raw LLM output.

    reference_number is exactly what appeared in the answer, so numbers
    are not necessarily contiguous or unique. ``block`` is the raw
    ``[n] text`` substring that was consumed from the answer.

    Structured fields are filled by ``parse_citation``. When the text
    did not split into authors/title/journal, only ``raw_text`` is set.
    """
    reference_number: int
    text: str
    block: str = ""
    authors: str | None = None
    title: str | None = None
    journal: str | None = None
    year: str | None = None
    doi: str | None = None
    url: str | None = None
    raw_text: str | None = None

    @property
    def is_structured(self) -> bool:
        return self.raw_text is None

    def to_dict(self) -> dict[str, Any]:
        """Shape handed to the persistence collaborator."""
        data: dict[str, Any] = {
            "reference_number": self.reference_number,
            "text": self.text,
        }
        for name in ("authors", "title", "journal", "year", "doi", "url", "raw_text"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass
class AnswerResult:
    """
    Final output of the answer pipeline.

    answer is the clean answer text; every [n] marker still in it has a
    matching entry in citations.

    passages is the retrieved set in similarity order. sources maps each
    [n] anchor shown to the model to its passage, in context order;
    anchors dropped for the context budget are absent.
    """
    query: str
    answer: str
    citations: list[ExtractedCitation]
    passages: PassageSet
    metadata: dict = field(default_factory=dict)
    sources: dict[int, RetrievedPassage] = field(default_factory=dict)

    def source_for(self, reference_number: int) -> RetrievedPassage | None:
        """Passage the model saw under [reference_number], if any."""
        return self.sources.get(reference_number)
