"""In-memory passage store with cosine similarity, for tests and local prototyping."""

from dataclasses import dataclass
from typing import Any

import numpy as np

from medcite.errors import is_failure
from medcite.logging import get_logger
from medcite.models import EmbeddingVector
from medcite.vectorstore.client import PassageRecord
from medcite.vectorstore.embeddings import Embedder

logger = get_logger(__name__, component="memory_store")


@dataclass(slots=True)
class _StoredPassage:
    record: PassageRecord
    vector: np.ndarray


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


class InMemoryPassageStore:
    """
    Deterministic vector store with the same search contract as Weaviate.

    Ties are broken by insertion order.
    """

    def __init__(self) -> None:
        self._store: dict[str, _StoredPassage] = {}

    def __len__(self) -> int:
        return len(self._store)

    def upsert(self, record: PassageRecord, vector: Any) -> None:
        self._store[record.id] = _StoredPassage(
            record=record,
            vector=np.asarray(vector, dtype=np.float64).reshape(-1),
        )

    def index_passages(self, records: list[PassageRecord], embedder: Embedder) -> int:
        indexed = 0
        for record in records:
            vector = embedder.embed(record.content)
            if is_failure(vector):
                logger.warning("index_passage_failed", passage_id=record.id, error=vector.reason)
                continue
            self.upsert(record, vector)
            indexed += 1
        return indexed

    def similarity_search(
            self,
            vector: EmbeddingVector,
            specialty_filter: str | None = None,
            threshold: float = 0.7,
            limit: int = 5,
    ) -> list[dict[str, Any]]:
        query = np.asarray(vector, dtype=np.float64).reshape(-1)

        scored = []
        for stored in self._store.values():
            if specialty_filter and stored.record.specialty_id != specialty_filter:
                continue
            similarity = cosine_similarity(query, stored.vector)
            if similarity >= threshold:
                scored.append((similarity, stored.record))

        scored.sort(key=lambda item: item[0], reverse=True)

        return [
            {
                "id": record.id,
                "content": record.content,
                "metadata": dict(record.metadata),
                "similarity": similarity,
            }
            for similarity, record in scored[:limit]
        ]

    def get_stats(self) -> dict:
        return {"exists": True, "count": len(self._store), "name": "in-memory"}
