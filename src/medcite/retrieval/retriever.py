"""
Vector retrieval over reference passages.

The vector store is trusted for speed, not for correctness: every row it
returns is re-validated here before it becomes a ``RetrievedPassage``.

Guarantees of a returned PassageSet:
- Every similarity is >= the requested threshold and within [0, 1]
- Ids are unique (first occurrence wins)
- Ordered by descending similarity, ties in store order
- At most ``limit`` passages

Usage:
    from medcite.retrieval.retriever import VectorRetriever

    retriever = VectorRetriever(store, embedder)
    passages = retriever.retrieve_text("statins in diabetes", threshold=0.7, limit=5)
"""

import math
from typing import Any

from medcite.errors import Failure, is_failure
from medcite.logging import get_logger
from medcite.models import EmbeddingVector, PassageSet, RetrievedPassage
from medcite.vectorstore.client import VectorStore
from medcite.vectorstore.embeddings import Embedder

logger = get_logger(__name__, component="retriever")


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def to_passage(row: Any) -> RetrievedPassage | None:
    """
    Validate one raw store row.

    Returns None for rows missing an id or content, or carrying a
    non-numeric similarity.
    """
    if not isinstance(row, dict):
        return None

    passage_id = row.get("id")
    content = row.get("content")
    if passage_id is None or passage_id == "" or not isinstance(content, str) or not content:
        return None

    similarity = row.get("similarity")
    if isinstance(similarity, bool) or not isinstance(similarity, (int, float)):
        return None
    if math.isnan(similarity):
        return None

    metadata = row.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}

    return RetrievedPassage(
        id=str(passage_id),
        content=content,
        metadata=dict(metadata),
        similarity=_clamp(float(similarity)),
    )


class VectorRetriever:
    """
    Retrieve ranked passages for a query vector.

    Example:
        retriever = VectorRetriever(WeaviatePassageStore.from_settings(), embedder)

        result = retriever.retrieve(vector, specialty_filter="cardiology")
        if is_failure(result):
            ...
    """

    def __init__(self, store: VectorStore, embedder: Embedder | None = None):
        """
        Args:
            store: Similarity-search collaborator
            embedder: Needed only for ``retrieve_text``
        """
        self.store = store
        self.embedder = embedder

    def retrieve(
            self,
            query_vector: EmbeddingVector,
            specialty_filter: str | None = None,
            threshold: float = 0.7,
            limit: int = 5,
    ) -> PassageSet | Failure:
        """
        Run one similarity search and normalize the rows.

        Store exceptions become ``Failure(RetrievalFailure)``.
        """
        logger.debug("retrieval_start", threshold=threshold, limit=limit, specialty=specialty_filter)

        try:
            rows = self.store.similarity_search(
                query_vector,
                specialty_filter=specialty_filter,
                threshold=threshold,
                limit=limit,
            )
        except Exception as e:
            logger.warning("vector_search_failed", error=str(e))
            return Failure.retrieval(f"vector search failed: {e}", stage="vector_search")

        passages = []
        dropped = 0
        for row in rows or []:
            passage = to_passage(row)
            if passage is None:
                dropped += 1
                continue
            passages.append(passage)

        if dropped:
            logger.warning("malformed_rows_dropped", count=dropped)

        result = PassageSet.from_passages(passages, threshold=threshold, limit=limit)

        logger.debug("retrieval_complete", returned=len(rows or []), kept=len(result))

        return result

    def retrieve_text(
            self,
            text: str,
            specialty_filter: str | None = None,
            threshold: float = 0.7,
            limit: int = 5,
    ) -> PassageSet | Failure:
        """Embed ``text`` and retrieve. An embedding Failure is returned unchanged."""
        if self.embedder is None:
            raise ValueError("retrieve_text requires an embedder")

        vector = self.embedder.embed(text)
        if is_failure(vector):
            return vector

        return self.retrieve(
            vector,
            specialty_filter=specialty_filter,
            threshold=threshold,
            limit=limit,
        )
