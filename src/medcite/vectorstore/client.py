"""
Weaviate client for reference passage storage and similarity search.

This module provides:
- The vector-store contract the retriever depends on
- Passage records and JSONL loading for indexing
- A Weaviate adapter (batch indexing, near-vector search, specialty filter)

Usage:
    from medcite.vectorstore.client import WeaviatePassageStore

    with WeaviatePassageStore.from_settings() as store:
        store.index_passages(records, embedder)
        rows = store.similarity_search(vector, threshold=0.7, limit=5)
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import weaviate
from weaviate.classes.query import Filter, MetadataQuery
from weaviate.util import generate_uuid5

from medcite.config import Settings, get_settings
from medcite.errors import is_failure
from medcite.logging import get_logger
from medcite.models import CITATION_FIELDS, EmbeddingVector
from medcite.vectorstore.embeddings import Embedder
from medcite.vectorstore.schema import COLLECTION_NAME, create_schema, get_collection_stats

logger = get_logger(__name__, component="vectorstore")


@runtime_checkable
class VectorStore(Protocol):
    """
    Similarity-search collaborator.

    Returns raw rows shaped {"id", "content", "metadata", "similarity"}
    and raises on backend errors; the retriever maps those to Failures
    and re-validates every row.
    """

    def similarity_search(
            self,
            vector: EmbeddingVector,
            specialty_filter: str | None = None,
            threshold: float = 0.7,
            limit: int = 5,
    ) -> list[dict[str, Any]]:
        ...


@dataclass
class PassageRecord:
    """A reference passage ready for indexing."""
    id: str
    content: str
    metadata: dict = field(default_factory=dict)
    specialty_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PassageRecord":
        return cls(
            id=str(data["id"]),
            content=data["content"],
            metadata=dict(data.get("metadata") or {}),
            specialty_id=data.get("specialty_id"),
        )


def load_passages_from_jsonl(path: str | Path) -> list[PassageRecord]:
    """Load passage records, one JSON object per line. Blank lines are skipped."""
    records = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(PassageRecord.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                raise ValueError(f"{path}:{line_number}: invalid passage record: {e}") from e

    logger.info("passages_loaded", path=str(path), count=len(records))
    return records


class WeaviatePassageStore:
    """
    Vector store for reference passages backed by Weaviate.

    The Weaviate client is passed in; ``from_settings`` connects to the
    configured local instance. The store only closes a client it opened.

    Example:
        with WeaviatePassageStore.from_settings() as store:
            rows = store.similarity_search(vector, specialty_filter="cardiology")
    """

    def __init__(self, client: weaviate.WeaviateClient, owns_client: bool = False):
        self.client = client
        self._owns_client = owns_client

        create_schema(self.client)
        self.collection = self.client.collections.get(COLLECTION_NAME)

        logger.info("vectorstore_initialized", collection=COLLECTION_NAME)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "WeaviatePassageStore":
        settings = settings or get_settings()
        auth = None
        if settings.weaviate_api_key:
            from weaviate.classes.init import Auth
            auth = Auth.api_key(settings.weaviate_api_key)

        client = weaviate.connect_to_local(
            host=settings.weaviate_host,
            port=settings.weaviate_port,
            auth_credentials=auth,
        )
        return cls(client, owns_client=True)

    def close(self) -> None:
        """Close the Weaviate connection if this store opened it."""
        if self._owns_client:
            self.client.close()
            logger.debug("vectorstore_closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def get_stats(self) -> dict:
        """Get collection statistics."""
        return get_collection_stats(self.client)

    def index_passages(self, records: list[PassageRecord], embedder: Embedder) -> int:
        """
        Embed and batch-insert passages.

        Object UUIDs derive from the passage id, so re-indexing the same
        passage overwrites it instead of duplicating it.

        Returns:
            Number of passages successfully indexed
        """
        if not records:
            logger.warning("no_passages_to_index")
            return 0

        logger.info("indexing_start", total=len(records))

        indexed_count = 0
        failed_count = 0

        with self.collection.batch.dynamic() as batch:
            for record in records:
                vector = embedder.embed(record.content)
                if is_failure(vector):
                    logger.warning("index_passage_failed", passage_id=record.id, error=vector.reason)
                    failed_count += 1
                    continue

                properties = {
                    "passage_id": record.id,
                    "content": record.content,
                    "specialty_id": record.specialty_id or "",
                }
                for name in CITATION_FIELDS:
                    value = record.metadata.get(name)
                    properties[name] = str(value) if value is not None else ""

                batch.add_object(
                    properties=properties,
                    vector=vector.tolist(),
                    uuid=generate_uuid5(record.id),
                )
                indexed_count += 1

        logger.info("indexing_complete", indexed=indexed_count, failed=failed_count)

        return indexed_count

    def similarity_search(
            self,
            vector: EmbeddingVector,
            specialty_filter: str | None = None,
            threshold: float = 0.7,
            limit: int = 5,
    ) -> list[dict[str, Any]]:
        """
        Cosine near-vector search.

        The distance cut-off is derived from the threshold so Weaviate
        does the first round of filtering.
        """
        filters = None
        if specialty_filter:
            filters = Filter.by_property("specialty_id").equal(specialty_filter)

        results = self.collection.query.near_vector(
            near_vector=[float(x) for x in vector],
            distance=1.0 - threshold,
            limit=limit,
            filters=filters,
            return_metadata=MetadataQuery(distance=True),
        )

        rows = []
        for obj in results.objects:
            props = obj.properties
            distance = obj.metadata.distance if obj.metadata else None
            rows.append({
                "id": props.get("passage_id"),
                "content": props.get("content"),
                "metadata": {
                    name: props.get(name)
                    for name in CITATION_FIELDS
                    if props.get(name)
                },
                "similarity": None if distance is None else 1.0 - distance,
            })

        logger.debug("similarity_search_complete", results=len(rows))

        return rows

    def delete_all(self) -> None:
        """
        Delete all passages from the collection.

        Use for testing or resetting the database.
        """
        from medcite.vectorstore.schema import delete_schema

        delete_schema(self.client)
        create_schema(self.client)
        self.collection = self.client.collections.get(COLLECTION_NAME)

        logger.info("collection_reset", name=COLLECTION_NAME)
