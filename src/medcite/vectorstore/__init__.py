"""Vector storage: embeddings, Weaviate schema and passage stores."""

from medcite.vectorstore.client import (
    PassageRecord,
    VectorStore,
    WeaviatePassageStore,
    load_passages_from_jsonl,
)
from medcite.vectorstore.embeddings import Embedder, EmbeddingClient
from medcite.vectorstore.memory import InMemoryPassageStore

__all__ = [
    "Embedder",
    "EmbeddingClient",
    "InMemoryPassageStore",
    "PassageRecord",
    "VectorStore",
    "WeaviatePassageStore",
    "load_passages_from_jsonl",
]
