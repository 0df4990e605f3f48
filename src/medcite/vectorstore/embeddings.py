"""
Text embeddings for similarity search.

One backend: OpenAI text-embedding-3-small, which produces the
1536-dimension vectors the passage index was built with. The SDK client
is passed in (or built from settings) so callers own its lifecycle.

Usage:
    from medcite.vectorstore.embeddings import EmbeddingClient

    embedder = EmbeddingClient.from_settings()

    vector = embedder.embed("first-line treatment for hypertension")
    if is_failure(vector):
        ...
"""

from typing import Any, Protocol, runtime_checkable

import numpy as np

from medcite.config import Settings, get_settings
from medcite.errors import Failure
from medcite.logging import get_logger
from medcite.models import EmbeddingVector

logger = get_logger(__name__, component="embeddings")

# Model dimensions
MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns a single text into an embedding vector."""

    def embed(self, text: str) -> EmbeddingVector | Failure:
        ...


def to_embedding_vector(values: Any, dimension: int) -> EmbeddingVector:
    """
    Convert raw floats to a read-only vector of the expected length.

    Raises ValueError on a dimension mismatch.
    """
    vector = np.asarray(values, dtype=np.float64).reshape(-1)
    if vector.shape != (dimension,):
        raise ValueError(f"expected {dimension}-d embedding, got {vector.shape[0]}-d")
    vector.setflags(write=False)
    return vector


class EmbeddingClient:
    """
    OpenAI embeddings for queries.

    Returns a Failure instead of raising when the API call fails or
    the returned vector has the wrong dimension.

    Example:
        embedder = EmbeddingClient(client=OpenAI(api_key=...))
        vector = embedder.embed("beta blockers after myocardial infarction")
    """

    def __init__(
            self,
            client: Any,
            model_name: str = "text-embedding-3-small",
            dimension: int | None = None,
    ):
        """
        Initialize the embedding client.

        Args:
            client: An ``openai.OpenAI`` instance (or anything with the
                    same ``embeddings.create`` call)
            model_name: OpenAI embedding model to use
            dimension: Expected vector length. Defaults to the model's
                       known dimension, 1536 if unknown.
        """
        self.client = client
        self.model_name = model_name
        self.dimension = dimension or MODEL_DIMENSIONS.get(model_name, 1536)

        logger.info("embedding_client_initialized", model=model_name, dimension=self.dimension)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "EmbeddingClient":
        """Build an OpenAI-backed client from application settings."""
        from openai import OpenAI

        settings = settings or get_settings()
        if not settings.openai_api_key:
            raise ValueError(
                "OPENAI_API_KEY not set. Add it to your .env file."
            )

        client = OpenAI(
            api_key=settings.openai_api_key.get_secret_value(),
            timeout=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
        )
        return cls(
            client=client,
            model_name=settings.embedding_model,
            dimension=settings.embedding_dimension,
        )

    def embed(self, text: str) -> EmbeddingVector | Failure:
        """Embed a single text."""
        try:
            response = self.client.embeddings.create(
                model=self.model_name,
                input=text,
            )
            vector = to_embedding_vector(response.data[0].embedding, self.dimension)
        except Exception as e:
            logger.warning("embedding_failed", model=self.model_name, error=str(e))
            return Failure.retrieval(f"embedding failed: {e}", stage="embedding")

        logger.debug("embedding_complete", chars=len(text))
        return vector
