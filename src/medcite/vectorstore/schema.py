"""
Weaviate schema for medical reference passages.

The schema defines:
- Collection name and description
- Properties (fields) and their types
- Which properties are searchable (tokenized)
- Vector configuration

Key design decisions:
1. We provide our own vectors (no built-in vectorizer)
2. Cosine distance, so similarity = 1 - distance lands in [0, 1]
   for the normalized OpenAI embeddings
3. passage_id and specialty_id use "field" tokenization for exact filtering
4. Bibliographic fields are stored as free text, exactly as cited

Usage:
    from medcite.vectorstore.schema import create_schema, delete_schema

    create_schema(client)  # Create the collection
    delete_schema(client)  # Delete (for reset)
"""

import weaviate
from weaviate.classes.config import Configure, DataType, Property, Tokenization, VectorDistances

from medcite.logging import get_logger

logger = get_logger(__name__, component="schema")

# Collection name in Weaviate
COLLECTION_NAME = "MedicalPassage"


def get_schema_properties() -> list[Property]:
    """
    Define the properties (fields) for reference passages.

    Tokenization options:
    - WORD: Split on whitespace/punctuation (for keyword search)
    - FIELD: No splitting (for exact match/filtering)
    """
    return [
        # Stable identity used for deduplication across queries
        Property(
            name="passage_id",
            data_type=DataType.TEXT,
            description="Stable passage identifier",
            tokenization=Tokenization.FIELD,
        ),

        # Main content - this is what we embed and search
        Property(
            name="content",
            data_type=DataType.TEXT,
            description="Passage text shown to the model",
            tokenization=Tokenization.WORD,
        ),

        # Bibliographic metadata rendered into CITATION lines
        Property(
            name="title",
            data_type=DataType.TEXT,
            description="Title of the source work",
            tokenization=Tokenization.WORD,
        ),
        Property(
            name="authors",
            data_type=DataType.TEXT,
            description="Authors as they should be cited",
            tokenization=Tokenization.WORD,
        ),
        Property(
            name="journal",
            data_type=DataType.TEXT,
            description="Journal or publisher",
            tokenization=Tokenization.WORD,
        ),
        Property(
            name="year",
            data_type=DataType.TEXT,
            description="Publication year",
            tokenization=Tokenization.FIELD,
        ),

        # Opaque specialty identifier for filtering
        Property(
            name="specialty_id",
            data_type=DataType.TEXT,
            description="Medical specialty the passage belongs to",
            tokenization=Tokenization.FIELD,
        ),
    ]


def create_schema(client: weaviate.WeaviateClient, delete_existing: bool = False) -> None:
    """
    Create the MedicalPassage collection in Weaviate.

    Args:
        client: Connected Weaviate client
        delete_existing: If True, delete existing collection first
    """
    if client.collections.exists(COLLECTION_NAME):
        if delete_existing:
            logger.warning("deleting_existing_collection", name=COLLECTION_NAME)
            client.collections.delete(COLLECTION_NAME)
        else:
            logger.info("collection_exists", name=COLLECTION_NAME)
            return

    client.collections.create(
        name=COLLECTION_NAME,
        description="Medical reference passages for cited answers",
        properties=get_schema_properties(),
        vectorizer_config=Configure.Vectorizer.none(),
        vector_index_config=Configure.VectorIndex.hnsw(
            distance_metric=VectorDistances.COSINE,
        ),
    )

    logger.info("collection_created", name=COLLECTION_NAME)


def delete_schema(client: weaviate.WeaviateClient) -> None:
    """
    Delete the MedicalPassage collection.

    Use this to reset the database during development.
    """
    if client.collections.exists(COLLECTION_NAME):
        client.collections.delete(COLLECTION_NAME)
        logger.info("collection_deleted", name=COLLECTION_NAME)
    else:
        logger.info("collection_not_found", name=COLLECTION_NAME)


def get_collection_stats(client: weaviate.WeaviateClient) -> dict:
    """
    Get statistics about the collection.

    Returns:
        Dict with count and other stats
    """
    if not client.collections.exists(COLLECTION_NAME):
        return {"exists": False, "count": 0}

    collection = client.collections.get(COLLECTION_NAME)
    result = collection.aggregate.over_all(total_count=True)

    return {
        "exists": True,
        "count": result.total_count,
        "name": COLLECTION_NAME,
    }
