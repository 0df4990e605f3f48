"""Tests for vector retrieval."""

import numpy as np

from conftest import FakeEmbedder, FakeVectorStore, basis_vector, row
from medcite.errors import RetrievalFailure, is_failure
from medcite.retrieval.retriever import VectorRetriever, to_passage

UNFILTERED_ROWS = [
    row("a", 0.95),
    row("b", 0.50),
    row("c", 0.71),
    row("d", 0.70),
    row("e", 0.69),
    row("f", 0.99),
    row("g", 0.80),
    row("h", 0.75),
    row("i", 0.90),
]


def test_never_more_than_limit_and_never_below_threshold():
    retriever = VectorRetriever(FakeVectorStore({0: UNFILTERED_ROWS}))

    result = retriever.retrieve(basis_vector(0), threshold=0.7, limit=5)

    assert len(result) == 5
    assert all(p.similarity >= 0.7 for p in result)
    assert result.ids == ["f", "a", "i", "g", "h"]


def test_results_sorted_descending():
    retriever = VectorRetriever(FakeVectorStore({0: UNFILTERED_ROWS}))

    result = retriever.retrieve(basis_vector(0), threshold=0.6, limit=20)
    similarities = [p.similarity for p in result]

    assert similarities == sorted(similarities, reverse=True)
    assert "b" not in result.ids


def test_duplicate_ids_first_wins():
    store = FakeVectorStore({0: [row("a", 0.8, content="first"), row("a", 0.9, content="second")]})

    result = VectorRetriever(store).retrieve(basis_vector(0))

    assert len(result) == 1
    assert result[0].content == "first"


def test_malformed_rows_dropped():
    rows = [
        row("ok", 0.9),
        {"id": None, "content": "no id", "similarity": 0.9},
        {"id": "no-content", "content": "", "similarity": 0.9},
        {"id": "nan", "content": "x", "similarity": float("nan")},
        {"id": "text-score", "content": "x", "similarity": "high"},
        "not a dict",
    ]

    result = VectorRetriever(FakeVectorStore({0: rows})).retrieve(basis_vector(0))

    assert result.ids == ["ok"]


def test_similarity_clamped():
    result = VectorRetriever(FakeVectorStore({0: [row("a", 1.3)]})).retrieve(basis_vector(0))

    assert result[0].similarity == 1.0


def test_passes_filter_threshold_and_limit_to_store():
    store = FakeVectorStore()

    VectorRetriever(store).retrieve(basis_vector(0), specialty_filter="cardio", threshold=0.8, limit=2)

    assert store.calls == [{"slot": 0, "specialty_filter": "cardio", "threshold": 0.8, "limit": 2}]


def test_store_exception_becomes_failure():
    store = FakeVectorStore({0: ConnectionError("weaviate down")})

    result = VectorRetriever(store).retrieve(basis_vector(0))

    assert is_failure(result)
    assert isinstance(result.error, RetrievalFailure)
    assert result.error.stage == "vector_search"
    assert "weaviate down" in result.reason


def test_empty_store_result():
    result = VectorRetriever(FakeVectorStore()).retrieve(basis_vector(0))

    assert not is_failure(result)
    assert len(result) == 0


def test_retrieve_text_embeds_then_searches():
    embedder = FakeEmbedder({"asthma": 3})
    store = FakeVectorStore({3: [row("asthma-1", 0.9)]})

    result = VectorRetriever(store, embedder).retrieve_text("asthma")

    assert embedder.calls == ["asthma"]
    assert result.ids == ["asthma-1"]


def test_retrieve_text_returns_embedding_failure_unchanged():
    embedder = FakeEmbedder(fail_on={"asthma"})
    store = FakeVectorStore()

    result = VectorRetriever(store, embedder).retrieve_text("asthma")

    assert is_failure(result)
    assert result.error.stage == "embedding"
    assert store.calls == []


def test_to_passage_keeps_metadata():
    p = to_passage(row("a", np.float64(0.75), title="T"))

    assert p.metadata == {"title": "T"}
    assert p.similarity == 0.75
