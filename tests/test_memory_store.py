"""Tests for the in-memory passage store."""

import numpy as np
import pytest

from conftest import FakeEmbedder, basis_vector
from medcite.retrieval.retriever import VectorRetriever
from medcite.vectorstore.client import PassageRecord
from medcite.vectorstore.memory import InMemoryPassageStore, cosine_similarity


@pytest.fixture
def store():
    store = InMemoryPassageStore()
    store.upsert(PassageRecord("a", "alpha", {"title": "A"}, specialty_id="cardio"), basis_vector(0))
    store.upsert(PassageRecord("b", "beta", {}, specialty_id="endo"), basis_vector(0) + 0.5 * basis_vector(1))
    store.upsert(PassageRecord("c", "gamma", {}, specialty_id="cardio"), basis_vector(2))
    return store


def test_cosine_similarity():
    assert cosine_similarity(basis_vector(0), basis_vector(0)) == pytest.approx(1.0)
    assert cosine_similarity(basis_vector(0), basis_vector(1)) == pytest.approx(0.0)
    assert cosine_similarity(np.zeros(3), np.ones(3)) == 0.0


def test_search_sorted_and_thresholded(store):
    rows = store.similarity_search(basis_vector(0), threshold=0.5)

    assert [r["id"] for r in rows] == ["a", "b"]
    assert rows[0]["similarity"] == pytest.approx(1.0)
    assert rows[1]["similarity"] == pytest.approx(1 / np.sqrt(1.25))
    assert rows[0]["metadata"] == {"title": "A"}


def test_search_limit(store):
    assert len(store.similarity_search(basis_vector(0), threshold=0.0, limit=1)) == 1


def test_specialty_filter(store):
    rows = store.similarity_search(basis_vector(0), specialty_filter="endo", threshold=0.5)

    assert [r["id"] for r in rows] == ["b"]


def test_upsert_replaces(store):
    store.upsert(PassageRecord("a", "alpha v2"), basis_vector(3))

    assert len(store) == 3
    assert store.similarity_search(basis_vector(3))[0]["content"] == "alpha v2"


def test_index_passages_skips_embedding_failures():
    store = InMemoryPassageStore()
    embedder = FakeEmbedder(slots={"one": 1}, fail_on={"broken"})

    indexed = store.index_passages(
        [PassageRecord("1", "one"), PassageRecord("2", "broken")],
        embedder,
    )

    assert indexed == 1
    assert store.get_stats()["count"] == 1


def test_works_behind_retriever(store):
    result = VectorRetriever(store).retrieve(basis_vector(0), threshold=0.9)

    assert result.ids == ["a"]
