"""Tests for merging and lexical re-ranking."""

import pytest

from conftest import passage
from medcite.models import PassageSet
from medcite.retrieval.rerank import boosted_score, enhance, merge, query_terms


class TestMerge:

    def test_dual_query_merge(self):
        term_results = PassageSet.from_passages([passage("A", 0.9), passage("B", 0.8)])
        message_results = PassageSet.from_passages([passage("B", 0.85), passage("C", 0.75)])

        merged = merge(term_results, message_results)

        assert [(p.id, p.similarity) for p in merged] == [("A", 0.9), ("B", 0.8), ("C", 0.75)]

    def test_first_set_wins_on_duplicates(self):
        first = PassageSet.from_passages([passage("A", 0.7, content="from first")])
        second = PassageSet.from_passages([passage("A", 0.9, content="from second")])

        merged = merge(first, second)

        assert len(merged) == 1
        assert merged[0].content == "from first"

    def test_ties_keep_retrieval_order(self):
        first = PassageSet.from_passages([passage("x", 0.8)])
        second = PassageSet.from_passages([passage("y", 0.8)])

        assert merge(first, second).ids == ["x", "y"]
        assert merge(second, first).ids == ["y", "x"]

    def test_no_duplicates_and_sorted(self):
        sets = [
            PassageSet.from_passages([passage(str(i), (i % 7) / 10 + 0.3) for i in range(start, start + 6)])
            for start in (0, 3, 5)
        ]

        merged = merge(*sets)
        similarities = [p.similarity for p in merged]

        assert len(merged.ids) == len(set(merged.ids))
        assert similarities == sorted(similarities, reverse=True)

    def test_merge_nothing(self):
        assert len(merge()) == 0
        assert len(merge(PassageSet.empty(), PassageSet.empty())) == 0


class TestEnhance:

    def test_query_terms(self):
        assert query_terms("Is (hypertension) treatable in CKD") == ["hypertension", "treatable"]

    def test_phrase_boost(self):
        p = passage("a", 0.5, content="Thiazide diuretics lower blood pressure.")

        assert boosted_score(p, "blood pressure", current_year=2026) == pytest.approx(0.8)

    def test_recency_boost(self):
        recent = passage("a", 0.5, year="2024")
        old = passage("b", 0.5, year="2015")

        assert boosted_score(recent, "zzz", current_year=2026) == pytest.approx(0.6)
        assert boosted_score(old, "zzz", current_year=2026) == 0.5

    def test_unparseable_year_ignored(self):
        assert boosted_score(passage("a", 0.5, year="n.d."), "zzz", current_year=2026) == 0.5

    def test_score_capped(self):
        p = passage("a", 0.95, content="asthma asthma", year="2026")

        assert boosted_score(p, "asthma", current_year=2026) == 1.0

    def test_lexical_match_reorders(self):
        lexical = passage("lexical", 0.72, content="Inhaled corticosteroids for asthma control.")
        vector_only = passage("vector", 0.80, content="Unrelated cardiology content.")

        ranked = enhance([vector_only, lexical], "asthma control", current_year=2026)

        assert [p.id for p in ranked] == ["lexical", "vector"]

    def test_similarity_not_rewritten(self):
        p = passage("a", 0.72, content="asthma control")

        assert enhance([p], "asthma control", current_year=2026)[0].similarity == 0.72

    def test_monotonic_for_equal_boost(self):
        passages = [passage("low", 0.71, year="2025"), passage("high", 0.9, year="2025")]

        assert [p.id for p in enhance(passages, "zzz", current_year=2026)] == ["high", "low"]

    def test_capped_ties_stay_in_similarity_order(self):
        passages = [
            passage("second", 0.9, content="asthma", year="2026"),
            passage("first", 0.95, content="asthma", year="2026"),
        ]

        ranked = enhance(passages, "asthma", current_year=2026)

        assert [p.id for p in ranked] == ["first", "second"]

    def test_empty(self):
        assert enhance(PassageSet.empty(), "asthma") == []
