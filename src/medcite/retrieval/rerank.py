"""
Merging and lexical re-ranking of retrieved passages.

Problem: dual retrieval returns two ranked sets that overlap, and vector
similarity alone misses obvious lexical signals.

Strategy:
1. Merge: union the sets by id, first set wins on duplicates, then sort
   by similarity (ties keep retrieval order)
2. Enhance: add a small lexical/recency boost on top of similarity and
   re-sort by the boosted score

The boost never rewrites a passage's similarity; it only changes order.

Boosts:
    +0.20  the whole lower-cased query appears in the content
    +0.05  per query term (longer than 3 chars) found in the content
    +0.10  metadata year within the last two years
    capped at 1.0

Usage:
    from medcite.retrieval.rerank import merge, enhance

    merged = merge(term_set, message_set)
    ranked = enhance(merged, sanitized_message)
"""

import datetime
import re
from collections.abc import Iterable

from medcite.logging import get_logger
from medcite.models import PassageSet, RetrievedPassage

logger = get_logger(__name__, component="rerank")

PHRASE_BOOST = 0.2
TERM_BOOST = 0.05
RECENCY_BOOST = 0.1
RECENCY_YEARS = 2
MIN_TERM_LENGTH = 4

NON_WORD = re.compile(r"[^\w]")
YEAR = re.compile(r"\d{4}")


def merge(*sets: Iterable[RetrievedPassage]) -> PassageSet:
    """
    Merge passage sets into one, deduplicated by id.

    When the same id appears in more than one set, the entry from the
    earliest set in argument order is kept.

    Example:
        merge(PassageSet[A:0.9, C:0.75], PassageSet[B:0.8, A:0.9])
        -> [A:0.9, B:0.8, C:0.75]
    """
    combined = [passage for passage_set in sets for passage in passage_set]
    merged = PassageSet.from_passages(combined)

    logger.debug("merge_complete", inputs=len(sets), candidates=len(combined), merged=len(merged))

    return merged


def query_terms(query: str) -> list[str]:
    """Lower-cased query words longer than 3 chars, non-word chars stripped."""
    terms = []
    for word in query.lower().split():
        if len(word) < MIN_TERM_LENGTH:
            continue
        term = NON_WORD.sub("", word)
        if term:
            terms.append(term)
    return terms


def _publication_year(passage: RetrievedPassage) -> int | None:
    value = passage.metadata.get("year")
    if value is None:
        return None
    match = YEAR.search(str(value))
    return int(match.group(0)) if match else None


def boosted_score(
        passage: RetrievedPassage,
        query: str,
        current_year: int | None = None,
) -> float:
    """Similarity plus lexical and recency boosts, capped at 1.0."""
    if current_year is None:
        current_year = datetime.date.today().year

    lower_query = query.lower().strip()
    lower_content = passage.content.lower()

    score = passage.similarity

    if lower_query and lower_query in lower_content:
        score += PHRASE_BOOST

    for term in query_terms(query):
        if term in lower_content:
            score += TERM_BOOST

    year = _publication_year(passage)
    if year is not None and year >= current_year - RECENCY_YEARS:
        score += RECENCY_BOOST

    return min(score, 1.0)


def enhance(
        passages: Iterable[RetrievedPassage],
        query: str,
        current_year: int | None = None,
) -> list[RetrievedPassage]:
    """
    Re-rank passages by boosted score.

    Input is first put in similarity order so passages that tie on the
    boosted score (e.g. both capped at 1.0) stay in similarity order.
    Passages are returned unchanged.

    Args:
        passages: Passages to re-rank
        query: The sanitized user message
        current_year: Reference year for the recency boost (defaults to today)

    Returns:
        The same passages, re-ordered
    """
    ordered = sorted(passages, key=lambda p: p.similarity, reverse=True)
    if not ordered:
        return []

    scored = [(boosted_score(p, query, current_year), p) for p in ordered]
    scored.sort(key=lambda item: item[0], reverse=True)

    logger.debug(
        "enhance_complete",
        count=len(scored),
        top_score=round(scored[0][0], 3),
    )

    return [passage for _, passage in scored]
