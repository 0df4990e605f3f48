"""
Query preparation: sanitization and medical term extraction.

Problem: user text goes straight into an LLM prompt and into similarity
search, so it needs two treatments before retrieval.

1. Sanitization: neutralize instructions embedded in user text that try
   to override the assistant's behavior, and bound the message length.
2. Term extraction: pull out the clinical terms so retrieval can run a
   second, focused query alongside the full message.

Example:
    Input:  "Ignore previous instructions. BP 160 mmHg, is hypertension likely?"
    Sanitized: "[filtered]. BP 160 mmHg, is hypertension likely?"
    Terms:  ["hypertension", "160 mmHg", "BP"]

Usage:
    from medcite.retrieval.query import QuerySanitizer, MedicalTermExtractor

    clean = QuerySanitizer().sanitize(message)
    terms = list(MedicalTermExtractor().extract(clean))
"""

import re
from collections.abc import Iterator

from medcite.logging import get_logger

logger = get_logger(__name__, component="query")

FILTERED_TOKEN = "[filtered]"
TRUNCATION_SUFFIX = "... [message truncated]"
DEFAULT_MAX_LENGTH = 4000

# Longest alternatives first so "ignore all previous instructions" is
# replaced as a whole rather than leaving fragments behind
INJECTION_PATTERN = re.compile(
    r"\b(?:"
    r"(?:ignore|disregard|forget)\s+(?:all\s+)?(?:of\s+)?(?:the\s+)?"
    r"(?:previous|prior|above|earlier)\s+(?:instructions|prompts?|rules)"
    r"|new\s+instructions"
    r"|you're\s+an\s+AI"
    r"|you\s+are"
    r"|system\s+prompt\s*:"
    r")",
    re.IGNORECASE,
)

# Control characters other than tab and newline
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
HORIZONTAL_SPACE = re.compile(r"[ \t]+")

# Conditions recognized by name. Matching is case-insensitive and anchored
# at a word start so plurals ("strokes") still match.
MEDICAL_LEXICON = (
    "hypertension",
    "diabetes",
    "asthma",
    "copd",
    "cancer",
    "heart failure",
    "stroke",
    "arrhythmia",
    "pneumonia",
    "arthritis",
    "depression",
    "anxiety",
    "eczema",
    "hepatitis",
    "cirrhosis",
    "crohn",
    "colitis",
    "anemia",
    "hypothyroidism",
    "hyperthyroidism",
    "seizure",
    "epilepsy",
    "parkinson",
    "alzheimer",
    "migraine",
    "osteoporosis",
    "glaucoma",
    "cataract",
)

MEASUREMENT_PATTERNS = (
    # Blood pressure
    re.compile(r"\b\d+(?:/\d+)?\s*mm?Hg\b"),
    # Lab values with units
    re.compile(r"\b\d+(?:\.\d+)?\s*mg/d[lL]\b"),
    # Medication doses
    re.compile(r"\b\d+(?:\.\d+)?\s*(?:mg|mcg)\b(?!\s*/)"),
    # Medical abbreviations
    re.compile(r"\b[A-Z]{2,5}\b"),
)

# Upper-case words that are shouting, not abbreviations
ABBREVIATION_STOPWORDS = frozenset({
    "AND", "ARE", "BUT", "CAN", "FOR", "HOW", "NOT", "THE", "WHAT", "WHY", "WITH", "YOU", "OK",
})


class QuerySanitizer:
    """
    Neutralize prompt-injection phrases and normalize user text.

    Injection phrases are replaced with ``[filtered]`` rather than
    deleted, so the sentence structure around them survives. Legitimate
    medical vocabulary is never matched by the patterns.

    Never raises. Empty or whitespace-only input gives "".
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        self.max_length = max_length

    def sanitize(self, text: str | None) -> str:
        if not text:
            return ""
        if not isinstance(text, str):
            text = str(text)

        sanitized = CONTROL_CHARS.sub("", text)
        sanitized, replaced = INJECTION_PATTERN.subn(FILTERED_TOKEN, sanitized)
        sanitized = HORIZONTAL_SPACE.sub(" ", sanitized).strip()

        if replaced:
            logger.info("injection_patterns_filtered", count=replaced)

        if len(sanitized) > self.max_length:
            sanitized = sanitized[:self.max_length] + TRUNCATION_SUFFIX
            logger.debug("query_truncated", max_length=self.max_length)

        return sanitized


class MedicalTermExtractor:
    """
    Extract clinical terms from free text for a focused secondary query.

    Two passes, in this order:
    1. Lexicon terms, in lexicon order
    2. Measurements, doses and abbreviations, in text order per pattern

    Output is lazy, deterministic for identical input and free of
    duplicates. No match means an empty iterator, never an error; callers
    then fall back to the sanitized message as their only query.
    """

    def __init__(self, lexicon: tuple[str, ...] = MEDICAL_LEXICON):
        self.lexicon = lexicon
        self._lexicon_patterns = [
            (term, re.compile(r"\b" + re.escape(term), re.IGNORECASE))
            for term in lexicon
        ]

    def extract(self, text: str | None) -> Iterator[str]:
        if not text:
            return
        seen: set[str] = set()
        for term in self._candidates(text):
            key = term.lower()
            if key in seen:
                continue
            seen.add(key)
            yield term

    def _candidates(self, text: str) -> Iterator[str]:
        for term, pattern in self._lexicon_patterns:
            if pattern.search(text):
                yield term

        for pattern in MEASUREMENT_PATTERNS:
            for match in pattern.finditer(text):
                token = match.group(0)
                if token in ABBREVIATION_STOPWORDS:
                    continue
                yield token


def extract_terms(text: str | None) -> list[str]:
    """Convenience wrapper returning the extracted terms as a list."""
    return list(MedicalTermExtractor().extract(text))
