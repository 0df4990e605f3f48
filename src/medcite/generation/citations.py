"""
Citation extraction and parsing for model answers.

Problem: the model is told to cite with inline [n] markers and to end
with a reference list ``[n] Author(s), Title, Journal, Year``. Its output
is untrusted free text, so extraction has to be linear-time and must
never raise.

Grammar:
- A marker is "[", 1 to 9 ASCII digits, "]"
- A marker's text runs from after the marker to the next marker or the
  end of the answer
- A marker opens a citation only when a space or tab follows it and its
  trimmed text is non-empty; otherwise ("[1].", "[1][2]") it is an inline
  anchor
- A marker alone at the start of a line may also open a citation whose
  text starts on the next line ("[1]\\nSmith J. ..."); a blank line after
  it does not count
- Brackets that are not markers are ordinary text
- Any bracketed integer is a marker, including a year such as [2024]

Cleaning removes each extracted ``[n] text`` block, then strips leftover
markers whose number has no citation. Markers with a citation stay as
in-text anchors. A "References:" style heading left with nothing under
it is dropped too.

Example:
    raw = "Start with an ACE inhibitor [1]\\n\\n[1] Smith J. Hypertension update. Lancet, 2023"

    clean, citations = process_answer(raw)
    # clean == "Start with an ACE inhibitor [1]"
    # citations[0].authors == "Smith J", citations[0].year == "2023"

Usage:
    from medcite.generation.citations import process_answer

    clean, citations = process_answer(completion_text)
"""

import dataclasses
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from medcite.logging import get_logger
from medcite.models import ExtractedCitation

logger = get_logger(__name__, component="citations")

MAX_MARKER_DIGITS = 9
SEGMENT_DELIMITER = ". "
BLOCK_SEPARATORS = " \t"

JOURNAL_YEAR = re.compile(r"(.+?)(?:,\s*(\d{4}))?\.?", re.DOTALL)
DOI = re.compile(r"\b(10\.\d{4,9}/[^\s,\]\"<>]+)", re.IGNORECASE)
URL = re.compile(r"(https?://[^\s,\]\"<>]+)", re.IGNORECASE)
TRAILING_PUNCTUATION = ".;:)"

WHITESPACE = re.compile(r"\s+")
CURLY_QUOTES = re.compile(r"[“”‘’]")
DASHES = re.compile(r"[–—]")
REPEATED_PERIODS = re.compile(r"\.{2,}")
TIGHT_SEPARATOR = re.compile(r"([,;])(?=[A-Za-z])")

REFERENCE_HEADINGS = frozenset({
    "reference", "references", "citation", "citations", "source", "sources", "bibliography",
})
HEADING_DECORATION = " \t#*_:"


@dataclass(frozen=True)
class Marker:
    """A [n] token at raw[start:end]."""
    start: int
    end: int
    number: int


@dataclass
class ParsedCitation:
    """Structured fields recovered from one citation text."""
    authors: str | None = None
    title: str | None = None
    journal: str | None = None
    year: str | None = None
    doi: str | None = None
    url: str | None = None
    raw_text: str | None = None


def iter_markers(text: str) -> Iterator[Marker]:
    """
    Scan for [n] markers left to right, without backtracking.

    Each "[" is inspected once with a bounded lookahead, so the scan is
    linear in the length of the text.
    """
    length = len(text)
    position = text.find("[")

    while position != -1:
        cursor = position + 1
        limit = min(length, cursor + MAX_MARKER_DIGITS)
        while cursor < limit and "0" <= text[cursor] <= "9":
            cursor += 1

        if cursor > position + 1 and cursor < length and text[cursor] == "]":
            yield Marker(position, cursor + 1, int(text[position + 1:cursor]))
            position = text.find("[", cursor + 1)
        else:
            position = text.find("[", position + 1)


def _opens_block(raw: str, marker: Marker, region: str) -> bool:
    if region[0] in BLOCK_SEPARATORS:
        return True

    # "[n]" on a line of its own, text on the very next line
    at_line_start = marker.start == 0 or raw[marker.start - 1] == "\n"
    if not at_line_start:
        return False
    if region.startswith("\r\n"):
        rest = region[2:]
    elif region.startswith("\n"):
        rest = region[1:]
    else:
        return False
    return rest.lstrip(" \t")[:1] not in ("", "\n", "\r")


def extract_citations(raw: str | None) -> list[ExtractedCitation]:
    """
    Extract every ``[n] text`` block from a raw answer.

    Lossless: a number that appears on several blocks yields several
    citations, in order. Numbers below 1 are skipped.
    """
    if not raw:
        return []

    markers = list(iter_markers(raw))
    citations = []

    for index, marker in enumerate(markers):
        text_end = markers[index + 1].start if index + 1 < len(markers) else len(raw)
        region = raw[marker.end:text_end]
        text = region.strip()

        if not text or marker.number < 1 or not _opens_block(raw, marker, region):
            continue

        block_end = marker.end + len(region.rstrip())
        citations.append(ExtractedCitation(
            reference_number=marker.number,
            text=text,
            block=raw[marker.start:block_end],
        ))

    logger.debug("citations_extracted", markers=len(markers), citations=len(citations))

    return citations


def clean_answer(raw: str | None, citations: Iterable[ExtractedCitation]) -> str:
    """
    Remove citation blocks and orphaned markers from a raw answer.

    Running it again on its own output with the same citations changes
    nothing.
    """
    if not raw:
        return ""

    citations = list(citations)
    cleaned = raw
    for citation in citations:
        if citation.block:
            cleaned = cleaned.replace(citation.block, "", 1)

    cited = {citation.reference_number for citation in citations}
    pieces = []
    last = 0
    stripped = 0
    for marker in iter_markers(cleaned):
        if marker.number in cited:
            continue
        pieces.append(cleaned[last:marker.start])
        last = marker.end
        stripped += 1
    pieces.append(cleaned[last:])

    if stripped:
        logger.debug("orphan_markers_stripped", count=stripped)

    cleaned = "".join(pieces).strip()
    if citations:
        cleaned = _drop_trailing_headings(cleaned)
    return cleaned


def _drop_trailing_headings(text: str) -> str:
    """Drop "References:" style lines left at the end with nothing under them."""
    while text:
        head, _, last = text.rpartition("\n")
        if last.strip(HEADING_DECORATION).lower() not in REFERENCE_HEADINGS:
            break
        text = head.rstrip()
    return text


def _extract_link(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    value = match.group(1).rstrip(TRAILING_PUNCTUATION)
    return value or None


def parse_citation(text: str | None) -> ParsedCitation:
    """
    Best-effort split of a citation into its fields.

    Segments are split on ". ". With at least three segments they are
    read as authors, title and "Journal[, YYYY]"; further segments are
    ignored. With fewer, only ``raw_text`` is set. DOI and URL are
    picked out in both cases. Never raises.

    Example:
        parse_citation("Smith J, et al. Recent advances in cardiology. Journal of Cardiology, 2023")
        # authors="Smith J, et al", title="Recent advances in cardiology",
        # journal="Journal of Cardiology", year="2023"
    """
    text = text or ""
    parsed = ParsedCitation(
        doi=_extract_link(DOI, text),
        url=_extract_link(URL, text),
    )

    segments = text.split(SEGMENT_DELIMITER)
    if len(segments) < 3:
        parsed.raw_text = text
        return parsed

    parsed.authors = segments[0].strip() or None
    parsed.title = segments[1].strip() or None

    match = JOURNAL_YEAR.fullmatch(segments[2].strip())
    if match:
        parsed.journal = match.group(1).strip() or None
        parsed.year = match.group(2)

    return parsed


def process_answer(raw: str | None) -> tuple[str, list[ExtractedCitation]]:
    """
    Extract, clean and parse in one step.

    Returns:
        (clean answer, parsed citations in answer order)
    """
    extracted = extract_citations(raw)
    clean = clean_answer(raw, extracted)

    citations = [
        dataclasses.replace(citation, **dataclasses.asdict(parse_citation(citation.text)))
        for citation in extracted
    ]

    logger.info(
        "answer_processed",
        citations=len(citations),
        structured=sum(1 for c in citations if c.is_structured),
    )

    return clean, citations


def format_doi_link(doi: str | None) -> str | None:
    """Resolver URL for a DOI, with any "doi:" or resolver prefix removed."""
    if not doi:
        return None
    clean = re.sub(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)", "", doi.strip(), flags=re.IGNORECASE)
    return f"https://doi.org/{clean}"


def format_citation_text(citation: ExtractedCitation | ParsedCitation) -> str:
    """Render structured fields as 'Authors. "Title". Journal. Year. doi: ...'."""
    parts = []
    if citation.authors:
        parts.append(citation.authors)
    if citation.title:
        parts.append(f'"{citation.title}"')
    if citation.journal:
        parts.append(citation.journal)
    if citation.year:
        parts.append(citation.year)
    if citation.doi:
        parts.append(f"doi: {citation.doi}")

    if not parts:
        return citation.raw_text or getattr(citation, "text", "") or ""
    return ". ".join(parts)


def normalize_citation_text(text: str | None) -> str:
    """
    Tidy citation text for display.

    Collapses whitespace, straightens curly quotes, turns en/em dashes
    into hyphens, squeezes repeated periods and adds a space after a
    comma or semicolon jammed against the next word.
    """
    if not text:
        return ""

    text = WHITESPACE.sub(" ", text)
    text = CURLY_QUOTES.sub(lambda m: '"' if m.group(0) in "“”" else "'", text)
    text = DASHES.sub("-", text)
    text = REPEATED_PERIODS.sub(".", text)
    text = TIGHT_SEPARATOR.sub(r"\1 ", text)
    return text.strip()
