"""
Prompt construction for cited medical answers.

Pieces:
1. ``select_context``: pick the ranked passages that fit the budget,
   keyed by the [n] anchor the model will see
2. ``render_context`` / ``assemble``: render them into a numbered block
3. ``build_system_prompt``: persona, citation instructions and context

Context format (one entry per passage, blank line between entries):

    [1] <passage content>
    CITATION: <title>, <authors>, <journal>, <year>

The model is told to cite with the same [n] numbers and to end with a
reference list, which is what ``medcite.generation.citations`` parses.

Usage:
    from medcite.generation.prompt import assemble, build_system_prompt

    context = assemble(passages, max_chars=6000)
    system_prompt = build_system_prompt(context, specialty_name="Cardiology")
"""

from collections.abc import Iterable

from medcite.logging import get_logger
from medcite.models import RetrievedPassage

logger = get_logger(__name__, component="prompt")

ENTRY_SEPARATOR = "\n\n"
CONTEXT_INTRO = "Use the following information to inform your response:\n\n"
DEFAULT_SPECIALTY_NAME = "General Medicine"

SYSTEM_PROMPT_TEMPLATE = """You are an AI medical assistant specializing in {specialty_name}.
Provide accurate, evidence-based information to medical practitioners.
Be concise yet thorough, use medical terminology appropriately, and cite your sources.
Always format citations as [n] at the end of sentences where n is a number.
At the end of your response, list all references in the format: [n] Author(s), Title, Journal, Year."""


def format_entry(index: int, passage: RetrievedPassage) -> str:
    """Render one numbered context entry."""
    citation = passage.citation_string()
    citation_line = f"CITATION: {citation}" if citation else "CITATION:"
    return f"[{index}] {passage.content}\n{citation_line}"


def select_context(
        passages: Iterable[RetrievedPassage],
        max_chars: int | None = None,
) -> dict[int, RetrievedPassage]:
    """
    Choose the passages that fit in the context block, keyed by anchor number.

    Numbers are positions in the ranked input (1-based). With a budget,
    entries are taken in order while the block stays within max_chars;
    an entry that would overflow is skipped and later, shorter entries
    may still fit. Skipping never renumbers the entries that remain, so
    a budget gap shows up as a missing key.

    Args:
        passages: Ranked passages
        max_chars: Character budget for the whole block, None for no limit

    Returns:
        Ordered mapping of anchor number to passage
    """
    selected: dict[int, RetrievedPassage] = {}
    length = 0
    skipped = 0

    for index, passage in enumerate(passages, 1):
        added = len(format_entry(index, passage)) + (len(ENTRY_SEPARATOR) if selected else 0)

        if max_chars is not None and length + added > max_chars:
            skipped += 1
            continue

        selected[index] = passage
        length += added

    if skipped:
        logger.info("context_entries_skipped", skipped=skipped, kept=len(selected), max_chars=max_chars)

    return selected


def render_context(selected: dict[int, RetrievedPassage]) -> str:
    """Render selected passages under their anchor numbers, "" for none."""
    return ENTRY_SEPARATOR.join(format_entry(index, passage) for index, passage in selected.items())


def assemble(passages: Iterable[RetrievedPassage], max_chars: int | None = None) -> str:
    """
    Render passages into the numbered context block.

    Shorthand for ``render_context(select_context(passages, max_chars))``.
    """
    return render_context(select_context(passages, max_chars))


def build_system_prompt(context: str, specialty_name: str | None = DEFAULT_SPECIALTY_NAME) -> str:
    """
    Build the system prompt.

    The context clause is only added when there is context; an empty
    context leaves no dangling "Use the following information" line.
    """
    prompt = SYSTEM_PROMPT_TEMPLATE.format(specialty_name=specialty_name or DEFAULT_SPECIALTY_NAME)
    if context:
        prompt = f"{prompt}\n\n{CONTEXT_INTRO}{context}"
    return prompt
