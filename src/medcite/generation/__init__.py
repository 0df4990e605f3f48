"""
Answer generation with citations.

This module handles:
- Context assembly and system prompt construction
- LLM completion (Anthropic or OpenAI)
- Citation extraction, answer cleaning and citation parsing
"""

from medcite.generation.answer import AnswerService, MessageSink, run_diagnostics
from medcite.generation.citations import (
    clean_answer,
    extract_citations,
    format_citation_text,
    format_doi_link,
    normalize_citation_text,
    parse_citation,
    process_answer,
)
from medcite.generation.llm import (
    AnthropicCompletionClient,
    CompletionClient,
    OpenAICompletionClient,
    build_llm,
)
from medcite.generation.prompt import assemble, build_system_prompt, render_context, select_context

__all__ = [
    "AnswerService",
    "AnthropicCompletionClient",
    "CompletionClient",
    "MessageSink",
    "OpenAICompletionClient",
    "assemble",
    "build_llm",
    "build_system_prompt",
    "clean_answer",
    "extract_citations",
    "format_citation_text",
    "format_doi_link",
    "normalize_citation_text",
    "parse_citation",
    "process_answer",
    "render_context",
    "run_diagnostics",
    "select_context",
]
