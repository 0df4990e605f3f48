"""
Retrieval of reference passages for a user message.

This module handles:
- Query sanitization and medical term extraction
- Vector retrieval with threshold/limit guarantees
- Dual-query retrieval, merging and lexical re-ranking
"""

from medcite.retrieval.pipeline import RetrievalPipeline, RetrievalResult
from medcite.retrieval.query import MedicalTermExtractor, QuerySanitizer, extract_terms
from medcite.retrieval.rerank import enhance, merge
from medcite.retrieval.retriever import VectorRetriever

__all__ = [
    "MedicalTermExtractor",
    "QuerySanitizer",
    "RetrievalPipeline",
    "RetrievalResult",
    "VectorRetriever",
    "enhance",
    "extract_terms",
    "merge",
]
