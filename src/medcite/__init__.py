"""
MedCite RAG - Cited answers to medical questions.

This package retrieves reference passages from a vector store, asks an
LLM to answer with numbered citations, and turns the raw completion into
a clean answer plus structured citation records.
"""

__version__ = "0.1.0"
