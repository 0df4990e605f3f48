"""
Complete retrieval pipeline combining all components.

Pipeline stages:
1. Sanitization: neutralize injection phrases, bound the length
2. Term extraction: pull clinical terms out of the message
3. Retrieval:
   - terms found: two concurrent searches (full message + joined terms)
     merged into one set, terms first
   - no terms: one search for the message at the default threshold/limit

A dual search fails only when both legs fail; one failed leg just
narrows the result.

Usage:
    from medcite.retrieval import RetrievalPipeline

    pipeline = RetrievalPipeline(retriever)

    result = pipeline.retrieve("Is 160/100 mmHg stage 2 hypertension?")
    if not is_failure(result):
        for passage in result.passages:
            print(passage.id, passage.similarity)
"""

import asyncio
from dataclasses import dataclass, field

from medcite.config import Settings, get_settings
from medcite.errors import Failure, is_failure
from medcite.logging import get_logger
from medcite.models import PassageSet, Query
from medcite.retrieval.query import MedicalTermExtractor, QuerySanitizer
from medcite.retrieval.rerank import merge
from medcite.retrieval.retriever import VectorRetriever

logger = get_logger(__name__, component="retrieval_pipeline")


@dataclass
class RetrievalResult:
    """
    Result from the retrieval pipeline.

    Contains the retrieved passages plus metadata about the retrieval
    process for debugging and observability.
    """
    # The original user message
    query: str

    # Message after sanitization (what was actually searched)
    sanitized_query: str

    # Clinical terms extracted from the sanitized message
    terms: list[str]

    passages: PassageSet

    # mode ("single" or "dual"), per-leg counts and failures
    metadata: dict = field(default_factory=dict)

    def __len__(self) -> int:
        """Number of passages retrieved."""
        return len(self.passages)


class RetrievalPipeline:
    """
    Sanitize, extract terms and retrieve passages for a user message.

    Configuration comes from settings: ``message_threshold`` and
    ``term_threshold`` for the two dual-search legs (each capped at
    ``dual_query_limit``), ``default_threshold``/``default_limit`` for the
    single search.

    Example:
        retriever = VectorRetriever(store, embedder)
        pipeline = RetrievalPipeline(retriever)

        result = pipeline.retrieve("asthma step-up therapy", specialty_id="pulm")
    """

    def __init__(
            self,
            retriever: VectorRetriever,
            sanitizer: QuerySanitizer | None = None,
            extractor: MedicalTermExtractor | None = None,
            settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.retriever = retriever
        self.sanitizer = sanitizer or QuerySanitizer(max_length=self.settings.max_query_length)
        self.extractor = extractor or MedicalTermExtractor()

        logger.info(
            "retrieval_pipeline_initialized",
            message_threshold=self.settings.message_threshold,
            term_threshold=self.settings.term_threshold,
            dual_query_limit=self.settings.dual_query_limit,
        )

    def retrieve(
            self,
            message: str,
            specialty_id: str | None = None,
            threshold: float | None = None,
            limit: int | None = None,
    ) -> RetrievalResult | Failure:
        """
        Synchronous wrapper around ``aretrieve``.

        Must not be called from inside a running event loop; use
        ``await pipeline.aretrieve(...)`` there instead.
        """
        return asyncio.run(self.aretrieve(message, specialty_id, threshold, limit))

    async def aretrieve(
            self,
            message: str,
            specialty_id: str | None = None,
            threshold: float | None = None,
            limit: int | None = None,
    ) -> RetrievalResult | Failure:
        """
        Execute the full retrieval pipeline.

        Args:
            message: The user's message
            specialty_id: Only search passages of this specialty
            threshold: Single-search threshold (default from settings)
            limit: Single-search limit (default from settings)

        Returns:
            RetrievalResult, or a Failure when the message is empty after
            sanitization or every search failed
        """
        sanitized = self.sanitizer.sanitize(message)
        if not sanitized:
            logger.info("retrieval_rejected_empty")
            return Failure.validation("Message cannot be empty")

        terms = list(self.extractor.extract(sanitized))

        logger.info("retrieval_start", query=sanitized[:50], terms=len(terms))

        if not terms:
            return await self._single(message, sanitized, specialty_id, threshold, limit)

        return await self._dual(message, sanitized, terms, specialty_id)

    async def _single(
            self,
            message: str,
            sanitized: str,
            specialty_id: str | None,
            threshold: float | None,
            limit: int | None,
    ) -> RetrievalResult | Failure:
        query = Query(
            raw_text=message,
            sanitized_text=sanitized,
            specialty_id=specialty_id,
            threshold=self.settings.default_threshold if threshold is None else threshold,
            limit=self.settings.default_limit if limit is None else limit,
        )

        result = await asyncio.to_thread(self._search, query)

        if is_failure(result):
            logger.warning("retrieval_failed", mode="single", reason=result.reason)
            return result

        logger.info("retrieval_complete", mode="single", final=len(result))

        return RetrievalResult(
            query=message,
            sanitized_query=sanitized,
            terms=[],
            passages=result,
            metadata={
                "mode": "single",
                "threshold": query.threshold,
                "limit": query.limit,
                "final_results": len(result),
            },
        )

    async def _dual(
            self,
            message: str,
            sanitized: str,
            terms: list[str],
            specialty_id: str | None,
    ) -> RetrievalResult | Failure:
        limit = self.settings.dual_query_limit
        message_query = Query(
            raw_text=message,
            sanitized_text=sanitized,
            specialty_id=specialty_id,
            threshold=self.settings.message_threshold,
            limit=limit,
        )
        terms_text = " ".join(terms)
        terms_query = Query(
            raw_text=terms_text,
            sanitized_text=terms_text,
            specialty_id=specialty_id,
            threshold=self.settings.term_threshold,
            limit=limit,
        )

        message_result, terms_result = await asyncio.gather(
            asyncio.to_thread(self._search, message_query),
            asyncio.to_thread(self._search, terms_query),
            return_exceptions=True,
        )
        message_result = _as_result(message_result)
        terms_result = _as_result(terms_result)

        if is_failure(message_result) and is_failure(terms_result):
            logger.warning(
                "dual_query_failed",
                message_reason=message_result.reason,
                terms_reason=terms_result.reason,
            )
            return Failure.retrieval(
                "Failed to retrieve medical information for both queries: "
                f"{message_result.reason}; {terms_result.reason}",
                stage=getattr(message_result.error, "stage", "vector_search"),
            )

        metadata = {"mode": "dual", "terms_query": terms_text}
        successful = []
        for leg, result in (("terms", terms_result), ("message", message_result)):
            if is_failure(result):
                logger.warning("dual_query_leg_failed", leg=leg, reason=result.reason)
                metadata[f"{leg}_error"] = result.reason
                metadata[f"{leg}_results"] = 0
            else:
                metadata[f"{leg}_results"] = len(result)
                successful.append(result)

        passages = merge(*successful)
        metadata["final_results"] = len(passages)

        logger.info(
            "dual_query_complete",
            message_results=metadata["message_results"],
            terms_results=metadata["terms_results"],
            final=len(passages),
        )

        return RetrievalResult(
            query=message,
            sanitized_query=sanitized,
            terms=terms,
            passages=passages,
            metadata=metadata,
        )

    def _search(self, query: Query) -> PassageSet | Failure:
        return self.retriever.retrieve_text(
            query.sanitized_text,
            specialty_filter=query.specialty_id,
            threshold=query.threshold,
            limit=query.limit,
        )


def _as_result(value: object) -> PassageSet | Failure:
    """Map an exception escaping a worker thread to a Failure."""
    if isinstance(value, Exception):
        return Failure.retrieval(f"retrieval raised: {value}")
    return value
