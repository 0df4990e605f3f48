"""
Answer pipeline: retrieval, prompting, completion and citation handling.

Flow for one message:
1. Sanitize the message (empty -> ValidationFailure)
2. Retrieve passages; a retrieval Failure degrades to no context
3. Re-rank with the lexical boost and select a bounded context; the
   chosen passages are kept under the [n] anchors the model sees
4. Build the system prompt and call the LLM; an LLM Failure is returned
   as-is, with no partial answer
5. Extract and parse citations, clean the answer
6. Hand the clean answer and citations to the message sink, if any

Usage:
    from medcite.generation import AnswerService

    service = AnswerService(pipeline, llm)
    result = service.answer("Target HbA1c in elderly diabetes?", specialty_name="Endocrinology")
    if is_failure(result):
        print(result.reason)
    else:
        print(result.answer)
"""

import asyncio
import datetime
from typing import Protocol, runtime_checkable

from medcite.config import Settings, get_settings
from medcite.errors import Failure, ValidationFailure, is_failure
from medcite.generation.citations import process_answer
from medcite.generation.llm import CompletionClient, fast_model
from medcite.generation.prompt import build_system_prompt, render_context, select_context
from medcite.logging import get_logger
from medcite.models import AnswerResult, ExtractedCitation, PassageSet
from medcite.retrieval.pipeline import RetrievalPipeline
from medcite.retrieval.rerank import enhance
from medcite.retrieval.retriever import VectorRetriever

logger = get_logger(__name__, component="answer")

DEFAULT_TITLE = "New Chat"
TITLE_SYSTEM_PROMPT = "You generate concise, descriptive titles for medical chats."
TITLE_PROMPT = (
    "Generate a short, descriptive title (5 words or less) for a medical chat "
    'that starts with this message: "{message}"'
)
DIAGNOSTIC_QUERY = "diagnostic test"


@runtime_checkable
class MessageSink(Protocol):
    """Persistence collaborator for finished answers."""

    def save(self, answer: str, citations: list[ExtractedCitation]) -> None:
        ...


class AnswerService:
    """
    Produce a cited answer for one user message.

    Collaborators are passed in; the service owns none of them.

    Example:
        with WeaviatePassageStore.from_settings() as store:
            retriever = VectorRetriever(store, EmbeddingClient.from_settings())
            service = AnswerService(RetrievalPipeline(retriever), build_llm())
            result = service.answer("Beta blockers after MI?")
    """

    def __init__(
            self,
            pipeline: RetrievalPipeline,
            llm: CompletionClient,
            sink: MessageSink | None = None,
            settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.pipeline = pipeline
        self.llm = llm
        self.sink = sink

    def answer(
            self,
            message: str,
            specialty_id: str | None = None,
            specialty_name: str | None = None,
    ) -> AnswerResult | Failure:
        """Synchronous wrapper around ``aanswer``."""
        return asyncio.run(self.aanswer(message, specialty_id, specialty_name))

    async def aanswer(
            self,
            message: str,
            specialty_id: str | None = None,
            specialty_name: str | None = None,
    ) -> AnswerResult | Failure:
        """
        Run the full answer pipeline.

        Args:
            message: The user's message
            specialty_id: Restrict retrieval to one specialty
            specialty_name: Specialty named in the system prompt

        Returns:
            AnswerResult, or a Failure for an empty message or a failed
            completion
        """
        sanitized = self.pipeline.sanitizer.sanitize(message)
        if not sanitized:
            return Failure.validation("Message cannot be empty")

        logger.info("answer_start", query=sanitized[:50], specialty=specialty_id)

        metadata: dict = {}
        retrieval = await self.pipeline.aretrieve(message, specialty_id=specialty_id)

        if is_failure(retrieval):
            if isinstance(retrieval.error, ValidationFailure):
                return retrieval
            logger.warning("retrieval_degraded", reason=retrieval.reason)
            passages = PassageSet.empty()
            metadata["retrieval_error"] = retrieval.reason
        else:
            passages = retrieval.passages
            metadata["retrieval"] = retrieval.metadata
            metadata["terms"] = retrieval.terms

        ranked = enhance(passages, sanitized)
        sources = select_context(ranked, max_chars=self.settings.max_context_chars)
        context = render_context(sources)
        system_prompt = build_system_prompt(
            context,
            specialty_name=specialty_name or self.settings.default_specialty_name,
        )
        metadata["context_ids"] = [p.id for p in sources.values()]
        metadata["context_anchors"] = list(sources)
        metadata["context_chars"] = len(context)

        completion = await asyncio.to_thread(
            self.llm.complete,
            system_prompt,
            sanitized,
            temperature=self.settings.llm_temperature,
            max_tokens=self.settings.llm_max_tokens,
        )
        if is_failure(completion):
            logger.error("answer_failed", reason=completion.reason)
            return completion

        clean, citations = process_answer(completion)

        if self.sink is not None:
            self.sink.save(clean, citations)

        logger.info(
            "answer_complete",
            passages=len(passages),
            citations=len(citations),
            degraded="retrieval_error" in metadata,
        )

        return AnswerResult(
            query=message,
            answer=clean,
            citations=citations,
            passages=passages,
            metadata=metadata,
            sources=sources,
        )

    def generate_title(self, message: str) -> str:
        """Short chat title for a first message. Falls back to "New Chat"."""
        completion = self.llm.complete(
            TITLE_SYSTEM_PROMPT,
            TITLE_PROMPT.format(message=message),
            temperature=0.7,
            max_tokens=50,
            model=fast_model(self.settings),
        )
        if is_failure(completion):
            logger.warning("title_generation_failed", reason=completion.reason)
            return DEFAULT_TITLE

        title = completion.strip().strip('"').strip()
        return title or DEFAULT_TITLE

    def diagnostics(self) -> dict:
        """Probe the embedding and vector-store path."""
        return run_diagnostics(self.pipeline.retriever, self.settings)


def run_diagnostics(retriever: VectorRetriever, settings: Settings | None = None) -> dict:
    """
    Run a one-result probe query and report on the retrieval stack.

    Returns:
        Dict with status ("operational" or "error"), timestamp, embedding
        model details, vector store connectivity and the error, if any
    """
    settings = settings or get_settings()
    result = retriever.retrieve_text(
        DIAGNOSTIC_QUERY,
        threshold=settings.default_threshold,
        limit=1,
    )
    failed = is_failure(result)

    report = {
        "status": "error" if failed else "operational",
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "model": {
            "embedding": settings.embedding_model,
            "embedding_dimensions": settings.embedding_dimension,
        },
        "vector_store": {"connected": not failed},
        "error": result.reason if failed else None,
    }

    logger.info("diagnostics_complete", status=report["status"])

    return report
