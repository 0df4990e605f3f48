"""Tests for the answer pipeline."""

import pytest

from conftest import FakeEmbedder, FakeLLM, FakeVectorStore, RecordingSink, row
from medcite.errors import LLMFailure, ValidationFailure, is_failure
from medcite.generation.answer import AnswerService, run_diagnostics
from medcite.retrieval.pipeline import RetrievalPipeline
from medcite.retrieval.retriever import VectorRetriever

QUESTION = "what should I eat before surgery"

COMPLETION = (
    "Patients should fast for 8 hours before elective surgery [1].\n\n"
    "[1] Smith J. Preoperative fasting. Anesthesiology, 2017\n"
    "[2] Doe J. Unused. Journal, 2015"
)


def make_service(settings, rows_by_slot=None, llm=None, sink=None):
    store = FakeVectorStore(rows_by_slot if rows_by_slot is not None else {
        0: [row("fast-1", 0.9, content="Fasting guidance.", title="Fasting", year="2017")],
    })
    pipeline = RetrievalPipeline(VectorRetriever(store, FakeEmbedder()), settings=settings)
    llm = llm or FakeLLM(COMPLETION)
    return AnswerService(pipeline, llm, sink=sink, settings=settings), llm


def test_answer_with_citations(settings):
    sink = RecordingSink()
    service, llm = make_service(settings, sink=sink)

    result = service.answer(QUESTION)

    assert not is_failure(result)
    assert result.answer == "Patients should fast for 8 hours before elective surgery [1]."
    assert [c.reference_number for c in result.citations] == [1, 2]
    assert result.citations[0].journal == "Anesthesiology"
    assert result.passages.ids == ["fast-1"]
    assert result.metadata["context_ids"] == ["fast-1"]
    assert sink.saved == [(result.answer, result.citations)]


def test_llm_receives_context_and_settings(settings):
    service, llm = make_service(settings)

    service.answer(QUESTION, specialty_name="Anesthesiology")

    call = llm.calls[0]
    assert "specializing in Anesthesiology." in call["system_prompt"]
    assert "[1] Fasting guidance.\nCITATION: Fasting, 2017" in call["system_prompt"]
    assert call["user_message"] == QUESTION
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 2000


def test_default_specialty_name(settings):
    service, llm = make_service(settings)

    service.answer(QUESTION)

    assert "specializing in General Medicine." in llm.calls[0]["system_prompt"]


def test_retrieval_failure_degrades_to_no_context(settings):
    service, llm = make_service(settings, rows_by_slot={0: ConnectionError("weaviate down")})

    result = service.answer(QUESTION)

    assert not is_failure(result)
    assert len(result.passages) == 0
    assert "weaviate down" in result.metadata["retrieval_error"]
    assert "Use the following information" not in llm.calls[0]["system_prompt"]


def test_no_passages_omits_context_clause(settings):
    service, llm = make_service(settings, rows_by_slot={})

    service.answer(QUESTION)

    assert "Use the following information" not in llm.calls[0]["system_prompt"]


def test_llm_failure_is_surfaced(settings):
    sink = RecordingSink()
    service, _ = make_service(settings, llm=FakeLLM(failure="model overloaded"), sink=sink)

    result = service.answer(QUESTION)

    assert is_failure(result)
    assert isinstance(result.error, LLMFailure)
    assert sink.saved == []


@pytest.mark.parametrize("message", ["", "   "])
def test_empty_message(settings, message):
    service, llm = make_service(settings)

    result = service.answer(message)

    assert is_failure(result)
    assert isinstance(result.error, ValidationFailure)
    assert llm.calls == []


def test_answer_without_citations(settings):
    service, _ = make_service(settings, llm=FakeLLM("No references needed [4]."))

    result = service.answer(QUESTION)

    assert result.answer == "No references needed ."
    assert result.citations == []


class TestGenerateTitle:

    def test_title(self, settings):
        service, llm = make_service(settings, llm=FakeLLM('"Preoperative Fasting"\n'))

        assert service.generate_title(QUESTION) == "Preoperative Fasting"
        assert llm.calls[0]["model"] == "claude-3-haiku-20240307"
        assert QUESTION in llm.calls[0]["user_message"]

    def test_fallback_on_failure(self, settings):
        service, _ = make_service(settings, llm=FakeLLM(failure="down"))

        assert service.generate_title(QUESTION) == "New Chat"

    def test_fallback_on_empty(self, settings):
        service, _ = make_service(settings, llm=FakeLLM("   "))

        assert service.generate_title(QUESTION) == "New Chat"


class TestDiagnostics:

    def test_operational(self, settings):
        service, _ = make_service(settings)

        report = service.diagnostics()

        assert report["status"] == "operational"
        assert report["model"] == {"embedding": "text-embedding-3-small", "embedding_dimensions": 1536}
        assert report["vector_store"] == {"connected": True}
        assert report["error"] is None

    def test_error(self, settings):
        store = FakeVectorStore({0: ConnectionError("refused")})

        report = run_diagnostics(VectorRetriever(store, FakeEmbedder()), settings)

        assert report["status"] == "error"
        assert report["vector_store"] == {"connected": False}
        assert "refused" in report["error"]

    def test_probe_is_one_result(self, settings):
        store = FakeVectorStore()

        run_diagnostics(VectorRetriever(store, FakeEmbedder()), settings)

        assert store.calls == [{"slot": 0, "specialty_filter": None, "threshold": 0.7, "limit": 1}]


class TestContextAnchors:

    ROWS = {0: [
        row("A", 0.9, content="Unrelated text."),
        row("B", 0.8, content="Notes: what should I eat before surgery is common."),
    ]}

    def test_anchor_maps_to_boosted_passage(self, settings):
        service, llm = make_service(settings, rows_by_slot=self.ROWS)

        result = service.answer(QUESTION)

        assert result.passages.ids == ["A", "B"]
        assert "[1] Notes: what should I eat before surgery is common." in llm.calls[0]["system_prompt"]
        assert result.source_for(1).id == "B"
        assert result.source_for(2).id == "A"
        assert list(result.sources) == [1, 2]
        assert result.metadata["context_ids"] == ["B", "A"]

    def test_budget_gap_keeps_anchor_numbers(self, settings):
        settings.max_context_chars = 40
        service, llm = make_service(settings, rows_by_slot=self.ROWS)

        result = service.answer(QUESTION)

        assert "[2] Unrelated text.\nCITATION:" in llm.calls[0]["system_prompt"]
        assert result.sources == {2: result.passages[0]}
        assert result.source_for(1) is None
        assert result.metadata["context_ids"] == ["A"]
        assert result.metadata["context_anchors"] == [2]

    def test_no_sources_without_context(self, settings):
        service, _ = make_service(settings, rows_by_slot={})

        result = service.answer(QUESTION)

        assert result.sources == {}
        assert result.metadata["context_ids"] == []
