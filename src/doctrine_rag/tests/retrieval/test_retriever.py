import asyncio

import pytest

from doctrine_rag.common import DocumentChunk, RetrievalError, RetrievalResult
from doctrine_rag.retrieval.document_loader import load_csv_documents
from doctrine_rag.retrieval.query_expander import QueryExpander
from doctrine_rag.retrieval.retriever import (
    NO_CONTEXT_MESSAGE,
    RetrievalOrchestrator,
    deduplicate,
    source_label,
)
from doctrine_rag.retrieval.text_splitter import create_text_splitter
from doctrine_rag.retrieval.vector_store import InMemoryVectorIndex

FM_PASSAGES = [
    "The Military Decision Making Process consists of seven steps beginning with receipt of mission.",
    "Mission analysis produces the restated mission and the commander's initial intent.",
    "The signal officer plans communications support for the operation.",
]


class StaticIndex:
    """Index double returning the same results for every term."""

    def __init__(self, source_kind: str, results: list[RetrievalResult]):
        self.source_kind = source_kind
        self.results = results
        self.queries: list[str] = []

    async def search(self, query: str, k: int = 5) -> list[RetrievalResult]:
        self.queries.append(query)
        return list(self.results[:k])


def _result(text: str, score: float, kind: str = "pdf") -> RetrievalResult:
    return RetrievalResult(text=text, similarity_score=score, source_kind=kind)


async def _build(texts: list[str], embedder, kind: str) -> InMemoryVectorIndex:
    chunks = [DocumentChunk(text=t, source_kind=kind, page_or_field=i) for i, t in enumerate(texts, 1)]
    return await InMemoryVectorIndex.build(chunks, embedder, kind)


def test_deduplicate_first_keeps_first_occurrence():
    """
    Test that two results with identical text collapse to one, keeping the first.
    """
    results = [_result("same", 0.2), _result("other", 0.5), _result("same", 0.9)]

    kept = deduplicate(results, "first")

    assert [r.text for r in kept] == ["same", "other"]
    assert kept[0].similarity_score == 0.2


def test_deduplicate_best_keeps_position_of_first_but_highest_score():
    results = [_result("same", 0.2), _result("other", 0.5), _result("same", 0.9)]

    kept = deduplicate(results, "best")

    assert [r.text for r in kept] == ["same", "other"]
    assert kept[0].similarity_score == 0.9


def test_deduplicate_unknown_strategy_raises():
    with pytest.raises(ValueError):
        deduplicate([], "random")


@pytest.mark.parametrize(
    "kinds, expected",
    [(["pdf"], "PDF"), (["csv"], "CSV"), (["pdf", "csv"], "BOTH"), ([], "PDF")],
)
def test_source_label(kinds, expected):
    assert source_label([_result(str(i), 0.1, kind) for i, kind in enumerate(kinds)]) == expected


def test_should_search_forms_matches_keywords():
    orchestrator = RetrievalOrchestrator(QueryExpander())

    assert orchestrator.should_search_forms("What fields are required for awards?")
    assert orchestrator.should_search_forms("How do I FILL the citation?")
    assert not orchestrator.should_search_forms("What are the steps in MDMP?")


def test_retrieve_mdmp_surfaces_expanded_variant_chunk(embedder):
    """
    Test that the expanded MDMP query surfaces the chunk using the full name.
    """
    orchestrator = RetrievalOrchestrator(QueryExpander(), top_k=1)

    async def _run():
        index = await _build(FM_PASSAGES, embedder, "pdf")
        return await orchestrator.retrieve("What are the steps in MDMP?", index)

    outcome = asyncio.run(_run())

    assert FM_PASSAGES[0] in [r.text for r in outcome.results]
    assert "What are the steps in Military Decision Making Process?" in outcome.search_terms
    assert outcome.source == "PDF"


def test_retrieve_form_question_searches_csv(embedder, default_csv_path):
    """
    Test that a form-field question also searches the CSV index.
    """
    csv_chunks = create_text_splitter(None, source_kind="csv").split_documents(
        load_csv_documents(default_csv_path.read_text(encoding="utf-8"))
    )
    orchestrator = RetrievalOrchestrator(QueryExpander())

    async def _run():
        pdf_index = await _build(FM_PASSAGES, embedder, "pdf")
        csv_index = await InMemoryVectorIndex.build(csv_chunks, embedder, "csv")
        return await orchestrator.retrieve("What fields are required for awards?", pdf_index, csv_index)

    outcome = asyncio.run(_run())

    assert outcome.source in {"CSV", "BOTH"}
    assert any(r.source_kind == "csv" for r in outcome.results)


def test_retrieve_skips_form_index_for_doctrine_question():
    docs = StaticIndex("pdf", [_result("doctrine", 0.9)])
    forms = StaticIndex("csv", [_result("form row", 0.9, "csv")])
    orchestrator = RetrievalOrchestrator(QueryExpander())

    outcome = asyncio.run(orchestrator.retrieve("What are the steps in MDMP?", docs, forms))

    assert forms.queries == []
    assert outcome.source == "PDF"


def test_retrieve_merges_documents_first_and_counts_before_dedup():
    """
    Test merge order, dedup across terms and the pre-dedup total.
    """
    docs = StaticIndex("pdf", [_result("doctrine", 0.9)])
    forms = StaticIndex("csv", [_result("form row", 0.8, "csv")])
    orchestrator = RetrievalOrchestrator(QueryExpander())

    outcome = asyncio.run(orchestrator.retrieve("Which MDMP form field is required?", docs, forms))

    assert len(outcome.search_terms) == 3
    assert [r.text for r in outcome.results] == ["doctrine", "form row"]
    assert outcome.total_results == 6
    assert outcome.source == "BOTH"
    assert outcome.full_context == "doctrine\n\nform row"
    assert outcome.display_context == "doctrine\n\nform row"
    assert outcome.has_more_context is False


def test_retrieve_truncates_display_context():
    long_text = "x" * 600
    orchestrator = RetrievalOrchestrator(QueryExpander())

    outcome = asyncio.run(orchestrator.retrieve("anything", StaticIndex("pdf", [_result(long_text, 0.5)])))

    assert outcome.display_context == "x" * 500 + "..."
    assert outcome.has_more_context is True
    assert outcome.full_context == long_text


def test_retrieve_without_results_reports_no_context():
    orchestrator = RetrievalOrchestrator(QueryExpander())

    outcome = asyncio.run(orchestrator.retrieve("anything", StaticIndex("pdf", [])))

    assert outcome.results == []
    assert outcome.display_context == NO_CONTEXT_MESSAGE
    assert outcome.source == "PDF"
    assert outcome.to_metadata().to_dict() == {
        "source": "PDF",
        "context": NO_CONTEXT_MESSAGE,
        "hasMoreContext": False,
        "totalResults": 0,
    }


def test_retrieve_embedding_failure_raises_retrieval_error(failing_embedder):
    """
    Test that a failed query embedding aborts retrieval with ``RetrievalError``.
    """
    embedder = failing_embedder(fail_on="MDMP")
    orchestrator = RetrievalOrchestrator(QueryExpander())

    async def _run():
        index = await _build(FM_PASSAGES, embedder, "pdf")
        return await orchestrator.retrieve("What are the steps in MDMP?", index)

    with pytest.raises(RetrievalError) as excinfo:
        asyncio.run(_run())

    assert excinfo.value.__cause__ is not None
