"""doctrine_rag.retrieval.retriever

Retrieval orchestration over the field-manual and form-field indexes.

The orchestrator expands the user query, searches the document index with
every expanded term, optionally searches the form-field index when the query
looks like a question about forms, merges and deduplicates the hits, and
assembles the context passed to the answer generator.

Classes
-------
RetrievalOutcome
    Results and derived context for a single retrieval call.
RetrievalOrchestrator
    Expand, search, merge and deduplicate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from doctrine_rag.common import AnswerMetadata, EmbeddingError, RetrievalError, RetrievalResult
from doctrine_rag.retrieval.query_expander import QueryExpander
from doctrine_rag.retrieval.types import SearchableIndex

logger = logging.getLogger(__name__)

DEFAULT_FORM_KEYWORDS: tuple[str, ...] = (
    "field", "form", "template", "award", "achievement", "bullet",
    "input", "required", "mandatory", "optional", "section", "column",
    "header", "data", "entry", "fill", "complete", "submit",
)
DEFAULT_DISPLAY_LIMIT = 500
NO_CONTEXT_MESSAGE = "No relevant context found."
DEDUP_STRATEGIES = ("first", "best")


@dataclass(frozen=True)
class RetrievalOutcome:
    """Outcome of :meth:`RetrievalOrchestrator.retrieve`.

    Attributes
    ----------
    results : list[RetrievalResult]
        Deduplicated results, document hits first.
    total_results : int
        Number of hits before deduplication.
    full_context : str
        Result texts joined by blank lines.
    display_context : str
        Truncated excerpt of ``full_context`` for display.
    has_more_context : bool
        Whether ``full_context`` is longer than the display limit.
    source : str
        ``"PDF"``, ``"CSV"`` or ``"BOTH"``.
    search_terms : list[str]
        Expanded query terms that were searched.
    """
    results: list[RetrievalResult]
    total_results: int
    full_context: str
    display_context: str
    has_more_context: bool
    source: str
    search_terms: list[str] = field(default_factory=list)

    def to_metadata(self, source: Optional[str] = None) -> AnswerMetadata:
        """Return the client-facing summary, optionally overriding ``source``."""
        return AnswerMetadata(
            source=source or self.source,
            context=self.display_context,
            has_more_context=self.has_more_context,
            total_results=self.total_results,
        )


def deduplicate(results: Iterable[RetrievalResult], strategy: str = "first") -> list[RetrievalResult]:
    """Drop results whose text repeats an earlier one.

    Parameters
    ----------
    results : Iterable[RetrievalResult]
        Merged results in priority order.
    strategy : str, optional
        ``"first"`` keeps the first occurrence as is. ``"best"`` keeps the
        position of the first occurrence but the highest-scoring duplicate.

    Returns
    -------
    list[RetrievalResult]
        Results with unique text, in first-seen order.
    """
    if strategy not in DEDUP_STRATEGIES:
        raise ValueError(f"Unknown dedup strategy '{strategy}'. Expected one of {DEDUP_STRATEGIES}.")

    kept: dict[str, RetrievalResult] = {}
    for result in results:
        current = kept.get(result.text)
        if current is None:
            kept[result.text] = result
        elif strategy == "best" and result.similarity_score > current.similarity_score:
            kept[result.text] = result
    return list(kept.values())


def source_label(results: Sequence[RetrievalResult]) -> str:
    """Label which indexes contributed; ``"PDF"`` when nothing surfaced."""
    kinds = {result.source_kind for result in results}
    if "pdf" in kinds and "csv" in kinds:
        return "BOTH"
    if kinds == {"csv"}:
        return "CSV"
    return "PDF"


class RetrievalOrchestrator:
    """Search one or two indexes with an expanded query.

    Parameters
    ----------
    expander : QueryExpander
        Query expansion strategy.
    top_k : int, optional
        Results requested per term and index. Defaults to ``5``.
    form_keywords : Sequence[str], optional
        Keywords that enable the form-field search.
    display_limit : int, optional
        Characters of context shown to the client. Defaults to ``500``.
    dedup : str, optional
        Deduplication strategy, ``"first"`` or ``"best"``.
    """

    def __init__(
            self,
            expander: QueryExpander,
            *,
            top_k: int = 5,
            form_keywords: Sequence[str] = DEFAULT_FORM_KEYWORDS,
            display_limit: int = DEFAULT_DISPLAY_LIMIT,
            dedup: str = "first",
        ):
        if dedup not in DEDUP_STRATEGIES:
            raise ValueError(f"Unknown dedup strategy '{dedup}'. Expected one of {DEDUP_STRATEGIES}.")
        self.expander = expander
        self.top_k = int(top_k)
        self.form_keywords = tuple(keyword.lower() for keyword in form_keywords)
        self.display_limit = int(display_limit)
        self.dedup = dedup

    def should_search_forms(self, query: str) -> bool:
        """Return ``True`` when ``query`` mentions a form-related keyword."""
        lowered = query.lower()
        return any(keyword in lowered for keyword in self.form_keywords)

    async def _search_all(self, index: SearchableIndex, terms: Sequence[str]) -> list[RetrievalResult]:
        batches = await asyncio.gather(*(index.search(term, self.top_k) for term in terms))
        return [result for batch in batches for result in batch]

    async def retrieve(
            self,
            query: str,
            document_index: SearchableIndex,
            form_index: Optional[SearchableIndex] = None,
        ) -> RetrievalOutcome:
        """Run expanded retrieval for ``query``.

        Parameters
        ----------
        query : str
            User question.
        document_index : SearchableIndex
            Index over the field manual.
        form_index : SearchableIndex or None, optional
            Index over the form-field rows; searched only for form questions.

        Returns
        -------
        RetrievalOutcome
            Deduplicated results and assembled context.

        Raises
        ------
        RetrievalError
            If any search fails to embed its query.
        """
        terms = self.expander.expand(query)
        logger.debug("Searching with %d terms: %s", len(terms), terms)

        try:
            merged = await self._search_all(document_index, terms)
            if form_index is not None and self.should_search_forms(query):
                merged.extend(await self._search_all(form_index, terms))
        except EmbeddingError as exc:
            raise RetrievalError(f"Search failed: {exc}") from exc

        results = deduplicate(merged, self.dedup)
        full_context = "\n\n".join(result.text for result in results)

        if not results:
            display_context = NO_CONTEXT_MESSAGE
        elif len(full_context) > self.display_limit:
            display_context = full_context[: self.display_limit] + "..."
        else:
            display_context = full_context

        outcome = RetrievalOutcome(
            results=results,
            total_results=len(merged),
            full_context=full_context,
            display_context=display_context,
            has_more_context=len(full_context) > self.display_limit,
            source=source_label(results),
            search_terms=list(terms),
        )
        logger.info(
            "Retrieved %d results (%d before dedup), source=%s",
            len(results), len(merged), outcome.source,
        )
        return outcome


__all__ = [
    "DEFAULT_FORM_KEYWORDS",
    "RetrievalOutcome",
    "RetrievalOrchestrator",
    "deduplicate",
    "source_label",
]
