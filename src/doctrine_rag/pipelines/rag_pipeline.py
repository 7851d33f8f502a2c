"""doctrine_rag.pipelines.rag_pipeline

End-to-end Retrieval-Augmented Generation (RAG) pipeline orchestration.

This module defines the :class:`RAGPipeline`, which handles one question from
raw inputs to answer: it loads the uploaded (or default) documents, chunks
them, builds per-request vector indexes, retrieves context and generates the
answer, either complete or streamed.

Classes
-------
PipelineResult
    Answer metadata plus either the full answer or a token stream.
RAGPipeline
    Orchestrates loading → chunking → indexing → retrieval → generation.

Notes
-----
Nothing is cached between calls: every run builds its indexes and memory
context from scratch and discards them when it returns.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional

from doctrine_rag.common import AnswerMetadata, DocumentChunk, GenerationError, InputError
from doctrine_rag.generation.answer_generator import AnswerGenerator
from doctrine_rag.retrieval.document_loader import DocumentSource, load_csv_documents, load_pdf_pages
from doctrine_rag.retrieval.embedder import BaseEmbedder
from doctrine_rag.retrieval.memory import MemoryAugmentedIndex, MemorySettings
from doctrine_rag.retrieval.retriever import RetrievalOrchestrator, RetrievalOutcome
from doctrine_rag.retrieval.text_splitter import RecursiveTextSplitter
from doctrine_rag.retrieval.vector_store import InMemoryVectorIndex

logger = logging.getLogger(__name__)

ERROR_SOURCE = "ERROR"
DEFAULT_APOLOGY = (
    "I apologize, but I encountered an error while generating a response. "
    "Please try again later."
)


@dataclass
class PipelineResult:
    """Result of :meth:`RAGPipeline.run`.

    Attributes
    ----------
    metadata : AnswerMetadata
        Source label and display context for the client.
    answer : str or None
        Complete answer, set for non-streamed runs.
    tokens : AsyncIterator[str] or None
        Answer fragments, set for streamed runs.
    """
    metadata: AnswerMetadata
    answer: Optional[str] = None
    tokens: Optional[AsyncIterator[str]] = None

    @property
    def streaming(self) -> bool:
        return self.tokens is not None


async def _single(text: str) -> AsyncIterator[str]:
    yield text


class RAGPipeline:
    """Retrieval-Augmented Generation (RAG) orchestrator.

    This class wires together:
    - per-source text splitters
    - an embedder used to build the per-request indexes
    - a retrieval orchestrator (query expansion, search, dedup)
    - an answer generator wrapping the chat model

    Parameters
    ----------
    splitters : Mapping[str, RecursiveTextSplitter]
        Splitter per source kind; must contain ``"pdf"`` and ``"csv"``.
    embedder : BaseEmbedder
        Embedding capability.
    orchestrator : RetrievalOrchestrator
        Retrieval strategy.
    answer_generator : AnswerGenerator
        Prompting and model call.
    document_source : DocumentSource
        Default documents used when a request carries no upload.
    memory_settings : MemorySettings or None, optional
        Memory context configuration. Defaults to enabled with default limits.
    apology : str, optional
        Text returned in place of an answer when generation fails.
    """

    def __init__(self,
                 splitters: Mapping[str, RecursiveTextSplitter],
                 embedder: BaseEmbedder,
                 orchestrator: RetrievalOrchestrator,
                 answer_generator: AnswerGenerator,
                 document_source: DocumentSource,
                 memory_settings: MemorySettings | None = None,
                 apology: str = DEFAULT_APOLOGY,
        ):
        missing = {"pdf", "csv"} - set(splitters)
        if missing:
            raise KeyError(f"Missing text splitter for source kinds: {sorted(missing)}")

        self.splitters = dict(splitters)
        self.embedder = embedder
        self.orchestrator = orchestrator
        self.answer_generator = answer_generator
        self.document_source = document_source
        self.memory_settings = memory_settings or MemorySettings()
        self.apology = apology

    def _load_chunks(self, kind: str, raw: bytes | str | None) -> list[DocumentChunk]:
        """Read (or fall back to the default), parse and chunk one source."""
        if kind == "pdf":
            documents = load_pdf_pages(raw or self.document_source.load_default_pdf())
        else:
            if raw is None or not raw.strip():
                raw = self.document_source.load_default_csv()
            documents = load_csv_documents(raw)
        chunks = self.splitters[kind].split_documents(documents)
        logger.info("Chunked %d %s documents into %d chunks", len(documents), kind.upper(), len(chunks))
        return chunks

    async def _build_index(self, kind: str, raw: bytes | str | None) -> InMemoryVectorIndex:
        # Parsing and chunking are CPU bound; keep them off the event loop.
        loop = asyncio.get_running_loop()
        chunks = await loop.run_in_executor(None, self._load_chunks, kind, raw)
        return await InMemoryVectorIndex.build(chunks, self.embedder, kind)

    async def build_indexes(
            self,
            pdf_bytes: Optional[bytes] = None,
            csv_text: Optional[str] = None,
        ) -> tuple:
        """Load, chunk and index both sources concurrently.

        Uploaded content takes precedence; otherwise the default documents
        are read. Nothing is reused from earlier calls.

        Returns
        -------
        tuple[SearchableIndex, SearchableIndex]
            Document (PDF) index and form-field (CSV) index, wrapped with a
            fresh memory context when memory is enabled.

        Raises
        ------
        InputError
            If an uploaded document cannot be read.
        EmbeddingError
            If any chunk of either source cannot be embedded.
        """
        pdf_index, csv_index = await asyncio.gather(
            self._build_index("pdf", pdf_bytes),
            self._build_index("csv", csv_text),
        )

        if not self.memory_settings.enabled:
            return pdf_index, csv_index

        memory = self.memory_settings.new_context()
        memory.add_chunks(pdf_index.chunks, pdf_index.embeddings)
        memory.add_chunks(csv_index.chunks, csv_index.embeddings)
        logger.debug("Memory context holds %d entries", len(memory))

        return (
            MemoryAugmentedIndex(pdf_index, memory, self.embedder),
            MemoryAugmentedIndex(csv_index, memory, self.embedder),
        )

    async def run(
            self,
            query: str,
            pdf_bytes: Optional[bytes] = None,
            csv_text: Optional[str] = None,
            stream: bool = False,
        ) -> PipelineResult:
        """Execute the RAG pipeline for a single query.

        The execution order is:
        1. Validate the query.
        2. Load and chunk the documents, then build both indexes concurrently.
        3. Retrieve context with the expanded query.
        4. Generate the answer.

        Parameters
        ----------
        query : str
            User's natural language question.
        pdf_bytes : bytes or None, optional
            Uploaded field manual; the default PDF is used when absent.
        csv_text : str or None, optional
            Uploaded form-field CSV; the default CSV is used when absent.
        stream : bool, optional
            Return a token stream instead of a complete answer.

        Returns
        -------
        PipelineResult
            Metadata plus the answer or its token stream. Generation failures
            are not raised: the apology text is returned and the metadata
            source is ``"ERROR"``.

        Raises
        ------
        InputError
            If the query is missing or an upload is unreadable.
        EmbeddingError
            If the indexes cannot be built.
        RetrievalError
            If a search fails.
        """
        if not isinstance(query, str) or not query.strip():
            raise InputError("Query is required")

        document_index, form_index = await self.build_indexes(pdf_bytes, csv_text)
        outcome = await self.orchestrator.retrieve(query, document_index, form_index)

        if stream:
            return await self._stream_answer(query, outcome)
        return await self._complete_answer(query, outcome)

    async def _complete_answer(self, query: str, outcome: RetrievalOutcome) -> PipelineResult:
        try:
            answer = await self.answer_generator.complete(outcome.full_context, query)
        except GenerationError:
            logger.exception("Answer generation failed")
            return PipelineResult(metadata=outcome.to_metadata(ERROR_SOURCE), answer=self.apology)
        return PipelineResult(metadata=outcome.to_metadata(), answer=answer)

    async def _stream_answer(self, query: str, outcome: RetrievalOutcome) -> PipelineResult:
        tokens = self.answer_generator.stream(outcome.full_context, query)

        # The first fragment is awaited here so a failing call can still be
        # reported through the metadata source.
        try:
            first = await tokens.__anext__()
        except StopAsyncIteration:
            first = ""
        except GenerationError:
            logger.exception("Answer generation failed")
            return PipelineResult(metadata=outcome.to_metadata(ERROR_SOURCE), tokens=_single(self.apology))

        async def relay() -> AsyncIterator[str]:
            if first:
                yield first
            try:
                async for token in tokens:
                    yield token
            except GenerationError:
                logger.exception("Answer stream failed mid-response")
                yield "\n\n" + self.apology

        return PipelineResult(metadata=outcome.to_metadata(), tokens=relay())


__all__ = ["RAGPipeline", "PipelineResult", "DEFAULT_APOLOGY", "ERROR_SOURCE"]
