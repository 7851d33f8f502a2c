"""doctrine_rag.retrieval.memory

Request-scoped memory context and the index wrapper that consults it.

While documents are chunked, every chunk is also remembered under a
``"{source_kind}_{page_or_field}"`` key (so the last chunk of a page or field
wins). At search time the entries most similar to the query are concatenated,
within a token budget, into one extra context passage that is placed ahead of
the regular vector hits.

The memory is owned by a single request: the pipeline creates and fills it,
each lookup first sweeps entries older than the configured age, and the
memory is dropped when the request ends.

Classes
-------
MemoryEntry
    One remembered passage.
MemorySettings
    Configuration for creating request-scoped contexts.
MemoryHit
    Combined context returned by a lookup.
MemoryContext
    Keyed store with similarity lookup and age-based sweeping.
MemoryAugmentedIndex
    Wraps a searchable index and prepends the memory context to its results.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from doctrine_rag.common import DocumentChunk, EmbeddingError, RetrievalResult
from doctrine_rag.common.tokenisation import HeuristicTokenCounter, TokenCounter
from doctrine_rag.retrieval.embedder import BaseEmbedder
from doctrine_rag.retrieval.vector_store import InMemoryVectorIndex, cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 5
DEFAULT_MAX_TOKENS = 4000
DEFAULT_MAX_AGE_SECONDS = 3600.0


@dataclass
class MemoryEntry:
    """A remembered passage.

    Attributes
    ----------
    content : str
        Passage text.
    metadata : dict[str, Any]
        Arbitrary metadata (source kind, page or field).
    timestamp : float
        Clock value when the entry was (re)written.
    tokens : int
        Estimated token count of ``content``.
    embedding : list[float] or None
        Cached embedding, filled on first lookup.
    """
    content: str
    metadata: Dict[str, Any]
    timestamp: float
    tokens: int
    embedding: Optional[List[float]] = field(default=None, repr=False)


@dataclass(frozen=True)
class MemorySettings:
    """Memory configuration read from the ``memory`` config section."""
    enabled: bool = True
    context_window: int = DEFAULT_CONTEXT_WINDOW
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any] | None) -> "MemorySettings":
        config = config or {}
        return cls(
            enabled=bool(config.get("enabled", True)),
            context_window=int(config.get("context_window", DEFAULT_CONTEXT_WINDOW)),
            max_tokens=int(config.get("max_tokens", DEFAULT_MAX_TOKENS)),
            max_age_seconds=float(config.get("max_age_seconds", DEFAULT_MAX_AGE_SECONDS)),
        )

    def new_context(self) -> "MemoryContext":
        return MemoryContext(
            context_window=self.context_window,
            max_tokens=self.max_tokens,
            max_age_seconds=self.max_age_seconds,
        )


@dataclass(frozen=True)
class MemoryHit:
    """Concatenated memory context and the best similarity it contains."""
    text: str
    similarity_score: float
    keys: tuple[str, ...]


class MemoryContext:
    """Keyed passage store consulted alongside the vector index.

    Parameters
    ----------
    context_window : int, optional
        Maximum number of entries combined per lookup. Defaults to ``5``.
    max_tokens : int, optional
        Token budget for the combined context. Defaults to ``4000``.
    max_age_seconds : float, optional
        Entries older than this are swept before each lookup. Defaults to
        ``3600``.
    token_counter : TokenCounter or None, optional
        Token estimator. Defaults to ``len(text) / 4`` rounded up.
    clock : Callable[[], float] or None, optional
        Time source in seconds. Defaults to :func:`time.monotonic`.
    """

    def __init__(
            self,
            *,
            context_window: int = DEFAULT_CONTEXT_WINDOW,
            max_tokens: int = DEFAULT_MAX_TOKENS,
            max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
            token_counter: TokenCounter | None = None,
            clock: Callable[[], float] | None = None,
        ):
        self.context_window = max(1, int(context_window))
        self.max_tokens = int(max_tokens)
        self.max_age_seconds = float(max_age_seconds)
        self.token_counter = token_counter or HeuristicTokenCounter()
        self._clock = clock or time.monotonic
        self._entries: Dict[str, MemoryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def add(
            self,
            key: str,
            content: str,
            metadata: Dict[str, Any] | None = None,
            embedding: Optional[List[float]] = None,
        ) -> None:
        """Store ``content`` under ``key``, replacing any previous entry."""
        self._entries[key] = MemoryEntry(
            content=content,
            metadata=dict(metadata or {}),
            timestamp=self._clock(),
            tokens=self.token_counter.count(content),
            embedding=list(embedding) if embedding is not None else None,
        )

    def add_chunks(
            self,
            chunks: Sequence[DocumentChunk],
            embeddings: Optional[Sequence[Sequence[float]]] = None,
        ) -> None:
        """Remember each chunk under ``"{source_kind}_{page_or_field}"``.

        ``embeddings``, when given, are row-aligned with ``chunks`` and are
        cached on the entries so lookups do not embed them again.
        """
        if embeddings is not None and len(embeddings) != len(chunks):
            raise ValueError(f"Got {len(embeddings)} embeddings for {len(chunks)} chunks.")
        for i, chunk in enumerate(chunks):
            locator = chunk.page_or_field if chunk.page_or_field not in (None, "") else 1
            self.add(
                f"{chunk.source_kind}_{locator}",
                chunk.text,
                {"source": chunk.source_kind, **chunk.metadata},
                embedding=embeddings[i] if embeddings is not None else None,
            )

    def sweep(self, max_age: Optional[float] = None) -> int:
        """Drop entries older than ``max_age`` seconds (default ``max_age_seconds``).

        Returns
        -------
        int
            Number of entries removed.
        """
        max_age = self.max_age_seconds if max_age is None else max_age
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.timestamp > max_age]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired memory entries", len(expired))
        return len(expired)

    async def lookup(self, query: str, embedder: BaseEmbedder) -> MemoryHit | None:
        """Embed ``query`` and combine the entries most similar to it.

        See :meth:`lookup_vector` for how entries are selected.

        Raises
        ------
        EmbeddingError
            If the query or any uncached entry cannot be embedded.
        """
        self.sweep()
        if not self._entries:
            return None

        try:
            query_embedding = await embedder.aembed_query(query)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed memory query: {type(exc).__name__}") from exc
        return await self.lookup_vector(query_embedding, embedder)

    async def lookup_vector(
            self,
            query_embedding: Sequence[float],
            embedder: BaseEmbedder,
        ) -> MemoryHit | None:
        """Combine the entries most similar to a pre-computed query embedding.

        Expired entries are swept first. The top ``context_window`` entries by
        cosine similarity are joined with blank lines, in similarity order,
        stopping before the first entry that would exceed ``max_tokens``.

        Parameters
        ----------
        query_embedding : Sequence[float]
            Query vector.
        embedder : BaseEmbedder
            Used only for entries added without an embedding.

        Returns
        -------
        MemoryHit or None
            ``None`` when the memory is empty or nothing fits the budget.

        Raises
        ------
        EmbeddingError
            If any uncached entry cannot be embedded.
        """
        self.sweep()
        if not self._entries:
            return None

        pending = [entry for entry in self._entries.values() if entry.embedding is None]
        if pending:
            try:
                vectors = await embedder.aembed_documents([entry.content for entry in pending])
            except Exception as exc:
                raise EmbeddingError(f"Failed to embed memory context: {type(exc).__name__}") from exc
            for entry, vector in zip(pending, vectors):
                entry.embedding = list(vector)

        scored = [
            (cosine_similarity(query_embedding, entry.embedding), key, entry)
            for key, entry in self._entries.items()
        ]
        # Stable sort keeps insertion order among equal similarities.
        scored.sort(key=lambda item: item[0], reverse=True)

        parts: list[str] = []
        keys: list[str] = []
        total_tokens = 0
        best = None
        for similarity, key, entry in scored[: self.context_window]:
            if total_tokens + entry.tokens > self.max_tokens:
                break
            parts.append(entry.content)
            keys.append(key)
            total_tokens += entry.tokens
            best = similarity if best is None else max(best, similarity)

        if not parts:
            return None
        return MemoryHit(text="\n\n".join(parts).strip(), similarity_score=float(best), keys=tuple(keys))


class MemoryAugmentedIndex:
    """Search wrapper combining a memory lookup with a vector index.

    Implements the same ``search`` interface as the wrapped index. The query
    is embedded once and the vector serves both the memory lookup and the
    index search. When the memory yields context it is returned first, as a
    result tagged ``metadata["source"] == "memory"``, followed by the index
    results.

    Parameters
    ----------
    base : InMemoryVectorIndex
        Index to delegate vector search to.
    memory : MemoryContext
        Request-scoped memory.
    embedder : BaseEmbedder
        Embedder for the query (and any uncached memory entries).
    """

    def __init__(self, base: InMemoryVectorIndex, memory: MemoryContext, embedder: BaseEmbedder):
        self.base = base
        self.memory = memory
        self.embedder = embedder

    @property
    def source_kind(self) -> str:
        return self.base.source_kind

    def __len__(self) -> int:
        return len(self.base)

    async def search(self, query: str, k: int = 5) -> list[RetrievalResult]:
        """Return the memory passage (if any) followed by the top ``k`` chunks.

        Raises
        ------
        EmbeddingError
            If the query or an uncached memory entry cannot be embedded.
        """
        self.memory.sweep()
        if not len(self.memory) and not len(self.base):
            return []

        try:
            query_embedding = await self.embedder.aembed_query(query)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {type(exc).__name__}") from exc

        hit = await self.memory.lookup_vector(query_embedding, self.embedder)
        results = self.base.search_by_vector(query_embedding, k)
        if hit is None:
            return results

        context = RetrievalResult(
            text=hit.text,
            similarity_score=hit.similarity_score,
            source_kind=self.base.source_kind,
            metadata={"source": "memory", "type": "context", "keys": list(hit.keys)},
        )
        return [context, *results]


__all__ = [
    "MemoryEntry",
    "MemorySettings",
    "MemoryHit",
    "MemoryContext",
    "MemoryAugmentedIndex",
]
