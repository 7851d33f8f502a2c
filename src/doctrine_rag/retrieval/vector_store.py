"""doctrine_rag.retrieval.vector_store

In-memory vector index for the retrieval layer.

Each request builds its own index from freshly chunked documents, embeds every
chunk once, and answers similarity queries with an exhaustive cosine scan.
Nothing is persisted or shared across requests; the corpus is expected to be
tens to low hundreds of chunks.

Classes
-------
InMemoryVectorIndex
    Holds (chunk, embedding) pairs and ranks them against a query.

Functions
---------
cosine_similarity
    Cosine similarity of two vectors, ``0.0`` when either norm is zero.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from doctrine_rag.common import DocumentChunk, EmbeddingError, RetrievalResult
from doctrine_rag.retrieval.embedder import BaseEmbedder

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``.

    A zero-norm vector on either side yields ``0.0`` rather than NaN.

    Raises
    ------
    ValueError
        If the vectors differ in length.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimensions differ: {va.shape} vs {vb.shape}")

    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def _cosine_scores(matrix: np.ndarray, norms: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Cosine of ``query`` against every row, with zero norms scored as 0."""
    q_norm = float(np.linalg.norm(query))
    denom = norms * q_norm
    dots = matrix @ query
    scores = np.zeros_like(dots)
    np.divide(dots, denom, out=scores, where=denom > 0)
    return scores


class InMemoryVectorIndex:
    """Exhaustive cosine-similarity index over one source's chunks.

    Parameters
    ----------
    chunks : Sequence[DocumentChunk]
        Chunks in insertion order.
    embeddings : Sequence[Sequence[float]]
        One embedding per chunk, row-aligned with ``chunks``.
    embedder : BaseEmbedder
        Embedder used to embed queries at search time.
    source_kind : str
        ``"pdf"`` or ``"csv"``; stamped on every result.

    Raises
    ------
    ValueError
        If the number of embeddings does not match the number of chunks, or
        the embeddings are not all the same length.
    """

    def __init__(
            self,
            *,
            chunks: Sequence[DocumentChunk],
            embeddings: Sequence[Sequence[float]],
            embedder: BaseEmbedder,
            source_kind: str,
        ):
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(chunks)} chunks."
            )

        self.chunks = list(chunks)
        self.embedder = embedder
        self.source_kind = source_kind

        if self.chunks:
            self._matrix = np.asarray(embeddings, dtype=np.float64)
            if self._matrix.ndim != 2:
                raise ValueError("Embeddings must all have the same dimension.")
        else:
            self._matrix = np.zeros((0, 0), dtype=np.float64)
        self._norms = np.linalg.norm(self._matrix, axis=1) if self.chunks else np.zeros(0)

    @classmethod
    async def build(
            cls,
            chunks: Sequence[DocumentChunk],
            embedder: BaseEmbedder,
            source_kind: str,
        ) -> "InMemoryVectorIndex":
        """Embed every chunk and return a ready index.

        Parameters
        ----------
        chunks : Sequence[DocumentChunk]
            Chunks to index.
        embedder : BaseEmbedder
            Embedding capability.
        source_kind : str
            ``"pdf"`` or ``"csv"``.

        Returns
        -------
        InMemoryVectorIndex
            The populated index.

        Raises
        ------
        EmbeddingError
            If embedding fails for any chunk; no partial index is returned.
        """
        texts = [chunk.text for chunk in chunks]
        embeddings: list[list[float]] = []
        if texts:
            try:
                embeddings = await embedder.aembed_documents(texts)
            except Exception as exc:
                raise EmbeddingError(
                    f"Failed to embed {len(texts)} {source_kind} chunks: {type(exc).__name__}"
                ) from exc
            if len(embeddings) != len(texts):
                raise EmbeddingError(
                    f"Embedder returned {len(embeddings)} vectors for {len(texts)} {source_kind} chunks."
                )

        logger.info("Built %s index with %d chunks", source_kind, len(texts))
        return cls(chunks=chunks, embeddings=embeddings, embedder=embedder, source_kind=source_kind)

    def __len__(self) -> int:
        return len(self.chunks)

    @property
    def embeddings(self) -> list[list[float]]:
        """Stored chunk embeddings, row-aligned with :attr:`chunks`."""
        return self._matrix.tolist() if self.chunks else []

    def search_by_vector(self, query_embedding: Sequence[float], k: int) -> list[RetrievalResult]:
        """Rank stored chunks against a pre-computed query embedding.

        Parameters
        ----------
        query_embedding : Sequence[float]
            Query vector with the index dimension.
        k : int
            Maximum number of results.

        Returns
        -------
        list[RetrievalResult]
            Top-``k`` results by descending similarity; ties keep insertion order.
        """
        if not self.chunks or k <= 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)
        if query.shape != (self._matrix.shape[1],):
            raise ValueError(
                f"Query embedding has shape {query.shape}, index dimension is {self._matrix.shape[1]}."
            )

        scores = _cosine_scores(self._matrix, self._norms, query)
        order = np.argsort(-scores, kind="stable")[:k]

        return [
            RetrievalResult(
                text=self.chunks[i].text,
                similarity_score=float(scores[i]),
                source_kind=self.source_kind,
                metadata=dict(self.chunks[i].metadata),
            )
            for i in order.tolist()
        ]

    async def search(self, query: str, k: int = 5) -> list[RetrievalResult]:
        """Embed ``query`` and return the ``k`` most similar chunks.

        Raises
        ------
        EmbeddingError
            If the query embedding call fails.
        """
        if not self.chunks:
            return []

        try:
            query_embedding = await self.embedder.aembed_query(query)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {type(exc).__name__}") from exc

        return self.search_by_vector(query_embedding, k)


__all__ = [
    "InMemoryVectorIndex",
    "cosine_similarity",
]
