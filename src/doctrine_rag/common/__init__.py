"""
Common building blocks shared across the RAG stack.

This package provides small, widely-used primitives (document schemas, the
error taxonomy, token estimation) imported by multiple layers of the system.

Classes
-------
Document
    Canonical document container (one PDF page or CSV row).
DocumentChunk
    Immutable chunk of a document with its source kind and locator.
RetrievalResult
    Ranked search hit.
AnswerMetadata
    Retrieval summary returned with an answer.
ConversationTurn
    UI-side chat message.

See Also
--------
doctrine_rag.common.errors
    Exception hierarchy used at the request boundary.
"""
from __future__ import annotations

from .errors import (
    DoctrineRAGError,
    EmbeddingError,
    GenerationError,
    InputError,
    RetrievalError,
)
from .schemas import (
    AnswerMetadata,
    ConversationTurn,
    Document,
    DocumentChunk,
    RetrievalResult,
)

__all__ = [
    "Document",
    "DocumentChunk",
    "RetrievalResult",
    "AnswerMetadata",
    "ConversationTurn",
    "DoctrineRAGError",
    "InputError",
    "EmbeddingError",
    "RetrievalError",
    "GenerationError",
]
