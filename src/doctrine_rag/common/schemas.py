"""doctrine_rag.common.schemas

Core data schemas shared across the RAG pipeline.

These lightweight dataclasses describe the canonical shapes passed between
loading, chunking, embedding, retrieval, and generation components.

Classes
-------
Document
    A full, un-split source unit (one PDF page or one CSV row).
DocumentChunk
    An immutable chunk derived from a :class:`Document`, suitable for embedding.
RetrievalResult
    A chunk text returned by a similarity search, with its score.
AnswerMetadata
    Retrieval summary sent to the client alongside an answer.
ConversationTurn
    A single chat message as held by the user interface.

Notes
-----
``metadata`` is intentionally untyped (``dict[str, Any]``) to allow arbitrary
key/value pairs (e.g., page number, category). Downstream code should treat
missing keys defensively.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal
from uuid import uuid4

SourceKind = Literal["pdf", "csv"]


@dataclass
class Document:
    """Container for a raw source document.

    Attributes
    ----------
    text : str
        Full textual content, prior to chunking.
    document_type : str
        Coarse source label, either ``"pdf"`` or ``"csv"``.
    id : str
        Unique identifier. Defaults to a random UUID4 string.
    metadata : Dict[str, Any]
        Arbitrary metadata (e.g., ``{"page": 3}`` or ``{"field": "Rank"}``).
    """
    text: str
    document_type: str
    id: str = field(default_factory=lambda: str(uuid4()))
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentChunk:
    """A contiguous slice of a :class:`Document` used as a retrieval unit.

    Attributes
    ----------
    text : str
        Chunk text content.
    source_kind : str
        ``"pdf"`` or ``"csv"``, inherited from the parent document type.
    page_or_field : Any
        Page number for PDF chunks, field label for CSV chunks.
    metadata : Dict[str, Any]
        Metadata propagated from the parent plus ``chunk_index``.
    """
    text: str
    source_kind: str
    page_or_field: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetrievalResult:
    """A single ranked search hit.

    Attributes
    ----------
    text : str
        Text of the matched chunk (or of an injected memory context).
    similarity_score : float
        Cosine similarity between the query and the chunk embedding.
    source_kind : str
        Which index produced the hit (``"pdf"`` or ``"csv"``).
    metadata : Dict[str, Any]
        Chunk metadata, or ``{"source": "memory", ...}`` for memory context.
    """
    text: str
    similarity_score: float
    source_kind: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AnswerMetadata:
    """Retrieval summary returned with every answer."""
    source: str
    context: str
    has_more_context: bool
    total_results: int

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase wire representation."""
        return {
            "source": self.source,
            "context": self.context,
            "hasMoreContext": self.has_more_context,
            "totalResults": self.total_results,
        }


@dataclass
class ConversationTurn:
    """A chat message held client-side; never persisted by the server."""
    role: Literal["user", "assistant"]
    content: str
    source_label: str | None = None
    context_excerpt: str | None = None
