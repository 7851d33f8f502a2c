"""doctrine_rag.common.errors

Exception hierarchy shared across the RAG stack.

Every error raised deliberately by the pipeline derives from
:class:`DoctrineRAGError` so that the request boundary (HTTP endpoint, CLI)
can map it to a user-facing outcome without leaking provider details.

Classes
-------
DoctrineRAGError
    Base class for all pipeline errors.
InputError
    The request itself is unusable (missing query, unreadable upload).
EmbeddingError
    The embedding provider failed while building or querying an index.
RetrievalError
    A retrieval call failed as a whole.
GenerationError
    The completion provider failed while producing an answer.
"""


class DoctrineRAGError(Exception):
    """Base class for errors raised by the doctrine RAG pipeline."""


class InputError(DoctrineRAGError):
    """Raised when the request payload cannot be processed.

    The message is safe to show to the end user.
    """


class EmbeddingError(DoctrineRAGError):
    """Raised when the embedding provider fails for any text."""


class RetrievalError(DoctrineRAGError):
    """Raised when a retrieval call aborts; no partial results are returned."""


class GenerationError(DoctrineRAGError):
    """Raised when answer generation fails (quota, network, malformed response)."""


__all__ = [
    "DoctrineRAGError",
    "InputError",
    "EmbeddingError",
    "RetrievalError",
    "GenerationError",
]
