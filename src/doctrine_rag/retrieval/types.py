"""doctrine_rag.retrieval.types

Shared type definitions for the retrieval layer.

Classes
-------
SearchableIndex
    Protocol implemented by the vector index and by its memory-augmented
    wrapper, so the orchestrator can treat them interchangeably.
"""

from typing import List, Protocol

from doctrine_rag.common import RetrievalResult


class SearchableIndex(Protocol):
    """Protocol defining the index search interface.

    Attributes
    ----------
    source_kind : str
        ``"pdf"`` or ``"csv"``.
    """

    source_kind: str

    async def search(self, query: str, k: int = 5) -> List[RetrievalResult]:
        """Return up to ``k`` results ranked by descending similarity.

        Raises
        ------
        EmbeddingError
            If the query cannot be embedded.
        """
        ...
