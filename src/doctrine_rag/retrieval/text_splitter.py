"""doctrine_rag.retrieval.text_splitter

Text splitting and chunking utilities for the retrieval layer.

This module converts raw :class:`~doctrine_rag.common.schemas.Document`
objects into :class:`~doctrine_rag.common.schemas.DocumentChunk` objects by
recursively splitting text along natural boundaries (paragraph, line,
sentence, word, character) and re-injecting a fixed character overlap between
consecutive chunks.

Classes
-------
RecursiveTextSplitter
    Separator-priority splitter with exact character overlap.

Functions
---------
create_text_splitter
    Build a splitter from a configuration mapping.
"""

import logging
import re
from typing import Any, List, Mapping, Optional, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from doctrine_rag.common import Document, DocumentChunk

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1500
DEFAULT_OVERLAP = 300
DEFAULT_SEPARATORS = [
    "\n\n",  # paragraphs
    "\n",    # lines
    ". ",
    "! ",
    "? ",
    "; ",
    ": ",
    ", ",
    " ",     # words
    "",      # hard character cut
]

SOURCE_DEFAULTS: dict[str, dict[str, Any]] = {
    "pdf": {
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "chunk_overlap": DEFAULT_OVERLAP,
        "separators": DEFAULT_SEPARATORS,
        "normalize_whitespace": True,
    },
    # Rows are line based, so newlines must survive.
    "csv": {
        "chunk_size": 1000,
        "chunk_overlap": 200,
        "separators": ["\n\n", "\n", ".", "!", "?", ",", " ", ""],
        "normalize_whitespace": False,
    },
}

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace to a single space and strip the ends."""
    return _WHITESPACE_RUN.sub(" ", text or "").strip()


class RecursiveTextSplitter:
    """Split text into overlapping, size-bounded chunks.

    Text is first packed into pieces no longer than
    ``chunk_size - chunk_overlap`` by LangChain's
    ``RecursiveCharacterTextSplitter``, which tries the separators in priority
    order and falls back to later ones for pieces that are still too long.
    Each chunk after the first is then prefixed with the trailing
    ``chunk_overlap`` characters of the chunk before it.

    Stripping that prefix from every non-first chunk and concatenating the
    results reproduces the (normalised) input.

    Parameters
    ----------
    chunk_size : int, optional
        Maximum chunk length in characters, overlap included.
    chunk_overlap : int, optional
        Number of characters repeated at the head of each following chunk.
    separators : Sequence[str] or None, optional
        Boundaries in priority order. An empty string means a hard cut.
    normalize_whitespace : bool, optional
        Collapse whitespace runs before splitting. Defaults to ``True``.

    Raises
    ------
    ValueError
        If ``chunk_size`` is not positive or ``chunk_overlap`` is not in
        ``[0, chunk_size)``.
    """

    def __init__(
            self,
            chunk_size: int = DEFAULT_CHUNK_SIZE,
            chunk_overlap: int = DEFAULT_OVERLAP,
            separators: Optional[Sequence[str]] = None,
            normalize_whitespace: bool = True,
        ):
        chunk_size = int(chunk_size)
        chunk_overlap = int(chunk_overlap)
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}.")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError(
                f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for chunk_size={chunk_size}."
            )

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(DEFAULT_SEPARATORS if separators is None else separators)
        self.normalize_whitespace = normalize_whitespace
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.budget,
            chunk_overlap=0,
            separators=self.separators,
            keep_separator="end",
            strip_whitespace=False,
        )

    @property
    def budget(self) -> int:
        """Maximum length of a chunk before its overlap prefix is added."""
        return self.chunk_size - self.chunk_overlap

    def split_text(self, text: str) -> List[str]:
        """Split ``text`` into ordered, overlapping chunks.

        Parameters
        ----------
        text : str
            Raw text.

        Returns
        -------
        list[str]
            Chunks in original order. Empty input yields an empty list.
        """
        if self.normalize_whitespace:
            text = normalize_whitespace(text)
        if not text or not text.strip():
            return []

        return self._add_overlap(self._split(text))

    def split_documents(self, documents: Sequence[Document]) -> List[DocumentChunk]:
        """Chunk documents, carrying their source kind and locator onto each chunk.

        Parameters
        ----------
        documents : Sequence[Document]
            Documents of type ``"pdf"`` (with ``page`` metadata) or ``"csv"``
            (with ``field`` metadata).

        Returns
        -------
        list[DocumentChunk]
            Chunks from all documents, in document order.
        """
        chunks: List[DocumentChunk] = []
        for document in documents:
            page_or_field = document.metadata.get("page", document.metadata.get("field"))
            for idx, text in enumerate(self.split_text(document.text)):
                chunks.append(
                    DocumentChunk(
                        text=text,
                        source_kind=document.document_type,
                        page_or_field=page_or_field,
                        metadata={**document.metadata, "chunk_index": idx, "parent_id": document.id},
                    )
                )
        logger.debug("Split %d documents into %d chunks", len(documents), len(chunks))
        return chunks

    def _split(self, text: str) -> List[str]:
        """Break ``text`` into budget-sized chunks without overlap.

        Separators are kept at the end of the piece they close and no
        whitespace is stripped, so the chunks concatenate back to ``text``.
        """
        return self._splitter.split_text(text)

    def _add_overlap(self, chunks: Sequence[str]) -> List[str]:
        if self.chunk_overlap == 0 or len(chunks) < 2:
            return list(chunks)

        out = [chunks[0]]
        for chunk in chunks[1:]:
            out.append(out[-1][-self.chunk_overlap:] + chunk)
        return out


def create_text_splitter(
        config: Mapping[str, Any] | None = None,
        source_kind: Optional[str] = None,
    ) -> RecursiveTextSplitter:
    """Create a :class:`RecursiveTextSplitter` from a configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any] or None
        Optional keys ``chunk_size``, ``chunk_overlap``, ``separators``,
        ``normalize_whitespace``.
    source_kind : str or None
        When ``"pdf"`` or ``"csv"``, missing keys fall back to that source's
        entry in :data:`SOURCE_DEFAULTS`.

    Returns
    -------
    RecursiveTextSplitter
        Configured splitter.

    Raises
    ------
    TypeError
        If ``separators`` is not a list of strings.
    """
    cfg = {**SOURCE_DEFAULTS.get(source_kind or "", {}), **dict(config or {})}
    separators = cfg.get("separators")
    if separators is not None and (
        not isinstance(separators, list) or not all(isinstance(s, str) for s in separators)
    ):
        raise TypeError("'separators' must be a list of strings.")

    return RecursiveTextSplitter(
        chunk_size=cfg.get("chunk_size", DEFAULT_CHUNK_SIZE),
        chunk_overlap=cfg.get("chunk_overlap", DEFAULT_OVERLAP),
        separators=separators,
        normalize_whitespace=bool(cfg.get("normalize_whitespace", True)),
    )


__all__ = [
    "RecursiveTextSplitter",
    "create_text_splitter",
    "SOURCE_DEFAULTS",
    "normalize_whitespace",
]
