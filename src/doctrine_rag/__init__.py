"""doctrine_rag

Retrieval-augmented question answering over Army FM 5-0 and its form fields.

This package contains the building blocks of the assistant: configuration,
document loading and chunking, embeddings and the in-memory vector index,
query expansion and retrieval orchestration, prompt/generation utilities,
and the end-to-end pipeline exposed over HTTP.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
DoctrineContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured :class:`~doctrine_rag.app.container.DoctrineContainer`.
RAGPipeline
    End-to-end Retrieval-Augmented Generation pipeline.
Document
    Canonical document container schema.
DocumentChunk
    Chunk schema derived from a parent document.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("doctrine-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import DoctrineContainer, build_container
from .pipelines.rag_pipeline import RAGPipeline
from .common import Document, DocumentChunk

__all__ = [
    "__version__",
    "GlobalConfig",
    "DoctrineContainer",
    "build_container",
    "RAGPipeline",
    "Document",
    "DocumentChunk",
]
