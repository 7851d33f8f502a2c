"""doctrine_rag.app.container

Composition root for the doctrine RAG system.

This module is the single place where concrete implementations are wired
together from configuration (chat model, embedder, splitters, query expander,
retrieval orchestrator, answer generator and the end-to-end pipeline).
Components are constructed lazily and cached on first access.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

- Per-request state (vector indexes, memory context) is never held here; the
  pipeline builds it on every call.

Examples
--------
>>> import asyncio
>>> from doctrine_rag.config import GlobalConfig
>>> from doctrine_rag.app.container import build_container
>>> cfg = GlobalConfig.load("config/config.yaml")
>>> c = build_container(cfg)
>>> result = asyncio.run(c.pipeline.run("What are the steps in MDMP?"))
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class DoctrineContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : Any
        Loaded global configuration object (typically :class:`doctrine_rag.config.GlobalConfig`).
    """

    config: Any

    @cached_property
    def generator_llm(self) -> Any:
        """Return the chat model used to generate answers."""
        from doctrine_rag.generation.llm_interface import create_llm

        section = _as_mapping(self.config.generator_llm)
        return create_llm(dict(section))

    @cached_property
    def embedder(self) -> Any:
        """Return the embedding client used for chunks and queries."""
        from doctrine_rag.retrieval.embedder import create_embedder

        section = _as_mapping(self.config.embedder)
        return create_embedder(section)

    @cached_property
    def prompt_builder(self) -> Any:
        """Return the prompt builder.

        The builder is initialised from ``config.prompts``. Filesystem prompt
        sources are resolved relative to the loaded config file directory.
        """
        from doctrine_rag.generation.prompt_builder import PromptBuilder

        prompts = getattr(self.config, "prompts", None)
        builder = PromptBuilder()

        if prompts is None:
            return builder

        cfg_path = getattr(self.config, "config_path", None)
        base_dir = Path(cfg_path).expanduser().resolve().parent if cfg_path else None

        sources: list[str]
        if isinstance(prompts, str):
            sources = [prompts]
        elif isinstance(prompts, (list, tuple)):
            sources = [str(p) for p in prompts]
        else:
            raise TypeError(f"config.prompts must be a str or list[str], got {type(prompts)!r}")

        for src in sources:
            builder.register_from_source(src, base_dir=base_dir)

        return builder

    @cached_property
    def prompt_name(self) -> str:
        """Return the configured prompt name.

        Raises
        ------
        ValueError
            If the configured prompt name is not registered.
        """
        prompt_name = str(self.config.prompt_name)

        if prompt_name not in self.prompt_builder.list_prompts():
            available = ", ".join(self.prompt_builder.list_prompts())
            raise ValueError(
                f"Configured prompt_name {prompt_name!r} was not found in loaded prompts. "
                f"Available: [{available}]"
            )

        return prompt_name

    @cached_property
    def splitters(self) -> dict:
        """Return one text splitter per source kind (``"pdf"``, ``"csv"``)."""
        from doctrine_rag.retrieval.text_splitter import create_text_splitter

        section = _as_mapping(getattr(self.config, "chunking", {}))
        return {kind: create_text_splitter(section.get(kind), source_kind=kind) for kind in ("pdf", "csv")}

    @cached_property
    def query_expander(self) -> Any:
        """Return the query expander, with tables overridable in config."""
        from doctrine_rag.retrieval.query_expander import QueryExpander

        section = _as_mapping(getattr(self.config, "query_expansion", {}))
        return QueryExpander(terms=section.get("terms"), templates=section.get("templates"))

    @cached_property
    def orchestrator(self) -> Any:
        """Return the retrieval orchestrator."""
        from doctrine_rag.retrieval.retriever import (
            DEFAULT_DISPLAY_LIMIT,
            DEFAULT_FORM_KEYWORDS,
            RetrievalOrchestrator,
        )

        section = _as_mapping(getattr(self.config, "retrieval", {}))
        return RetrievalOrchestrator(
            self.query_expander,
            top_k=int(section.get("top_k", 5)),
            form_keywords=section.get("form_keywords") or DEFAULT_FORM_KEYWORDS,
            display_limit=int(section.get("display_limit", DEFAULT_DISPLAY_LIMIT)),
            dedup=str(section.get("dedup", "first")),
        )

    @cached_property
    def answer_generator(self) -> Any:
        """Return the answer generator bound to the configured prompt."""
        from doctrine_rag.generation.answer_generator import AnswerGenerator

        return AnswerGenerator(self.generator_llm, self.prompt_builder, self.prompt_name)

    @cached_property
    def document_source(self) -> Any:
        """Return the default document locations."""
        from doctrine_rag.retrieval.document_loader import DocumentSource

        paths = self.config.documents
        return DocumentSource(pdf_path=paths["pdf"], csv_path=paths["csv"])

    @cached_property
    def stream_default(self) -> bool:
        """Whether answers are streamed when a request does not say."""
        section = _as_mapping(getattr(self.config, "generation", {}))
        return bool(section.get("stream", False))

    @cached_property
    def pipeline(self) -> Any:
        """Return the fully wired RAG pipeline."""
        from doctrine_rag.pipelines.rag_pipeline import DEFAULT_APOLOGY, RAGPipeline
        from doctrine_rag.retrieval.memory import MemorySettings

        generation = _as_mapping(getattr(self.config, "generation", {}))
        return RAGPipeline(
            splitters=self.splitters,
            embedder=self.embedder,
            orchestrator=self.orchestrator,
            answer_generator=self.answer_generator,
            document_source=self.document_source,
            memory_settings=MemorySettings.from_mapping(getattr(self.config, "memory", {})),
            apology=generation.get("apology") or DEFAULT_APOLOGY,
        )


def build_container(config: Any) -> DoctrineContainer:
    """Create a :class:`~doctrine_rag.app.container.DoctrineContainer`.

    Single entry point for the FastAPI startup hook, CLI scripts, and tests.
    """
    return DoctrineContainer(config=config)


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    """Coerce an object into a mapping.

    Raises
    ------
    TypeError
        If ``obj`` cannot be interpreted as a mapping.
    """
    if obj is None:
        return {}

    if isinstance(obj, Mapping):
        return obj

    if hasattr(obj, "__dict__"):
        return dict(vars(obj))

    raise TypeError(f"Expected mapping type but got {type(obj)}")


__all__ = ["DoctrineContainer", "build_container"]
