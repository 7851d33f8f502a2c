import re
import zlib
from pathlib import Path
from typing import Any, AsyncIterator

import pytest

from doctrine_rag.generation.answer_generator import AnswerGenerator
from doctrine_rag.generation.llm_interface import BaseLLM
from doctrine_rag.generation.prompt_builder import PromptBuilder
from doctrine_rag.pipelines.rag_pipeline import RAGPipeline
from doctrine_rag.retrieval.document_loader import DocumentSource
from doctrine_rag.retrieval.embedder import BaseEmbedder
from doctrine_rag.retrieval.memory import MemorySettings
from doctrine_rag.retrieval.query_expander import QueryExpander
from doctrine_rag.retrieval.retriever import RetrievalOrchestrator
from doctrine_rag.retrieval.text_splitter import create_text_splitter

REPO_ROOT = Path(__file__).resolve().parents[3]
DIMENSIONS = 256

_WORD = re.compile(r"[a-z0-9]+")


class _HashingModel:
    """Bag-of-words vectoriser standing in for a remote embedding model."""

    def __init__(self, fail_on: str | None = None):
        self.fail_on = fail_on
        self.calls = 0

    def get_text_embedding(self, text: str) -> list[float]:
        self.calls += 1
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError("embedding service unavailable")
        vector = [0.0] * DIMENSIONS
        for word in _WORD.findall(text.lower()):
            vector[zlib.crc32(word.encode("utf-8")) % DIMENSIONS] += 1.0
        return vector


class KeywordEmbedder(BaseEmbedder):
    """Deterministic offline embedder: texts sharing words score higher."""

    def __init__(self, fail_on: str | None = None):
        self.model = _HashingModel(fail_on=fail_on)

    def get_embedder(self) -> Any:
        return self.model

    @classmethod
    def from_config_dict(cls, config: dict) -> "KeywordEmbedder":
        return cls(fail_on=config.get("fail_on"))


class FakeLLM(BaseLLM):
    """Chat model double recording prompts.

    ``fail`` is one of ``None``, ``"before"`` (the call fails immediately) or
    ``"mid"`` (streaming fails after the first fragment).
    """

    def __init__(self, answer: str = "Step 1. Receipt of mission.", fail: str | None = None):
        self.answer = answer
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    @classmethod
    def from_config_dict(cls, config: dict) -> "FakeLLM":
        return cls(answer=config.get("answer", "ok"))

    def get_llm(self) -> Any:
        return self

    async def agenerate(self, system: str, user: str, **kwargs) -> str:
        self.calls.append((system, user))
        if self.fail:
            raise RuntimeError("quota exceeded")
        return self.answer

    async def astream(self, system: str, user: str, **kwargs) -> AsyncIterator[str]:
        self.calls.append((system, user))
        if self.fail == "before":
            raise RuntimeError("quota exceeded")
        words = self.answer.split(" ")
        for i, word in enumerate(words):
            if self.fail == "mid" and i == 1:
                raise RuntimeError("connection reset")
            yield word if i == 0 else " " + word


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def failing_embedder():
    """Factory for embedders that fail on texts containing a marker."""
    return KeywordEmbedder


@pytest.fixture
def fake_llm_factory():
    return FakeLLM


@pytest.fixture
def prompt_builder() -> PromptBuilder:
    builder = PromptBuilder()
    builder.register_from_source("pkg:doctrine_rag.generation:prompts/default.json")
    return builder


@pytest.fixture
def default_pdf_path() -> Path:
    return REPO_ROOT / "data" / "FM-5-0.pdf"


@pytest.fixture
def default_csv_path() -> Path:
    return REPO_ROOT / "data" / "template_fields.csv"


@pytest.fixture
def make_pipeline(embedder, fake_llm_factory, prompt_builder, default_pdf_path, default_csv_path):
    """Factory for pipelines over the bundled documents with offline doubles."""

    def _factory(llm=None, memory_enabled=True, embedder_override=None):
        return RAGPipeline(
            splitters={kind: create_text_splitter(None, source_kind=kind) for kind in ("pdf", "csv")},
            embedder=embedder_override or embedder,
            orchestrator=RetrievalOrchestrator(QueryExpander()),
            answer_generator=AnswerGenerator(llm or fake_llm_factory(), prompt_builder, "doctrine_qa"),
            document_source=DocumentSource(pdf_path=default_pdf_path, csv_path=default_csv_path),
            memory_settings=MemorySettings(enabled=memory_enabled),
        )
    return _factory
