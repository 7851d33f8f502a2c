import asyncio

import pytest

from doctrine_rag.retrieval.embedder import (
    OpenAILikeEmbedder,
    _normalize_kind,
    create_embedder,
)


@pytest.mark.parametrize(
    "kind, expected",
    [
        ("OpenAILike", "openai_like"),
        ("openai-like", "openai_like"),
        ("open ai like", "openai_like"),
        ("OpenAI", "open_ai"),
        ("", ""),
    ],
)
def test_normalize_kind(kind, expected):
    assert _normalize_kind(kind) == expected


def test_create_embedder_rejects_non_mapping():
    with pytest.raises(TypeError):
        create_embedder(["openai_like"])


def test_create_embedder_rejects_unknown_kind():
    with pytest.raises(ValueError):
        create_embedder({"type": "sentence_transformers", "model_name": "x", "api_base": "http://x"})


def test_create_embedder_requires_model_and_api_base():
    with pytest.raises(KeyError):
        create_embedder({"type": "OpenAILike", "model_name": "text-embedding-3-large"})


def test_create_embedder_builds_openai_like():
    """
    Test that the factory wires the OpenAI-compatible embedder from config.
    """
    embedder = create_embedder(
        {
            "type": "OpenAILike",
            "model_name": "text-embedding-3-large",
            "api_base": "http://localhost:9999/v1",
            "api_key": "test-key",
            "embed_batch_size": 8,
        }
    )

    assert isinstance(embedder, OpenAILikeEmbedder)
    assert embedder.model_name == "text-embedding-3-large"
    assert embedder.get_embedder().embed_batch_size == 8


def test_async_embedding_matches_sync(embedder):
    """
    Test that the executor-backed async methods return the sync results.
    """
    texts = ["mission analysis", "orders production"]

    async def _run():
        return await embedder.aembed_query(texts[0]), await embedder.aembed_documents(texts)

    query_vec, doc_vecs = asyncio.run(_run())

    assert query_vec == embedder.embed_query(texts[0])
    assert doc_vecs == [embedder.embed_query(t) for t in texts]
