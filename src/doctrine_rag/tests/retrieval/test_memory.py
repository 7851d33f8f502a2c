import asyncio

import pytest

from doctrine_rag.common import DocumentChunk, EmbeddingError
from doctrine_rag.retrieval.memory import MemoryAugmentedIndex, MemoryContext, MemorySettings
from doctrine_rag.retrieval.vector_store import InMemoryVectorIndex


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _chunk(text: str, kind: str = "pdf", locator=1) -> DocumentChunk:
    return DocumentChunk(text=text, source_kind=kind, page_or_field=locator)


def test_add_chunks_keys_by_source_and_locator_with_last_write_winning():
    """
    Test that chunks of the same page share one key and the later chunk wins.
    """
    memory = MemoryContext()

    memory.add_chunks([_chunk("page one, part a"), _chunk("page one, part b"), _chunk("row", "csv", "Rank")])

    assert len(memory) == 2
    assert "pdf_1" in memory
    assert "csv_Rank" in memory


def test_sweep_removes_only_expired_entries():
    """
    Test that ``sweep`` drops entries older than ``max_age`` and reports how many.
    """
    clock = FakeClock()
    memory = MemoryContext(clock=clock)
    memory.add("old", "stale passage")
    clock.now += 3000
    memory.add("new", "fresh passage")
    clock.now += 700

    removed = memory.sweep(max_age=3600)

    assert removed == 1
    assert "old" not in memory
    assert "new" in memory


def test_lookup_on_empty_memory_returns_none(embedder):
    assert asyncio.run(MemoryContext().lookup("anything", embedder)) is None


def test_lookup_honours_context_window(embedder):
    """
    Test that at most ``context_window`` entries are combined, most similar first.
    """
    memory = MemoryContext(context_window=2)
    memory.add("a", "mission analysis restated mission")
    memory.add("b", "course of action development")
    memory.add("c", "mission analysis briefing")

    hit = asyncio.run(memory.lookup("mission analysis", embedder))

    assert len(hit.keys) == 2
    assert "b" not in hit.keys
    assert hit.text == "\n\n".join(
        {"a": "mission analysis restated mission", "c": "mission analysis briefing"}[k] for k in hit.keys
    )


def test_lookup_honours_token_budget(embedder):
    """
    Test that entries stop being added once the estimated token budget is exceeded.
    """
    memory = MemoryContext(context_window=5, max_tokens=10)
    memory.add("best", "mission analysis " + "x" * 15)   # 32 chars -> 8 tokens
    memory.add("next", "mission " + "y" * 20)            # 28 chars -> 7 tokens

    hit = asyncio.run(memory.lookup("mission analysis", embedder))

    assert hit.keys == ("best",)
    assert hit.text.startswith("mission analysis")


def test_lookup_returns_none_when_nothing_fits_budget(embedder):
    memory = MemoryContext(max_tokens=1)
    memory.add("a", "mission analysis is long")

    assert asyncio.run(memory.lookup("mission", embedder)) is None


def test_lookup_reuses_seeded_embeddings(embedder):
    """
    Test that entries added with embeddings are not embedded again.
    """
    memory = MemoryContext()
    memory.add_chunks([_chunk("mission analysis")], embeddings=[embedder.embed_query("mission analysis")])
    calls_before = embedder.model.calls

    asyncio.run(memory.lookup("mission", embedder))

    assert embedder.model.calls == calls_before + 1


def test_lookup_wraps_embedding_failures(failing_embedder):
    memory = MemoryContext()
    memory.add("a", "poison entry")

    with pytest.raises(EmbeddingError):
        asyncio.run(memory.lookup("query", failing_embedder(fail_on="poison")))


def test_augmented_index_prepends_memory_context(embedder):
    """
    Test that the wrapper returns the memory passage first, tagged as memory.
    """
    chunks = [_chunk("mission analysis produces the restated mission", locator=1),
              _chunk("orders production", locator=2)]

    async def _run():
        base = await InMemoryVectorIndex.build(chunks, embedder, "pdf")
        memory = MemoryContext()
        memory.add_chunks(base.chunks, base.embeddings)
        wrapped = MemoryAugmentedIndex(base, memory, embedder)
        return wrapped, await wrapped.search("mission analysis", k=2)

    wrapped, results = asyncio.run(_run())

    assert wrapped.source_kind == "pdf"
    assert len(wrapped) == 2
    assert len(results) == 3
    assert results[0].metadata["source"] == "memory"
    assert results[0].source_kind == "pdf"
    assert results[0].text.startswith("mission analysis produces the restated mission")
    assert [r.text for r in results[1:]] == [c.text for c in chunks]


def test_memory_settings_from_mapping():
    settings = MemorySettings.from_mapping({"enabled": False, "context_window": 3, "max_tokens": 100})

    assert settings.enabled is False
    assert settings.new_context().context_window == 3
    assert settings.new_context().max_tokens == 100
    assert MemorySettings.from_mapping(None) == MemorySettings()


def test_lookup_sweeps_entries_past_max_age(embedder):
    """
    Test that a lookup first drops entries older than the context's maximum age.
    """
    clock = FakeClock()
    memory = MemoryContext(clock=clock, max_age_seconds=10)
    memory.add("pdf_1", "mission analysis", embedding=embedder.embed_query("mission analysis"))
    clock.now += 20

    hit = asyncio.run(memory.lookup("mission analysis", embedder))

    assert hit is None
    assert len(memory) == 0


def test_memory_settings_pass_max_age_to_context():
    settings = MemorySettings.from_mapping({"max_age_seconds": 42})

    assert settings.new_context().max_age_seconds == 42.0


def test_augmented_search_embeds_query_once(embedder):
    """
    Test that one search embeds the query a single time for both memory and index.
    """
    chunks = [_chunk("mission analysis", locator=1), _chunk("orders production", locator=2)]

    async def _run():
        base = await InMemoryVectorIndex.build(chunks, embedder, "pdf")
        memory = MemoryContext()
        memory.add_chunks(base.chunks, base.embeddings)
        wrapped = MemoryAugmentedIndex(base, memory, embedder)
        calls_before = embedder.model.calls
        results = await wrapped.search("mission analysis", k=2)
        return embedder.model.calls - calls_before, results

    calls, results = asyncio.run(_run())

    assert calls == 1
    assert results[0].metadata["source"] == "memory"
