import asyncio

import pytest

from doctrine_rag.common import GenerationError
from doctrine_rag.generation.answer_generator import AnswerGenerator


def _generator(llm, prompt_builder) -> AnswerGenerator:
    return AnswerGenerator(llm, prompt_builder, "doctrine_qa")


async def _collect(tokens) -> list[str]:
    return [token async for token in tokens]


def test_complete_sends_rendered_prompt(fake_llm_factory, prompt_builder):
    """
    Test that the model receives the rendered role and user messages.
    """
    llm = fake_llm_factory(answer="Seven steps.")

    answer = asyncio.run(_generator(llm, prompt_builder).complete("MDMP context", "How many steps?"))

    assert answer == "Seven steps."
    system, user = llm.calls[0]
    assert "administrative NCO" in system
    assert "MDMP context" in user
    assert "Question: How many steps?" in user


def test_system_role_overrides_template_role(fake_llm_factory, prompt_builder):
    llm = fake_llm_factory()

    asyncio.run(_generator(llm, prompt_builder).complete("ctx", "q", system_role="You are a staff officer."))

    assert llm.calls[0][0] == "You are a staff officer."


def test_complete_failure_raises_generation_error(fake_llm_factory, prompt_builder):
    """
    Test that provider failures surface as ``GenerationError`` chained to the cause.
    """
    llm = fake_llm_factory(fail="before")

    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(_generator(llm, prompt_builder).complete("ctx", "q"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_stream_yields_fragments_in_order(fake_llm_factory, prompt_builder):
    llm = fake_llm_factory(answer="Receipt of mission first")

    tokens = asyncio.run(_collect(_generator(llm, prompt_builder).stream("ctx", "q")))

    assert tokens == ["Receipt", " of", " mission", " first"]
    assert "".join(tokens) == "Receipt of mission first"


def test_stream_failure_mid_way_raises_generation_error(fake_llm_factory, prompt_builder):
    """
    Test that a failure after the first fragment is still wrapped.
    """
    llm = fake_llm_factory(answer="Receipt of mission", fail="mid")
    received: list[str] = []

    async def _run():
        async for token in _generator(llm, prompt_builder).stream("ctx", "q"):
            received.append(token)

    with pytest.raises(GenerationError):
        asyncio.run(_run())

    assert received == ["Receipt"]
