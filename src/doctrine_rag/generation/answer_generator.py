"""doctrine_rag.generation.answer_generator

Adapter between retrieved context and the chat model.

Classes
-------
AnswerGenerator
    Render the question-answering prompt and call the LLM, either for a
    complete answer or as a token stream.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from doctrine_rag.common import GenerationError
from doctrine_rag.generation.llm_interface import BaseLLM
from doctrine_rag.generation.prompt_builder import PromptBuilder, RenderedPrompt

logger = logging.getLogger(__name__)


class AnswerGenerator:
    """Generate answers grounded in retrieved context.

    Parameters
    ----------
    llm : BaseLLM
        Chat model wrapper.
    prompt_builder : PromptBuilder
        Registry holding the question-answering template.
    prompt_name : str
        Name of the template to render. It receives ``context`` and
        ``question`` variables.

    Notes
    -----
    Every provider failure is re-raised as :class:`GenerationError`, chained
    to the original exception. Substituting a user-facing message is left to
    the caller.
    """

    def __init__(self, llm: BaseLLM, prompt_builder: PromptBuilder, prompt_name: str):
        self.llm = llm
        self.prompt_builder = prompt_builder
        self.prompt_name = prompt_name

    def render(self, context: str, question: str, system_role: Optional[str] = None) -> RenderedPrompt:
        """Render the prompt; ``system_role`` replaces the template's role message."""
        prompt = self.prompt_builder.build(self.prompt_name, context=context, question=question)
        if system_role:
            prompt = RenderedPrompt(system=system_role, user=prompt.user)
        return prompt

    async def complete(self, context: str, question: str, system_role: Optional[str] = None) -> str:
        """Return the full answer text.

        Raises
        ------
        GenerationError
            If the model call fails.
        """
        prompt = self.render(context, question, system_role)
        try:
            answer = await self.llm.agenerate(prompt.system, prompt.user)
        except Exception as exc:
            raise GenerationError(f"Answer generation failed: {type(exc).__name__}") from exc
        logger.debug("Generated answer of %d characters", len(answer))
        return answer

    async def stream(
            self,
            context: str,
            question: str,
            system_role: Optional[str] = None,
        ) -> AsyncIterator[str]:
        """Yield answer text fragments as the model produces them.

        Raises
        ------
        GenerationError
            If the model call fails, before or during streaming.
        """
        prompt = self.render(context, question, system_role)
        try:
            async for token in self.llm.astream(prompt.system, prompt.user):
                yield token
        except Exception as exc:
            raise GenerationError(f"Answer streaming failed: {type(exc).__name__}") from exc


__all__ = ["AnswerGenerator"]
