"""doctrine_rag.generation.llm_interface

Unified interface and factory for chat model backends.

This module defines a small, provider-agnostic abstraction for chat
generation (system message plus user message) and a concrete implementation
backed by LangChain's OpenAI-compatible chat wrapper. A factory function is
provided to instantiate the appropriate implementation from a configuration
mapping.

Classes
-------
BaseLLM
    Abstract interface specifying the API used by the answer generator.
OpenAIChatLikeLLM
    Chat completions using an OpenAI-compatible HTTP API via LangChain.

Functions
---------
create_llm
    Construct an LLM implementation from a configuration mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Mapping
import inspect

from langchain_openai import ChatOpenAI


def _messages(system: str, user: str) -> list[tuple[str, str]]:
    return [("system", system), ("human", user)]


def _content(response: Any) -> str:
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        return "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in content)
    return "" if content is None else str(content)


class BaseLLM(ABC):
    """Abstract interface for chat generation.

    Concrete implementations wrap provider-specific clients and expose a
    small, consistent API used by :class:`~doctrine_rag.generation.answer_generator.AnswerGenerator`.
    """

    @classmethod
    @abstractmethod
    def from_config_dict(cls, config: dict) -> "BaseLLM":
        """Create an LLM instance from a configuration mapping.

        Parameters
        ----------
        config : dict
            Configuration parameters for the concrete implementation.

        Returns
        -------
        BaseLLM
            An initialised LLM implementation.

        Raises
        ------
        KeyError
            If required configuration keys are missing.
        """
        pass

    @abstractmethod
    def get_llm(self) -> Any:
        """Return the underlying provider chat model object."""
        pass

    @abstractmethod
    async def agenerate(self, system: str, user: str, **kwargs) -> str:
        """Asynchronously generate a complete answer.

        Parameters
        ----------
        system : str
            System (role) message.
        user : str
            User message.
        **kwargs
            Additional keyword arguments forwarded to the underlying model.

        Returns
        -------
        str
            Generated answer text.
        """
        pass

    @abstractmethod
    def astream(self, system: str, user: str, **kwargs) -> AsyncIterator[str]:
        """Asynchronously yield answer text fragments as they are produced."""
        pass


class OpenAIChatLikeLLM(BaseLLM):
    """LLM interface using an OpenAI-compatible Chat Completions API via LangChain.

    This implementation wraps :class:`langchain_openai.ChatOpenAI`.

    Parameters
    ----------
    model_name : str
        Model identifier (e.g., ``"gpt-4"``).
    api_base : str or None
        Base URL for the OpenAI-compatible API endpoint.
    api_key : str or None, optional
        API key value, normally expanded from ``${OPENAI_API_KEY}``.
    **model_kwargs : Any
        Additional keyword arguments forwarded to ``ChatOpenAI``
        (e.g., ``temperature``, ``timeout``, ``max_retries``).
    """

    def __init__(
        self,
        model_name: str,
        api_base: str | None = None,
        api_key: str | None = None,
        **model_kwargs: Any,
    ):
        self.model_name = model_name
        self.api_base = api_base
        self.model_kwargs = dict(model_kwargs)

        top_p = model_kwargs.pop("top_p", None)
        if top_p is not None:
            try:
                top_p_val = float(top_p)
            except (TypeError, ValueError):
                top_p_val = None
            else:
                if not (0.0 < top_p_val <= 1.0):
                    top_p_val = None
            top_p = top_p_val

        sig = inspect.signature(ChatOpenAI)
        init_kwargs: dict[str, Any] = dict(model_kwargs)

        if "model" in sig.parameters:
            init_kwargs["model"] = model_name
        else:
            init_kwargs["model_name"] = model_name

        if api_base:
            if "openai_api_base" in sig.parameters:
                init_kwargs["openai_api_base"] = api_base
            elif "base_url" in sig.parameters:
                init_kwargs["base_url"] = api_base
            else:
                init_kwargs["api_base"] = api_base

        if api_key is not None:
            if "openai_api_key" in sig.parameters:
                init_kwargs["openai_api_key"] = api_key
            else:
                init_kwargs["api_key"] = api_key

        if top_p is not None:
            init_kwargs["top_p"] = top_p

        self.llm = ChatOpenAI(**init_kwargs)

    @classmethod
    def from_config_dict(cls, config: dict) -> "OpenAIChatLikeLLM":
        """Create an OpenAI-compatible chat LLM from a mapping.

        ``model_name`` is required; ``api_base``, ``api_key`` and
        ``model_kwargs`` are optional.
        """
        return cls(
            model_name=config["model_name"],
            api_base=config.get("api_base"),
            api_key=config.get("api_key"),
            **dict(config.get("model_kwargs") or {}),
        )

    def get_llm(self) -> Any:
        """Return the underlying LangChain chat model object."""
        return self.llm

    async def agenerate(self, system: str, user: str, **kwargs) -> str:
        response = await self.llm.ainvoke(_messages(system, user), **kwargs)
        return _content(response)

    async def astream(self, system: str, user: str, **kwargs) -> AsyncIterator[str]:
        async for chunk in self.llm.astream(_messages(system, user), **kwargs):
            text = _content(chunk)
            if text:
                yield text


# ----------------- Factory helpers -----------------

def _get_llm_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty discriminator value, or ``""``."""
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_llm_kind(kind: str) -> str:
    """Normalise an LLM kind/type string to a stable registry key.

    Parameters
    ----------
    kind : str
        Provider/type discriminator value.

    Returns
    -------
    str
        Normalised registry key (e.g., ``"OpenAIChatLike"`` -> ``"openai_chat"``).
    """
    k = kind.strip()
    if not k:
        return ""

    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out).replace("-", "_").replace(" ", "_")
    while "__" in k2:
        k2 = k2.replace("__", "_")
    k2 = k2.lower()

    for alias in (
        "open_ai_chat_like", "open_aichat_like", "openai_chat_like",
        "open_ai_chatlike", "openai_chatlike", "chat_openai", "chatopenai",
    ):
        k2 = k2.replace(alias, "openai_chat")
    return k2


def create_llm(config: Mapping[str, Any]) -> BaseLLM:
    """Create an LLM implementation from a configuration mapping.

    The implementation is selected by a discriminator field (``kind``,
    ``type``, ``provider``, ``backend`` or ``impl``).

    Parameters
    ----------
    config : Mapping[str, Any]
        Configuration mapping used to construct the LLM.

    Returns
    -------
    BaseLLM
        An initialised LLM implementation.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator is missing or selects an unsupported implementation.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_llm expected a mapping/dict, got {type(config)}")

    kind_raw = _get_llm_kind(config)
    kind = _normalize_llm_kind(kind_raw)

    if not kind:
        raise ValueError(
            "LLM config is missing a discriminator field (type/kind/provider/etc.). "
            "Add e.g. type: OpenAIChatLike."
        )

    registry: dict[str, type[BaseLLM]] = {
        "openai_chat": OpenAIChatLikeLLM,
        "openai": OpenAIChatLikeLLM,
    }

    cls = registry.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown LLM kind '{kind_raw}' (normalized to '{kind}'). Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config))


__all__ = [
    "BaseLLM",
    "OpenAIChatLikeLLM",
    "create_llm",
]
