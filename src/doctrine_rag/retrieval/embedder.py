"""doctrine_rag.retrieval.embedder

Embedding interfaces and factories for the retrieval layer.

This module defines a small provider-agnostic interface for producing vector
embeddings from text, a concrete implementation backed by LlamaIndex's
OpenAI-compatible embedding wrapper, and a factory function that constructs an
embedder from configuration.

Classes
-------
BaseEmbedder
    Abstract interface specifying the API used by the retrieval pipeline.
OpenAILikeEmbedder
    Embedder backed by an OpenAI-compatible HTTP API via LlamaIndex.

Functions
---------
create_embedder
    Create an embedder implementation from a configuration mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional
import asyncio


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return bool(value)


class BaseEmbedder(ABC):
    """Abstract interface for text embedding.

    Concrete implementations wrap a provider-specific embedding object and
    expose a small, consistent API. Every call is a network round trip; no
    retries are performed here beyond what the wrapped client does.
    """

    @abstractmethod
    def get_embedder(self) -> Any:
        """Return the wrapped provider embedding object."""
        pass

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
        ) -> "BaseEmbedder":
        """Create an embedder from a configuration mapping.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration mapping.

        Returns
        -------
        BaseEmbedder
            An initialised embedder implementation.
        """
        pass

    def embed_query(self, query: str) -> list[float]:
        """Embed a single query string.

        This method attempts common embedding method names on the wrapped
        object in the following order: ``get_query_embedding``,
        ``embed_query``, ``get_text_embedding``, ``embed_documents``.

        Parameters
        ----------
        query : str
            Query string to embed.

        Returns
        -------
        list[float]
            Embedding vector for the query.

        Raises
        ------
        AttributeError
            If no compatible embedding method is available.
        """
        embedder = self.get_embedder()
        for method in ("get_query_embedding", "embed_query", "get_text_embedding", "embed_documents"):
            if hasattr(embedder, method):
                fn = getattr(embedder, method)
                if method == "embed_documents":
                    return fn([query])[0]
                return fn(query)

        raise AttributeError(f"No embedding method found on {embedder!r}")

    def embed_documents(self, documents: list[str]) -> list[list[float]]:
        """Embed multiple documents.

        Falls back to one :meth:`embed_query` call per document when the
        wrapped object has no batch API.

        Parameters
        ----------
        documents : list[str]
            Documents to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors, one per document, in input order.
        """
        embedder = self.get_embedder()

        if hasattr(embedder, "get_text_embedding_batch"):
            return embedder.get_text_embedding_batch(documents)
        if hasattr(embedder, "embed_documents"):
            return embedder.embed_documents(documents)

        return [self.embed_query(doc) for doc in documents]

    async def aembed_query(self, query: str) -> list[float]:
        """Embed a query without blocking the event loop."""
        loop = asyncio.get_running_loop()

        return await loop.run_in_executor(None, self.embed_query, query)

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of documents without blocking the event loop.

        The synchronous client is driven in the default thread pool via
        ``run_in_executor``.
        """
        loop = asyncio.get_running_loop()

        return await loop.run_in_executor(None, self.embed_documents, texts)


class OpenAILikeEmbedder(BaseEmbedder):
    """Embedder backed by an OpenAI-compatible embedding API via LlamaIndex.

    This implementation wraps :class:`llama_index.embeddings.openai_like.OpenAILikeEmbedding`.

    Parameters
    ----------
    model_name : str
        Model identifier for the embedding endpoint (e.g., ``"text-embedding-3-large"``).
    api_base : str
        Base URL for the OpenAI-compatible embedding API endpoint.
    api_key : str or None, optional
        API credential, normally supplied through ``${OPENAI_API_KEY}``.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying embedder.
    timeout : float, optional
        Per-request timeout in seconds.
    max_retries : int, optional
        Retries performed by the underlying client.
    embed_batch_size : int, optional
        Number of texts sent per embedding request.
    """

    def __init__(
            self,
            model_name: str,
            *,
            api_base: str,
            api_key: str = None,
            model_kwargs: dict[str, Any] = None,
            timeout: float = 60.0,
            max_retries: int = 3,
            embed_batch_size: int = 32,
            reuse_client: bool = True,
        ):
        from llama_index.embeddings.openai_like import OpenAILikeEmbedding

        self.model_name = model_name
        self.embedder = OpenAILikeEmbedding(
            model_name=model_name,
            api_base=api_base,
            additional_kwargs=model_kwargs or {},
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            embed_batch_size=embed_batch_size,
            reuse_client=reuse_client,
        )

    def get_embedder(self) -> Any:
        """Return the underlying LlamaIndex embedding object."""
        return self.embedder

    @classmethod
    def from_config_dict(
            cls,
            config: Dict[str, Any],
        ) -> "OpenAILikeEmbedder":
        """Create an OpenAI-compatible embedder from a configuration mapping.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration mapping.

        Returns
        -------
        OpenAILikeEmbedder
            An initialised embedder instance.

        Raises
        ------
        KeyError
            If ``model_name`` or ``api_base`` is missing.
        """
        return cls(
            model_name=config["model_name"],
            api_base=config["api_base"],
            api_key=config.get("api_key"),
            model_kwargs=config.get("model_kwargs", {}),
            timeout=float(config.get("timeout", 60.0)),
            max_retries=int(config.get("max_retries", 3)),
            embed_batch_size=int(config.get("embed_batch_size", 32)),
            reuse_client=_as_bool(config.get("reuse_client"), True),
        )


# ----------------- Factory helpers -----------------

def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty ``kind``/``type``/``provider`` value, or ``""``."""
    for key in ("kind", "type", "provider"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_kind(kind: str) -> str:
    """Normalise a kind/type string to a stable registry key.

    CamelCase becomes snake_case, hyphens and spaces become underscores, and
    spellings of "OpenAI-like" collapse to ``"openai_like"``.
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
    for alias in ("openailike", "open_ailike", "open_ai_like"):
        k2 = k2.replace(alias, "openai_like")
    return k2


def create_embedder(config: Mapping[str, Any]) -> BaseEmbedder:
    """Create an embedder implementation from a configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any]
        Configuration mapping used to construct the embedder.

    Returns
    -------
    BaseEmbedder
        An initialised embedder implementation.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unsupported implementation.

    Notes
    -----
    If no discriminator is provided, :class:`OpenAILikeEmbedder` is used.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_embedder expected a mapping/dict, got {type(config)}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_kind(kind_raw)

    registry = {
        "openai_like": OpenAILikeEmbedder,
        "openai": OpenAILikeEmbedder,
    }

    cls = registry.get(kind) if kind else OpenAILikeEmbedder
    if cls is None:
        raise ValueError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config))


__all__ = [
    "BaseEmbedder",
    "OpenAILikeEmbedder",
    "create_embedder",
]
