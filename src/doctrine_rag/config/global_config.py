"""doctrine_rag.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration sections
used across the RAG pipeline.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time.

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.
"""

import os
import yaml
from pathlib import Path
from functools import cached_property

def _expand_env(obj):
    """Recursively expand environment variables in a nested structure.

    Parameters
    ----------
    obj : Any
        Object to expand. Supported types are dictionaries, lists, and strings.
        Other types are returned unchanged.

    Returns
    -------
    Any
        A structure of the same shape as ``obj`` with environment variables
        expanded in all string values.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


def _optional_section(raw: dict, name: str) -> dict:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise TypeError(f"'{name}' must be a mapping, got {type(section)}.")
    return section


class GlobalConfig:
    """Loader and accessor for global project configuration.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path of the loaded file, used to resolve relative paths.
    """

    def __init__(
            self,
            raw: dict,
            config_path: Path | None = None,
        ):
        self.raw = raw or {}
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        GlobalConfig
            An instance initialised with the loaded and environment-expanded data.
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f) or {}
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    def resolve_path(self, path: str | Path) -> Path:
        """Resolve ``path`` against the config file directory when relative.

        Parameters
        ----------
        path : str or Path
            Absolute or config-relative path.

        Returns
        -------
        Path
            Absolute path.
        """
        p = Path(path).expanduser()
        if p.is_absolute():
            return p
        base_dir = self.config_path.parent if self.config_path else Path.cwd()
        return (base_dir / p).resolve()

    @cached_property
    def generator_llm(self) -> dict:
        """Return the generator LLM configuration section.

        Raises
        ------
        KeyError
            If ``generator_llm`` is missing.
        """
        if "generator_llm" not in self.raw:
            raise KeyError("Missing 'generator_llm' in configuration.")
        return self.raw["generator_llm"]

    @cached_property
    def embedder(self) -> dict:
        """Return the embedder configuration section.

        Raises
        ------
        KeyError
            If ``embedder`` is missing.
        """
        if "embedder" not in self.raw:
            raise KeyError("Missing 'embedder' in configuration.")
        return self.raw["embedder"]

    @cached_property
    def documents(self) -> dict[str, Path]:
        """Return resolved paths of the default documents.

        Returns
        -------
        dict[str, Path]
            Mapping with keys ``"pdf"`` and ``"csv"``.

        Raises
        ------
        KeyError
            If the ``documents`` section or either default path is missing.
        """
        section = self.raw.get("documents")
        if section is None:
            raise KeyError("Missing 'documents' section in configuration.")

        resolved: dict[str, Path] = {}
        for kind, key in (("pdf", "default_pdf"), ("csv", "default_csv")):
            value = section.get(key)
            if not value:
                raise KeyError(f"Missing '{key}' under 'documents' in configuration.")
            resolved[kind] = self.resolve_path(value)
        return resolved

    @cached_property
    def chunking(self) -> dict[str, dict]:
        """Return per-source chunking settings.

        Returns
        -------
        dict[str, dict]
            Mapping of source kind (``"pdf"``, ``"csv"``) to splitter config.
            Missing sources fall back to splitter defaults.

        Raises
        ------
        TypeError
            If the section or any source entry is not a mapping.
        """
        section = _optional_section(self.raw, "chunking")
        for kind, cfg in section.items():
            if not isinstance(cfg, dict):
                raise TypeError(f"'chunking.{kind}' must be a mapping, got {type(cfg)}.")
        return section

    @cached_property
    def retrieval(self) -> dict:
        """Return the retrieval orchestrator settings (top_k, keywords, ...)."""
        return _optional_section(self.raw, "retrieval")

    @cached_property
    def query_expansion(self) -> dict:
        """Return the query expansion tables.

        Raises
        ------
        TypeError
            If ``terms`` or ``templates`` are not mappings of lists.
        """
        section = _optional_section(self.raw, "query_expansion")
        for key in ("terms", "templates"):
            table = section.get(key)
            if table is None:
                continue
            if not isinstance(table, dict):
                raise TypeError(f"'query_expansion.{key}' must be a mapping of lists.")
            for name, values in table.items():
                if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                    raise TypeError(f"'query_expansion.{key}.{name}' must be a list of strings.")
        return section

    @cached_property
    def memory(self) -> dict:
        """Return the request-scoped memory context settings."""
        return _optional_section(self.raw, "memory")

    @cached_property
    def generation(self) -> dict:
        """Return answer generation settings (apology text, streaming default)."""
        return _optional_section(self.raw, "generation")

    @cached_property
    def logging(self) -> dict:
        """Return logging settings."""
        return _optional_section(self.raw, "logging")

    @cached_property
    def prompts(self):
        """Return the prompts configuration entry.

        Returns
        -------
        str or list[str] or None
            A single prompt source, a list of sources, or ``None``.
        """
        return self.raw.get("prompts")

    @cached_property
    def prompt_name(self) -> str:
        """Return the configured prompt name.

        Raises
        ------
        KeyError
            If ``prompt_name`` is missing from the configuration.
        """
        prompt_name = self.raw.get("prompt_name")
        if prompt_name is None:
            raise KeyError("Missing 'prompt_name' in configuration.")
        return prompt_name
