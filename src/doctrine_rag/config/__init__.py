"""doctrine_rag.config

Configuration subsystem for the doctrine RAG pipeline.

This package provides structured access to configuration loaded from YAML
files. It exposes validated accessors rather than raw dictionaries.

Modules
-------
global_config
    Global configuration loader and cached accessors.
"""
from .global_config import GlobalConfig

__all__ = ["GlobalConfig"]
