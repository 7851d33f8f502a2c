"""doctrine_rag.common.tokenisation

Token estimation utilities.

The memory context caps how much text it hands back by an estimated token
count. Only a minimal counting interface is required, so the concrete
counter can be swapped without touching callers.

Classes
-------
TokenCounter
    Minimal protocol defining the token-counting interface.
HeuristicTokenCounter
    Dependency-free approximate token counter.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol


class TokenCounter(Protocol):
    """A minimal interface for token-based sizing."""

    def count(self, text: str) -> int:
        """Return the number of tokens in ``text``."""


@dataclass(frozen=True)
class HeuristicTokenCounter:
    """Approximate token counter using a fixed characters-per-token ratio.

    Counts round up, so any non-empty text costs at least one token.

    Attributes
    ----------
    chars_per_token : int
        Approximate number of characters per token. Defaults to ``4``.
    """

    chars_per_token: int = 4

    def count(self, text: str) -> int:
        if not text:
            return 0
        cpt = max(1, int(self.chars_per_token))
        return math.ceil(len(text) / cpt)


__all__ = [
    "TokenCounter",
    "HeuristicTokenCounter",
]
