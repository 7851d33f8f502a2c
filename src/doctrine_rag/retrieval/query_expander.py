"""doctrine_rag.retrieval.query_expander

Domain-aware query expansion.

A user question is broadened into a small ordered set of related questions:
the original, the original with known military abbreviations and terms
swapped for their variants, and canned reformulations when a trigger keyword
(e.g. "planning") appears. Each variant is searched separately to improve
recall on a small corpus.

Classes
-------
QueryExpander
    Deterministic, table-driven query expansion.
"""

import re
from typing import Mapping, Optional, Sequence

DEFAULT_TERMS: dict[str, list[str]] = {
    "MDMP": ["Military Decision Making Process", "military decision making process", "MDMP"],
    "S6": ["G6", "Signal Officer", "S6", "communications"],
    "planning": ["plan", "planning process", "planning procedures", "planning steps"],
    "process": ["procedure", "methodology", "approach", "steps"],
}

DEFAULT_TEMPLATES: dict[str, list[str]] = {
    "planning": [
        "What are the steps in the planning process?",
        "How does the planning process work?",
        "What is the planning methodology?",
        "What are the planning procedures?",
    ],
}


class QueryExpander:
    """Expand a query using substitution and template tables.

    Parameters
    ----------
    terms : Mapping[str, Sequence[str]] or None, optional
        Term (abbreviation or keyword) to replacement variants. Defaults to
        :data:`DEFAULT_TERMS`.
    templates : Mapping[str, Sequence[str]] or None, optional
        Trigger keyword to reformulated questions appended when the keyword
        occurs anywhere in the query. Defaults to :data:`DEFAULT_TEMPLATES`.
    """

    def __init__(
            self,
            terms: Optional[Mapping[str, Sequence[str]]] = None,
            templates: Optional[Mapping[str, Sequence[str]]] = None,
        ):
        self.terms = {k: list(v) for k, v in (DEFAULT_TERMS if terms is None else terms).items()}
        self.templates = {
            k: list(v) for k, v in (DEFAULT_TEMPLATES if templates is None else templates).items()
        }
        self._patterns = {key: re.compile(re.escape(key), re.IGNORECASE) for key in self.terms}

    def expand(self, query: str) -> list[str]:
        """Return the expanded query set.

        For every space-separated token of the lowercased query and every
        table term contained in that token, the query is emitted once per
        variant with all case-insensitive occurrences of the term replaced.
        Template questions follow for each trigger found in the query.

        Parameters
        ----------
        query : str
            User question.

        Returns
        -------
        list[str]
            Unique strings in first-seen order; the first is always ``query``.
        """
        lowered = query.lower()
        expanded = [query]

        for token in lowered.split(" "):
            for key, variants in self.terms.items():
                if key.lower() not in token:
                    continue
                pattern = self._patterns[key]
                for variant in variants:
                    expanded.append(pattern.sub(lambda _m, v=variant: v, query))

        for trigger, questions in self.templates.items():
            if trigger.lower() in lowered:
                expanded.extend(questions)

        return list(dict.fromkeys(expanded))


__all__ = [
    "QueryExpander",
    "DEFAULT_TERMS",
    "DEFAULT_TEMPLATES",
]
