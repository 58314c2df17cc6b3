"""
Analytical-intent gate and the whole-word matching helpers shared by the extractor.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

ANALYTICAL_KEYWORDS = (
    "trend", "compare", "distribution", "breakdown", "show me", "graph", "chart", "plot",
    "visualize", "sales", "revenue", "count", "average", "total", "top", "performance",
    "how many", "analysis", "sum", "min", "minimum", "max", "maximum", "vs", "mean",
    "median", "mode", "list", "what is", "funnel", "gauge", "radar", "scatter", "heatmap",
    "treemap", "sunburst", "sankey", "waterfall", "polar", "pictorial", "which", "what",
    "highest", "lowest", "most", "more", "least", "smallest", "largest", "best", "worst",
    "sold", "bought", "profit", "loss", "growth", "decline", "how much",
    "what type of questions", "what questions", "help",
)

# General-knowledge openers; deferred unless another analytical keyword is present.
GENERIC_QA_PREFIXES = ("what is", "how to", "explain")
_GENERIC_QA_KEYWORDS = {"what is", "what"}


@lru_cache(maxsize=2048)
def _phrase_pattern(phrase: str, plural: bool) -> re.Pattern:
    body = re.escape(phrase.lower())
    if plural:
        forms = [body + r"(?:s|es)?"]
        if len(phrase) > 2 and phrase.lower().endswith("y"):
            forms.append(re.escape(phrase.lower()[:-1]) + "ies")
        body = "(?:" + "|".join(forms) + ")"
    return re.compile(rf"(?<![a-z0-9_]){body}(?![a-z0-9_])", re.IGNORECASE)


def mentions(text: str, phrase: str, plural: bool = False) -> bool:
    """Whole-word, case-insensitive match of ``phrase`` in ``text``.

    With ``plural`` the simple plural forms also match ("category" -> "categories").
    """
    if not text or not phrase:
        return False
    return _phrase_pattern(phrase, plural).search(text) is not None


def mentions_any(text: str, phrases: Iterable[str], plural: bool = False) -> bool:
    return any(mentions(text, p, plural) for p in phrases)


def is_analytical(query: str) -> bool:
    """Return True when the query should be answered by the analytical engine.

    Example:
        >>> is_analytical("total sales by region")
        True
        >>> is_analytical("what is a balance sheet")
        False
    """
    q = (query or "").lower().strip()
    if not q:
        return False
    matched = [k for k in ANALYTICAL_KEYWORDS if mentions(q, k)]
    if not matched:
        return False
    if q.startswith(GENERIC_QA_PREFIXES) and all(k in _GENERIC_QA_KEYWORDS for k in matched):
        return False
    return True
