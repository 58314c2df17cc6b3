"""
Column alias resolution utilities for entity extraction and response generation.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional
import difflib
import re

# Fixed phrases mapped straight to the column they mean; applied only when the
# target column exists in the dataset. Longer phrases are listed first.
METRIC_OVERRIDES: Dict[str, str] = {
    "worked hours": "worked_hours",
    "hours worked": "worked_hours",
    "overtime": "overtime_hours",
    "productivity": "productivity_score",
    "scheduled hours": "scheduled_hours",
    "scheduled": "scheduled_hours",
    "schedule": "scheduled_hours",
}


def _find_ci(name: str, cols: list[str]) -> Optional[str]:
    lower = name.lower()
    for c in cols:
        if c.lower() == lower:
            return c
    return None


def override_for(query: str, columns: Iterable[str]) -> str | None:
    """Return the dataset column named by a manual override phrase in the query, if any."""
    cols = list(columns)
    q = (query or "").lower()
    for phrase, target in METRIC_OVERRIDES.items():
        if re.search(rf"(?<![a-z0-9_]){re.escape(phrase)}(?![a-z0-9_])", q):
            hit = _find_ci(target, cols)
            if hit:
                return hit
    return None


def resolve_column(name: str | None, columns: Iterable[str]) -> str | None:
    """Resolve an extracted or inherited column name to the actual dataset column.

    Attempts exact match, case-insensitive match, override map, substring
    containment, then fuzzy match using difflib.
    Returns the best guess or None if resolution fails.
    """
    cols = [str(c) for c in columns]
    if not name:
        return None
    # exact
    if name in cols:
        return name
    ci = _find_ci(name, cols)
    if ci:
        return ci
    # override
    target = METRIC_OVERRIDES.get(name.lower())
    if target:
        hit = _find_ci(target, cols)
        if hit:
            return hit
    # containment
    lower = name.lower()
    for c in cols:
        if lower in c.lower():
            return c
    # fuzzy
    m = difflib.get_close_matches(name, cols, n=1, cutoff=0.8)
    if m:
        return m[0]
    return None
