"""
Multi-turn context merging: decides which fields of a new, possibly partial,
extraction are inherited from the previous turn.
"""
from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional

from intent import mentions, mentions_any
from models import Context, Intent

_NEW_INTENT_RE = re.compile(
    r"^(show|what|which|list|give|tell|who|how|sum|count|average|avg|min|minimum|max|maximum|total|summary)\b"
)
_NEW_INTENT_WORDS = ("analyze", "visualize", "graph", "chart")
_FOLLOW_UP_RE = re.compile(r"^(sort|order|filter|limit|top|bottom|and|but)\b")
_SCALAR_QUESTION_RE = re.compile(r"^(what is|how many|tell me|give me|show me value)\b")
_EXPLICIT_TOTAL = ("total", "sum", "combined")
FOLLOW_UP_MAX_LENGTH = 20


def is_new_intent(query: str) -> bool:
    q = query.lower().strip()
    return bool(_NEW_INTENT_RE.match(q)) or mentions_any(q, _NEW_INTENT_WORDS, plural=True)


def is_follow_up(query: str) -> bool:
    q = query.lower().strip()
    return len(q) < FOLLOW_UP_MAX_LENGTH or bool(_FOLLOW_UP_RE.match(q))


def has_grouping(query: str) -> bool:
    return mentions(query, "by") or mentions(query, "breakdown")


def merge_context(intent: Intent, query: str, context: Optional[Context]) -> Intent:
    """Fill gaps in ``intent`` from the previous turn.

    - dimension only: take the prior metric unless this is a brand-new question
      with no "by"/"breakdown"
    - metric only: take the prior dimension unless this is a bare scalar
      question ("what is", "how many", ...) with no grouping words
    - neither: take both for short follow-ups, or when only the chart type changed
    - aggregation: keep a prior non-sum, non-count aggregation when this query
      left the default "sum" and did not ask for a total
    """
    if context is None:
        return intent
    q = query.lower().strip()
    new_intent = is_new_intent(q)
    grouping = has_grouping(q)

    metric, dimension = intent.metric, intent.dimension
    if dimension and not metric:
        if context.metric and (not new_intent or grouping):
            metric = context.metric
    elif metric and not dimension:
        scalar_question = bool(_SCALAR_QUESTION_RE.match(q)) and not grouping
        if context.dimension and not scalar_question:
            dimension = context.dimension
    elif not metric and not dimension:
        chart_changed = bool(intent.chart_type) and intent.chart_type != context.chart_type
        if (is_follow_up(q) and not new_intent) or chart_changed:
            metric, dimension = context.metric, context.dimension

    aggregation = intent.aggregation
    if (
        aggregation == "sum"
        and context.aggregation
        and context.aggregation not in ("sum", "count")
        and not mentions_any(q, _EXPLICIT_TOTAL)
    ):
        aggregation = context.aggregation

    return replace(intent, metric=metric, dimension=dimension, aggregation=aggregation)
