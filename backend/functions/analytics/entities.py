"""
Entity extraction: free-text query + dataset columns -> Intent.

Extraction is an ordered pipeline of named passes. Each pass takes the partial
Intent and the ExtractionSource and returns a new Intent; later passes may
override what earlier ones decided, so the order of EXTRACTION_PASSES is part
of the contract.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

import aliases
from context import merge_context
from intent import mentions, mentions_any
from models import Context, Intent
from type_inference import SAMPLE_SIZE, is_blank, is_id_column, is_numeric_column, to_text

logger = logging.getLogger(__name__)


AGGREGATION_LANGUAGE = (
    "average", "avg", "mean", "sum", "total", "max", "min", "highest", "lowest", "most", "least",
)
ARITHMETIC_LANGUAGE = ("average", "sum", "total", "mean")

COMMON_METRICS = (
    "sales", "revenue", "amount", "profit", "margin", "cost", "expense", "quantity", "units",
    "volume", "price", "rate", "rating", "score", "value", "transaction", "order",
)
SOLD_HINTS = ("sale", "qty", "quantity", "amount")

# Checked in order; the first rule with a matching keyword wins.
AGGREGATION_RULES = (
    ("sum", ("sum", "total", "combined")),
    ("avg", ("average", "avg", "mean")),
    ("median", ("median",)),
    ("mode", ("mode",)),
    ("count", ("count", "how many", "number of")),
    ("min", ("min", "lowest", "bottom", "worst", "least", "minimum")),
    ("max", ("max", "highest", "top", "peak", "best", "most", "maximum")),
)

# Special chart types come before the generic ones.
CHART_TYPE_RULES = (
    ("funnel", ("funnel", "pipeline", "conversion")),
    ("gauge", ("gauge", "dashboard", "meter")),
    ("radar", ("radar", "spider")),
    ("scatter", ("scatter", "bubble", "correlation")),
    ("heatmap", ("heatmap", "matrix")),
    ("treemap", ("treemap",)),
    ("sunburst", ("sunburst",)),
    ("sankey", ("sankey", "flow")),
    ("waterfall", ("waterfall",)),
    ("themeRiver", ("river", "stream")),
    ("polar-bar", ("polar",)),
    ("pictorialBar", ("pictorial",)),
    ("area", ("area", "fill")),
    ("line", ("line", "trend", "over time", "growth")),
    ("pie", ("pie", "distribution", "share", "breakdown", "proportion")),
    ("bar", ("bar", "compare", "rank", "vs")),
)
TWO_AXIS_CHARTS = {"sankey", "heatmap", "themeRiver", "scatter"}

SUMMABLE_METRIC_HINTS = (
    "sale", "revenue", "amount", "profit", "quantity", "qty", "price", "cost", "rate",
    "value", "hour", "time", "duration", "score",
)
SINGLE_RECORD_WORDS = ("record", "transaction", "single")
ROW_COUNT_WORDS = ("record", "records", "row", "rows", "how many data")
CALCULATION_WORDS = ("sum", "total", "average", "count", "min", "max")

FILTER_STOPWORDS = frozenset({
    "the", "and", "or", "in", "on", "at", "to", "for", "of", "a", "an", "is", "are", "was", "were",
})
SUBSTITUTE_HINTS = ("product", "item", "unit")
SUBSTITUTE_COLUMN_HINTS = ("product", "item", "name")

_DIMENSION_PATTERNS = (
    re.compile(r"\bwhich\s+([a-z0-9\s]+?)\s+(?:has|have|is|are|was|were)\b"),
    re.compile(r"\bwhat\s+([a-z0-9\s]+?)\s+(?:has|have|is|are|was|were)\b"),
    re.compile(r"\blist\s+([a-z0-9\s]+?)\s+(?:by|with|that)\b"),
    re.compile(r"\bshow\s+([a-z0-9\s]+?)\s+(?:by|with|that)\b"),
    re.compile(r"\bbreakdown\s+by\s+([a-z0-9\s]+)"),
    re.compile(r"\bgroup\s+by\s+([a-z0-9\s]+)"),
    re.compile(r"\bper\s+([a-z0-9\s]+)"),
    re.compile(r"\bby\s+([a-z0-9\s]+)"),
)
_LIMIT_RE = re.compile(r"\b(?:top|first|limit|bottom|last|show)\s+(\d+)\b")
_TOKEN_SPLIT_RE = re.compile(r"[ _\-]+")


@dataclass
class ExtractionSource:
    """Everything a pass may read. Numeric classification is computed once per column."""

    query: str
    columns: List[str]
    frame: pd.DataFrame
    context: Optional[Context] = None
    sample_size: int = SAMPLE_SIZE
    _numeric: Dict[str, bool] = field(default_factory=dict, repr=False)

    def is_numeric(self, column: str) -> bool:
        if column not in self._numeric:
            self._numeric[column] = (
                column in self.frame.columns and is_numeric_column(self.frame[column], self.sample_size)
            )
        return self._numeric[column]


# ============================================================================
# MATCHING HELPERS
# ============================================================================

def _singular(word: str) -> str:
    if len(word) > 3 and word.endswith("ies"):
        return word[:-3] + "y"
    if len(word) > 3 and word.endswith("sses"):
        return word[:-2]
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def normalize_phrase(text: str) -> str:
    """Lowercase, treat _ and - as spaces, and singularise each word."""
    return " ".join(_singular(w) for w in _TOKEN_SPLIT_RE.split(text.lower().strip()) if w)


def column_tokens(column: str) -> List[str]:
    return [t for t in _TOKEN_SPLIT_RE.split(column.lower()) if len(t) >= 3]


def mentions_column(query: str, column: str) -> bool:
    """The query names the column, either verbatim or with _/- read as spaces."""
    spaced = _TOKEN_SPLIT_RE.sub(" ", column.lower()).strip()
    return mentions(query, column, plural=True) or (spaced != column.lower() and mentions(query, spaced, plural=True))


def has_by(query: str) -> bool:
    return mentions(query, "by")


# ============================================================================
# DETECTORS (pure; reused by the substitution logic)
# ============================================================================

def find_dimension(src: ExtractionSource, exclude: Iterable[str] = ()) -> Optional[str]:
    q = src.query
    excluded = set(exclude)
    columns = [c for c in src.columns if c not in excluded]

    # "top 3 categories by sales": a numeric pattern hit loses to a named categorical column
    numeric_hit: Optional[str] = None
    for pattern in _DIMENSION_PATTERNS:
        m = pattern.search(q)
        if not m:
            continue
        candidate = normalize_phrase(m.group(1))
        if len(candidate) < 3:
            continue
        for col in columns:
            col_norm = normalize_phrase(col)
            if not col_norm:
                continue
            if mentions(candidate, col_norm) or candidate in col_norm:
                if not src.is_numeric(col):
                    return col
                numeric_hit = numeric_hit or col
                break

    aggregating = mentions_any(q, AGGREGATION_LANGUAGE)
    eligible = [
        c for c in columns
        if (len(c) > 2 or c.lower() == "id") and not (aggregating and src.is_numeric(c))
    ]
    if numeric_hit:
        eligible = [c for c in eligible if not src.is_numeric(c)]
    for col in eligible:
        if mentions_column(q, col):
            return col
    for col in eligible:
        if any(mentions(q, t, plural=True) for t in column_tokens(col)):
            return col
    return numeric_hit


def _prefer_numeric(src: ExtractionSource, hits: List[str]) -> Optional[str]:
    for col in hits:
        if src.is_numeric(col):
            return col
    return hits[0] if hits else None


def find_metric(src: ExtractionSource) -> Optional[str]:
    q = src.query
    arithmetic = mentions_any(q, ARITHMETIC_LANGUAGE)

    def eligible(col: str) -> bool:
        return not arithmetic or src.is_numeric(col)

    override = aliases.override_for(q, src.columns)
    if override and eligible(override):
        return override

    direct = [c for c in src.columns if eligible(c) and mentions_column(q, c)]
    if direct:
        return _prefer_numeric(src, direct)

    tokens = [c for c in src.columns if eligible(c) and any(mentions(q, t, plural=True) for t in column_tokens(c))]
    if tokens:
        return _prefer_numeric(src, tokens)

    for word in COMMON_METRICS:
        if mentions(q, word, plural=True):
            for col in src.columns:
                if word in col.lower() and eligible(col):
                    return col

    if mentions(q, "sold"):
        for col in src.columns:
            if src.is_numeric(col) and any(h in col.lower() for h in SOLD_HINTS):
                return col
    return None


def find_aggregation(query: str) -> str:
    for name, words in AGGREGATION_RULES:
        if mentions_any(query, words):
            return name
    return "sum"


def find_chart_type(query: str) -> Optional[str]:
    for chart_type, words in CHART_TYPE_RULES:
        if mentions_any(query, words):
            return chart_type
    return None


def find_limit(query: str) -> Optional[int]:
    m = _LIMIT_RE.search(query)
    if not m:
        return None
    n = int(m.group(1))
    return n if n > 0 else None


def _filter_value_for(query: str, values: Sequence) -> Optional[str]:
    """Longest distinct value of the column that the query names as a whole word."""
    distinct: Dict[str, None] = {}
    for v in values:
        if is_blank(v):
            continue
        text = to_text(v).lower().strip()
        if len(text) > 2 and text not in FILTER_STOPWORDS:
            distinct.setdefault(text, None)
    for text in sorted(distinct, key=len, reverse=True):
        if text in query and mentions(query, text):
            return text
    return None


def _substitute_dimension(
    src: ExtractionSource, filtered: Dict[str, str], old: str, metric: Optional[str] = None
) -> Optional[str]:
    taken = set(filtered) | {old} | ({metric} if metric else set())
    if mentions_any(src.query, SUBSTITUTE_HINTS, plural=True):
        for col in src.columns:
            if col not in taken and any(h in col.lower() for h in SUBSTITUTE_COLUMN_HINTS):
                return col
    found = find_dimension(src, exclude=taken)
    if found:
        return found
    for col in src.columns:
        if col not in taken and not src.is_numeric(col) and not is_id_column(col):
            return col
    return None


# ============================================================================
# PASSES
# ============================================================================

def detect_dimension(intent: Intent, src: ExtractionSource) -> Intent:
    return replace(intent, dimension=find_dimension(src))


def detect_metric(intent: Intent, src: ExtractionSource) -> Intent:
    return replace(intent, metric=find_metric(src))


def detect_aggregation(intent: Intent, src: ExtractionSource) -> Intent:
    return replace(intent, aggregation=find_aggregation(src.query))


def detect_chart_type(intent: Intent, src: ExtractionSource) -> Intent:
    return replace(intent, chart_type=find_chart_type(src.query))


def detect_limit(intent: Intent, src: ExtractionSource) -> Intent:
    return replace(intent, limit=find_limit(src.query))


def resolve_total_count(intent: Intent, src: ExtractionSource) -> Intent:
    """Read "total count of <dimension>" as a count of that field, not a breakdown."""
    if intent.dimension and not intent.metric and mentions_any(src.query, ("total count", "total number")):
        return replace(intent, metric=intent.dimension, dimension=None, aggregation="count")
    return intent


def resolve_record_count(intent: Intent, src: ExtractionSource) -> Intent:
    if mentions_any(src.query, ROW_COUNT_WORDS):
        return replace(intent, aggregation="count")
    return intent


def resolve_same_column(intent: Intent, src: ExtractionSource) -> Intent:
    """Never group by and aggregate over the same column."""
    if not (intent.metric and intent.dimension) or intent.metric.lower() != intent.dimension.lower():
        return intent
    if has_by(src.query) or mentions(src.query, "list") or intent.chart_type:
        return replace(intent, metric=None)
    return replace(intent, dimension=None, dimension2=None)


def resolve_listing_count(intent: Intent, src: ExtractionSource) -> Intent:
    q = src.query
    if (
        intent.aggregation == "sum"
        and mentions(q, "list")
        and not intent.metric
        and not mentions_any(q, ("total", "sum"))
    ):
        return replace(intent, aggregation="count")
    return intent


def resolve_extreme_as_total(intent: Intent, src: ExtractionSource) -> Intent:
    """Read "highest sales by region" as the highest total, not one record's maximum."""
    if intent.aggregation not in ("max", "min") or not intent.metric or not intent.dimension:
        return intent
    if not any(h in intent.metric.lower() for h in SUMMABLE_METRIC_HINTS):
        return intent
    if mentions_any(src.query, SINGLE_RECORD_WORDS, plural=True):
        return intent
    return replace(intent, aggregation="sum")


def inherit_context(intent: Intent, src: ExtractionSource) -> Intent:
    return merge_context(intent, src.query, src.context)


def detect_filters(intent: Intent, src: ExtractionSource) -> Intent:
    filters = dict(intent.filters)
    dimension = intent.dimension
    scan = [c for c in src.columns if c != dimension]
    if dimension:
        scan.append(dimension)
    for col in scan:
        if col in filters or col not in src.frame.columns or src.is_numeric(col):
            continue
        value = _filter_value_for(src.query, src.frame[col].tolist())
        if value:
            filters[col] = value

    if dimension and dimension in filters:
        substitute = _substitute_dimension(src, filters, dimension, intent.metric)
        logger.debug("dimension %s is filtered; substitute=%s", dimension, substitute)
        return replace(intent, filters=filters, dimension=substitute)
    return replace(intent, filters=filters)


def detect_secondary_dimension(intent: Intent, src: ExtractionSource) -> Intent:
    if intent.chart_type not in TWO_AXIS_CHARTS or not intent.dimension:
        return intent
    for col in src.columns:
        if col in (intent.dimension, intent.metric) or is_id_column(col) or src.is_numeric(col):
            continue
        return replace(intent, dimension2=col)
    return intent


def force_scalar(intent: Intent, src: ExtractionSource) -> Intent:
    """A dimension that is also an equality filter asks for the value of that one entity."""
    if intent.dimension and intent.dimension in intent.filters:
        return replace(intent, dimension=None, dimension2=None)
    return intent


def resolve_list_request(intent: Intent, src: ExtractionSource) -> Intent:
    q = src.query
    if mentions(q, "list") and intent.dimension and not has_by(q) and not mentions_any(q, CALCULATION_WORDS):
        return replace(intent, metric=None)
    return intent


Pass = Callable[[Intent, ExtractionSource], Intent]

EXTRACTION_PASSES: tuple[Pass, ...] = (
    detect_dimension,
    detect_metric,
    detect_aggregation,
    detect_chart_type,
    detect_limit,
    resolve_total_count,
    resolve_record_count,
    resolve_same_column,
    resolve_listing_count,
    resolve_extreme_as_total,
    inherit_context,
    resolve_same_column,
    detect_filters,
    detect_secondary_dimension,
    force_scalar,
    resolve_list_request,
    resolve_same_column,
)


def extract_entities(
    query: str,
    columns: Iterable[str],
    frame: pd.DataFrame,
    context: Optional[Context] = None,
    sample_size: int = SAMPLE_SIZE,
) -> Intent:
    """Run every extraction pass in order and return the resolved Intent.

    Example:
        >>> extract_entities("sales by category", ["category", "sales"], df)
        Intent(metric='sales', dimension='category', aggregation='sum', ...)
    """
    src = ExtractionSource(
        query=(query or "").lower().strip(),
        columns=[str(c) for c in columns],
        frame=frame,
        context=context,
        sample_size=sample_size,
    )
    intent = Intent()
    for step in EXTRACTION_PASSES:
        intent = step(intent, src)
    logger.debug("extracted intent: %s", intent)
    return intent
