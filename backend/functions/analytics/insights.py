"""
Response generation: turns a resolved Intent and the (filtered) dataset into a
narrative answer, optionally with a compiled chart.
"""
from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from aggregation import aggregate_groups, calculate_scalar, clean_number, date_sort_key
from aliases import resolve_column
from chart_spec import ChartRecommendation, capitalize, compile_chart
from intent import mentions, mentions_any
from models import Context, Intent, Response
from type_inference import (
    SAMPLE_SIZE,
    is_blank,
    is_id_column,
    is_numeric_column,
    is_time_like_name,
    sample_values,
    to_number,
    to_text,
)


DEFAULT_LIMIT = 10
LIST_LIMIT = 50

HELP_PHRASES = ("what type of questions", "what questions", "what charts", "available charts", "list of charts")
HELP_CHART_TYPES = (
    "Bar", "Line", "Pie", "Scatter", "Area", "Funnel", "Gauge", "Radar", "Treemap",
    "Heatmap", "Sunburst", "Sankey", "Waterfall", "Polar Bar", "Theme River", "Pictorial Bar",
)
CHART_WORDS = ("chart", "graph", "plot")
HIGH_WORDS = ("highest", "most", "max", "more", "largest")
LOW_WORDS = ("lowest", "least", "smallest", "min")
MIN_WORDS = ("min", "minimum", "lowest", "bottom", "least")
MAX_WORDS = ("max", "maximum", "highest", "top", "peak", "most")
CATEGORY_HINTS = ("category", "sub-category", "region", "segment", "country", "state", "product", "item")
TIME_SERIES_HINTS = ("date", "year")

_INTERROGATIVE_RE = re.compile(r"^(which|what|who|how|list|tell|give)\b")
_WINNER_RE = re.compile(r"^(which|what|who)\b")
_YEAR_RE = re.compile(r"\b(20\d{2})\b")


def format_number(value: Any) -> str:
    """Thousands separators, at most two decimals, no trailing zeros."""
    value = clean_number(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return to_text(value)
    f = float(value)
    if not math.isfinite(f):
        return to_text(value)
    r = round(f, 2)
    if r.is_integer():
        return f"{int(r):,}"
    return f"{r:,.2f}".rstrip("0").rstrip(".")


def _aggregation_label(aggregation: str) -> str:
    return {"avg": "Average", "sum": "Total"}.get(aggregation, capitalize(aggregation))


def is_help_request(query: str) -> bool:
    q = query.strip()
    return q == "help" or any(p in q for p in HELP_PHRASES)


def _numeric_columns(frame: pd.DataFrame, columns: List[str]) -> List[str]:
    return [c for c in columns if is_numeric_column(frame[c], SAMPLE_SIZE)]


def _help_response(query: str, frame: pd.DataFrame, columns: List[str]) -> Response:
    if mentions_any(query, ("chart", "graph", "visual"), plural=True):
        bullets = "\n".join(f"• {name}" for name in HELP_CHART_TYPES)
        return Response(
            answer=(
                "I can generate the following types of charts:\n\n"
                f"{bullets}\n\n"
                'Just ask me to "show" or "visualize" data using one of these types!'
            )
        )

    numeric = [c for c in _numeric_columns(frame, columns) if not is_id_column(c)]
    categorical = [c for c in columns if c not in numeric and not is_id_column(c)
                   and not is_numeric_column(frame[c], SAMPLE_SIZE)]
    num = numeric[0] if numeric else None
    cat = categorical[0] if categorical else None
    examples = []
    if num:
        examples.append(f"What is the total **{num}**?")
    if num and cat:
        examples.append(f"Which {cat} has the highest **{num}**?")
    if cat:
        examples.append(f"Show breakdown by **{cat}**")
    if num and cat:
        examples.append(f"Show **{num}** by **{cat}**")
    if not examples:
        examples.append("How many records are there?")
    lines = "\n".join(f"• {e}" for e in examples)
    return Response(answer=f"You can ask questions like:\n\n{lines}")


def _no_match_response(intent: Intent) -> Response:
    described = ", ".join(f'{k}="{v}"' for k, v in intent.filters.items())
    return Response(
        answer=f"I couldn't find any data matching your filter for **{described}**.",
        context=intent.to_context(),
    )


def _wants_listing(query: str, intent: Intent, metric: Optional[str], dimension: str) -> bool:
    return (
        mentions(query, "list")
        and not mentions_any(query, CHART_WORDS, plural=True)
        and not intent.chart_type
        and (not metric or metric == dimension)
    )


def _list_response(frame: pd.DataFrame, dimension: str, limit: int, context: Context) -> Response:
    distinct: Dict[str, None] = {}
    for v in frame[dimension].tolist():
        if not is_blank(v):
            distinct.setdefault(to_text(v), None)
    values = list(distinct)
    shown = values[:limit]
    answer = f"**{capitalize(dimension)}** ({len(values)}):\n{', '.join(shown)}"
    if len(values) > limit:
        answer += f", and {len(values) - limit} more..."
    return Response(answer=answer, context=context)


def auto_select_dimension(frame: pd.DataFrame, columns: List[str], exclude: Optional[str] = None) -> Optional[str]:
    """Pick a grouping column when a chart was requested without one.

    Priority: date/time-like name, then category/region/product-like name, then
    the first short, non-id, non-url string column.
    """
    candidates = [c for c in columns if c != exclude]
    for col in candidates:
        if is_time_like_name(col):
            return col
    for col in candidates:
        if any(h in col.lower() for h in CATEGORY_HINTS):
            return col
    for col in candidates:
        lower = col.lower()
        if is_id_column(col) or "url" in lower or "image" in lower:
            continue
        sample = sample_values(frame[col].tolist(), 1)
        if sample and isinstance(sample[0], str) and len(sample[0]) < 50 and not is_numeric_column(frame[col]):
            return col
    return None


def _scalar_response(query: str, intent: Intent, metric: Optional[str], frame: pd.DataFrame) -> Optional[Response]:
    aggregation = intent.aggregation
    if not metric and aggregation != "count":
        return None
    context = Context(metric=metric, dimension=None, chart_type=None, aggregation=aggregation)

    if aggregation == "count" and not metric:
        return Response(answer=f"The total count of **records** is **{len(frame)}**.", context=context)

    label = capitalize(metric)
    all_stats = mentions_any(query, ("all", "summary", "stats")) or (
        mentions_any(query, ("min", "minimum"))
        and mentions_any(query, ("max", "maximum"))
        and mentions_any(query, ("avg", "average"))
    )
    if all_stats:
        rows = [
            ("Count", calculate_scalar(frame, metric, "count")),
            ("Sum", calculate_scalar(frame, metric, "sum")),
            ("Average", calculate_scalar(frame, metric, "avg")),
            ("Min", calculate_scalar(frame, metric, "min")),
            ("Max", calculate_scalar(frame, metric, "max")),
        ]
        lines = "\n".join(f"• **{name}**: {format_number(v)}" for name, v in rows)
        return Response(answer=f"**Statistics for {label}:**\n{lines}", context=context)

    if mentions_any(query, MIN_WORDS) and mentions_any(query, MAX_WORDS):
        low = format_number(calculate_scalar(frame, metric, "min"))
        high = format_number(calculate_scalar(frame, metric, "max"))
        return Response(
            answer=f"The **Minimum {label}** is **{low}** and the **Maximum {label}** is **{high}**.",
            context=context,
        )

    if aggregation == "count":
        count = calculate_scalar(frame, metric, "count")
        return Response(answer=f"The total count of **{label}** is **{count}**.", context=context)

    value = format_number(calculate_scalar(frame, metric, aggregation))

    if aggregation == "max":
        agg_label = "Maximum" if mentions(query, "maximum") else "Top"
    elif aggregation == "min":
        agg_label = "Minimum" if mentions(query, "minimum") else "Lowest"
    else:
        agg_label = _aggregation_label(aggregation)
    if mentions(query, "performer"):
        agg_label += " performer"
    year = _YEAR_RE.search(query)
    year_text = f" in {year.group(1)}" if year else ""
    return Response(answer=f"The {agg_label} {label}{year_text} is **{value}**.", context=context)


def _fallback_metric(frame: pd.DataFrame, columns: List[str], dimension: str) -> Optional[str]:
    for col in columns:
        if col == dimension or is_id_column(col):
            continue
        if is_numeric_column(frame[col], SAMPLE_SIZE):
            return col
    return None


def sort_results(rows: List[Dict[str, Any]], dimension: str, value_field: str, time_series: bool) -> List[Dict[str, Any]]:
    """Chronological for time series; otherwise descending by value with text values last."""
    if time_series:
        return sorted(rows, key=lambda r: date_sort_key(r[dimension]))
    numeric, other = [], []
    for r in rows:
        v = r[value_field]
        (other if isinstance(v, (str, bool)) or to_number(v) is None else numeric).append(r)
    return (
        sorted(numeric, key=lambda r: float(r[value_field]), reverse=True)
        + sorted(other, key=lambda r: to_text(r[value_field]), reverse=True)
    )


def generate_insight(
    query: str,
    intent: Intent,
    frame: pd.DataFrame,
    default_limit: int = DEFAULT_LIMIT,
    list_limit: int = LIST_LIMIT,
) -> Optional[Response]:
    """Build the Response for a resolved Intent over an already-filtered frame.

    Returns None when no sensible answer exists (no metric, no dimension and
    nothing to count), so the caller can defer to another handler.
    """
    q = (query or "").lower().strip()
    columns = [str(c) for c in frame.columns]

    if intent.filters and frame.empty:
        return _no_match_response(intent)
    if is_help_request(q):
        return _help_response(q, frame, columns)

    metric = resolve_column(intent.metric, columns)
    dimension = resolve_column(intent.dimension, columns)
    dimension2 = resolve_column(intent.dimension2, columns) if dimension else None
    aggregation = intent.aggregation
    chart_type = intent.chart_type

    if dimension and dimension in intent.filters:
        dimension, dimension2 = None, None

    if dimension and _wants_listing(q, intent, metric, dimension):
        context = Context(metric=None, dimension=dimension, chart_type=None, aggregation=aggregation)
        return _list_response(frame, dimension, intent.limit or list_limit, context)

    if not dimension and (chart_type or mentions(q, "trend", plural=True)):
        dimension = auto_select_dimension(frame, columns, exclude=metric)

    if not dimension:
        return _scalar_response(q, intent, metric, frame)

    if metric == dimension:
        metric = None
    if not metric and aggregation != "count":
        metric = _fallback_metric(frame, columns, dimension)
        if not metric and (chart_type or aggregation in ("max", "min")):
            aggregation = "count"
    if not metric and aggregation != "count":
        return None

    if not chart_type:
        time_like = is_time_like_name(dimension)
        if not _INTERROGATIVE_RE.match(q):
            if time_like:
                chart_type = "line"
            elif mentions_any(q, ("share", "distribution")):
                chart_type = "pie"
            else:
                chart_type = "bar"
        elif time_like:
            chart_type = "line"

    value_field = metric or "count"
    context = Context(metric=metric, dimension=dimension, chart_type=chart_type, aggregation=aggregation)
    rows = aggregate_groups(frame, dimension, metric, aggregation, dimension2)
    rows = [r for r in rows if not is_blank(r[value_field]) and to_text(r[value_field]).strip() != ""]
    dim_label = capitalize(dimension)
    if not rows:
        return Response(
            answer=f"I categorized the data but found no valid results for **{dim_label}**.",
            context=context,
        )

    time_series = chart_type == "line" or any(h in dimension.lower() for h in TIME_SERIES_HINTS)
    rows = sort_results(rows, dimension, value_field, time_series)

    metric_label = capitalize(metric) if metric else "Records"
    if aggregation == "count":
        desc = f"Count of {metric_label}" if metric else "Count"
    else:
        desc = f"{_aggregation_label(aggregation)} {metric_label}"
    answer = f"Here is the **{desc} by {dim_label}**."
    top_n = intent.limit or default_limit

    def _name(row: Dict[str, Any]) -> str:
        text = to_text(row[dimension])
        if dimension2:
            text += f" / {to_text(row[dimension2])}"
        return text

    if time_series:
        peak = max(rows, key=lambda r: to_number(r[value_field]) if to_number(r[value_field]) is not None else -math.inf)
        nums = [n for n in (to_number(r[value_field]) for r in rows) if n is not None]
        avg = sum(nums) / len(nums) if nums else 0
        answer += (
            "\n\nThe chart shows the **trend over time**. "
            f"The highest activity was in **{_name(peak)}** with **{format_number(peak[value_field])}**. "
            f"The average over this period is **{format_number(round(avg, 1))}**."
        )
    else:
        winner = bool(_WINNER_RE.match(q)) and mentions_any(q, HIGH_WORDS + LOW_WORDS)
        if winner:
            lowest = mentions_any(q, LOW_WORDS)
            row = rows[-1] if lowest else rows[0]
            direction = "lowest" if lowest else "highest"
            what = metric.lower() if metric else "count"
            answer += f"\n\nThe **{_name(row)}** has the {direction} {what} with **{format_number(row[value_field])}**."
        else:
            shown = rows[:top_n]
            ranked = "\n".join(
                f"{i}. **{_name(r)}**: {format_number(r[value_field])}" for i, r in enumerate(shown, start=1)
            )
            answer += f"\n\n**Top Results:**\n{ranked}"
            if len(rows) > top_n:
                answer += f"\n...and {len(rows) - top_n} more."
            if mentions_any(q, ("lowest", "min", "minimum")):
                last = rows[-1]
                answer += f"\n\nThe lowest is **{_name(last)}** ({format_number(last[value_field])})."

    chart = None
    chart_title = None
    recommendation = None
    if chart_type:
        chart_rows = rows if time_series else rows[:top_n]
        chart_title = f"{desc} by {dim_label}"
        if not time_series and len(rows) > top_n:
            chart_title += f" (Top {top_n})"
        recommendation = ChartRecommendation(
            title=chart_title,
            type=chart_type,
            x_axis=dimension,
            y_axis=value_field,
            breakdown_dimension=dimension2,
            priority="high",
        )
        chart = compile_chart(recommendation, chart_rows, sort_order="none" if time_series else "desc")

    return Response(
        answer=answer,
        chart=chart,
        chart_title=chart_title,
        chart_type=chart_type,
        context=context,
        data=[{k: clean_number(v) for k, v in r.items()} for r in rows],
        recommendation=recommendation,
    )
