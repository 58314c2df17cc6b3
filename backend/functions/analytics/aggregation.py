"""
Scalar and grouped aggregation over untyped tabular data.

Values are coerced per cell: numbers stay numbers, formatted numeric strings
are parsed, date-like strings keep their text for ordering, and anything that
cannot be used is silently left out. A single malformed cell never aborts an
aggregation.
"""
from __future__ import annotations

import numbers
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from type_inference import (
    column_kind,
    is_blank,
    parse_date,
    to_number,
    to_text,
)


AGGREGATIONS = ("sum", "avg", "count", "min", "max", "median", "mode")
MATH_AGGREGATIONS = {"sum", "avg", "median"}
UNKNOWN_LABEL = "Unknown"


class AggregationError(RuntimeError):
    """Raised for unsupported aggregations or missing columns, with a user-facing message."""
    pass


def _require_columns(df: pd.DataFrame, *cols: str) -> None:
    """Raise AggregationError if any required columns are missing."""
    missing = [c for c in cols if c not in df.columns]
    if missing:
        available = [str(c) for c in list(df.columns)[:10]]
        raise AggregationError(
            f"Missing required column(s): {', '.join(missing)}. "
            f"Available columns: {', '.join(available)}..."
        )


def _check_aggregation(aggregation: str) -> str:
    agg = str(aggregation or "").lower()
    if agg not in AGGREGATIONS:
        raise AggregationError(f"Unsupported aggregation: {aggregation}. Use: {', '.join(AGGREGATIONS)}")
    return agg


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_))


def clean_number(value: Any) -> Any:
    """Normalise numpy scalars to Python numbers; integral floats become ints."""
    if not _is_number(value):
        return value
    f = float(value)
    if np.isfinite(f) and f.is_integer():
        return int(f)
    return f


def _value_sort_key(value: Any):
    # numbers first in numeric order, then everything else by text
    if _is_number(value):
        return (0, float(value), "")
    return (1, 0.0, to_text(value))


def _coerced_sort_key(value: Any):
    n = to_number(value)
    return _value_sort_key(value if n is None else n)


def date_sort_key(value: Any):
    ts = parse_date(value)
    if ts is None:
        return (1, 0, to_text(value))
    return (0, ts.value, "")


def _median(nums: List[float]) -> Any:
    return clean_number(np.median(nums)) if nums else 0


def _mode(ordered: List[Any]) -> Any:
    """Most frequent value; on ties the first one in ``ordered`` wins."""
    if not ordered:
        return 0
    counts: Dict[str, int] = {}
    best, best_count = ordered[0], 0
    for v in ordered:
        key = to_text(v)
        counts[key] = counts.get(key, 0) + 1
        if counts[key] > best_count:
            best, best_count = v, counts[key]
    return clean_number(best)


# ============================================================================
# SCALAR AGGREGATION
# ============================================================================

def calculate_scalar(df: pd.DataFrame, metric: Optional[str], aggregation: str) -> Any:
    """Compute a single summary value over one column.

    Args:
        metric: Column to aggregate; may be None only for "count"
        aggregation: One of sum, avg, count, min, max, median, mode

    Returns:
        A number, or the original cell value for min/max/mode over dates and
        text columns. Empty input yields 0.

    Example:
        >>> calculate_scalar(df, "sales", "sum")
        22
        >>> calculate_scalar(df, "order_date", "max")
        '2024-03-01'
    """
    agg = _check_aggregation(aggregation)
    if agg == "count" and not metric:
        return len(df)
    _require_columns(df, metric)

    values = [v for v in df[metric].tolist() if not is_blank(v)]
    if not values:
        return 0
    if agg == "count":
        return len(values)

    if column_kind(values) == "temporal":
        if agg in MATH_AGGREGATIONS:
            return 0
        ordered = sorted(values, key=date_sort_key)
        if agg == "min":
            return ordered[0]
        if agg == "max":
            return ordered[-1]
        return _mode(ordered)

    nums = [n for n in (to_number(v) for v in values) if n is not None]
    numeric_col = bool(nums) and len(nums) >= len(values) * 0.5

    if agg in MATH_AGGREGATIONS and not nums:
        return 0
    if agg == "sum":
        return clean_number(np.sum(nums))
    if agg == "avg":
        return clean_number(np.mean(nums))
    if agg == "median":
        return _median(nums)

    if numeric_col:
        nums.sort()
        if agg == "min":
            return clean_number(nums[0])
        if agg == "max":
            return clean_number(nums[-1])
        ordered = sorted(values, key=_coerced_sort_key)
    else:
        ordered = sorted(values, key=to_text)
        if agg == "min":
            return ordered[0]
        if agg == "max":
            return ordered[-1]
    return _mode(ordered)


# ============================================================================
# GROUP AGGREGATION
# ============================================================================

def _group_label(value: Any) -> str:
    return UNKNOWN_LABEL if is_blank(value) else to_text(value)


def _group_value(value: Any, math_op: bool) -> Any:
    """Coerce one metric cell for grouping; None means the cell is skipped."""
    if is_blank(value):
        return None
    if isinstance(value, (bool, np.bool_)):
        return to_text(value)
    if _is_number(value):
        f = float(value)
        return f if np.isfinite(f) else None
    if isinstance(value, str):
        if not math_op and len(value) > 8 and ("-" in value or "/" in value) and parse_date(value) is not None:
            return value
        n = to_number(value)
        if n is not None:
            return n
        return None if math_op else value
    return to_text(value)


def _reduce_group(values: List[Any], agg: str) -> Any:
    nums = [float(v) for v in values if _is_number(v)]
    ordered = sorted(values, key=_value_sort_key)
    if agg == "sum":
        return clean_number(np.sum(nums)) if nums else 0
    if agg == "avg":
        return clean_number(np.sum(nums) / max(len(nums), 1)) if nums else 0
    if agg == "min":
        return clean_number(ordered[0]) if ordered else 0
    if agg == "max":
        return clean_number(ordered[-1]) if ordered else 0
    if agg == "count":
        return len(values)
    if agg == "median":
        return _median(nums)
    return _mode(ordered)


def aggregate_groups(
    df: pd.DataFrame,
    dimension: str,
    metric: Optional[str],
    aggregation: str,
    dimension2: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Aggregate one metric per distinct dimension value (or dimension pair).

    Args:
        dimension: Column to group by; blank values are grouped as "Unknown"
        metric: Column to aggregate; None counts rows (each row contributes 1)
        aggregation: One of sum, avg, count, min, max, median, mode
        dimension2: Optional second grouping column

    Returns:
        One dict per group in order of first appearance:
        ``{dimension: label, [dimension2: label], metric-or-"count": value}``

    Example:
        >>> aggregate_groups(df, "category", "sales", "sum")
        [{'category': 'A', 'sales': 15}, {'category': 'B', 'sales': 7}]
    """
    agg = _check_aggregation(aggregation)
    _require_columns(df, *[c for c in (dimension, dimension2, metric) if c])
    if df.empty:
        return []

    math_op = agg in MATH_AGGREGATIONS
    if metric:
        values = [_group_value(v, math_op) for v in df[metric].tolist()]
    else:
        values = [1] * len(df)

    by = ["k1", "k2"] if dimension2 else ["k1"]
    frame = pd.DataFrame({
        "k1": [_group_label(v) for v in df[dimension].tolist()],
        "k2": [_group_label(v) for v in df[dimension2].tolist()] if dimension2 else "",
        "value": pd.Series(values, dtype=object),
    })

    value_field = metric or "count"
    results: List[Dict[str, Any]] = []
    for key, group in frame.groupby(by, sort=False):
        labels = key if isinstance(key, tuple) else (key,)
        row: Dict[str, Any] = {dimension: labels[0]}
        if dimension2:
            row[dimension2] = labels[1]
        row[value_field] = _reduce_group([v for v in group["value"].tolist() if v is not None], agg)
        results.append(row)
    return results


# ============================================================================
# FILTERING
# ============================================================================

def filter_rows(df: pd.DataFrame, filters: Dict[str, str]) -> pd.DataFrame:
    """Keep rows whose lowercased text equals every filter value (AND logic).

    Example:
        >>> filter_rows(df, {"region": "west"})
        # Returns rows where region is "West", "west", ...
    """
    if not filters:
        return df.reset_index(drop=True)
    _require_columns(df, *filters.keys())
    mask = pd.Series(True, index=df.index)
    for col, val in filters.items():
        target = str(val).lower()
        mask &= df[col].map(lambda v: to_text(v).lower()) == target
    return df[mask].reset_index(drop=True)
