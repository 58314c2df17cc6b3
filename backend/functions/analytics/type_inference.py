"""
Column type inference shared by the extractor, the aggregators and the filter scanner.

Datasets arrive untyped: a column is "numeric", "temporal" or "categorical" only
because of what a small sample of its values looks like. Every component asks
these helpers instead of re-deciding numeric-ness on its own.
"""
from __future__ import annotations

import itertools
import math
import numbers
import re
import warnings
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Iterable, List, Optional

import numpy as np
import pandas as pd


SAMPLE_SIZE = 5

_NUMBER_STRIP_RE = re.compile(r"[^0-9.\-]+")
_NUMERIC_GARBAGE_RE = re.compile(r"[0-9.,\s$€£¥%\-]")
_FLOAT_PREFIX_RE = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)")
_DIGIT_RE = re.compile(r"\d")

# Strings pandas would otherwise complete with today's date are rejected up front.
_DATE_HINT_RE = re.compile(
    r"\d{4}[-/.]\d{1,2}"
    r"|\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}"
    r"|[a-z]{3,9}\.?\s+\d{1,2},?\s+\d{4}"
    r"|\d{1,2}\s+[a-z]{3,9}\.?,?\s+\d{4}"
    r"|[a-z]{3,9}\.?\s+\d{4}",
    re.IGNORECASE,
)
_YEAR_ONLY_RE = re.compile(r"^(?:1[89]|2\d)\d{2}$")
_TIME_ONLY_RE = re.compile(r"^\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?\s*(?:[ap]\.?m\.?)?$", re.IGNORECASE)
_ID_TOKEN_RE = re.compile(r"(?:^|[^a-z])id(?:$|[^a-z])")
_CAMEL_ID_RE = re.compile(r"[a-z0-9](?:Id|ID)$")

TIME_NAME_HINTS = ("date", "year", "month", "time")


def is_blank(value: Any) -> bool:
    """True for None, empty strings, NaN and NaT."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if value is pd.NaT:
        return True
    if isinstance(value, numbers.Real) and not isinstance(value, numbers.Integral):
        return math.isnan(float(value))
    return False


def to_number(value: Any) -> Optional[float]:
    """Lenient numeric coercion used during aggregation.

    Numbers pass through; strings are stripped of everything but digits, dots
    and minus signs and the leading float is parsed ("$1,200.50" -> 1200.5).
    Returns None when nothing parseable remains.
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, numbers.Real):
        f = float(value)
        return f if math.isfinite(f) else None
    if isinstance(value, str):
        m = _FLOAT_PREFIX_RE.match(_NUMBER_STRIP_RE.sub("", value))
        if not m:
            return None
        f = float(m.group(0))
        return f if math.isfinite(f) else None
    return None


@lru_cache(maxsize=4096)
def _parse_date_text(text: str) -> Optional[pd.Timestamp]:
    if _TIME_ONLY_RE.match(text):
        text = f"1970-01-01 {text}"
    elif _YEAR_ONLY_RE.match(text):
        return pd.Timestamp(year=int(text), month=1, day=1)
    elif not _DATE_HINT_RE.search(text):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        ts = pd.to_datetime(text, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """Parse a date-like value into a timezone-naive Timestamp, or None."""
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        return value.tz_convert("UTC").tz_localize(None) if value.tzinfo is not None else value
    if isinstance(value, (datetime, date)):
        return parse_date(pd.Timestamp(value))
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    return _parse_date_text(text)


def looks_like_date(value: Any, min_length: int = 5) -> bool:
    """A string longer than ``min_length`` with a -, / or : separator that parses as a date."""
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return not is_blank(value)
    if not isinstance(value, str) or len(value) <= min_length:
        return False
    if not any(sep in value for sep in ("-", "/", ":")):
        return False
    return parse_date(value) is not None


def is_numeric_value(value: Any) -> bool:
    """Decide whether one sampled cell is "numeric enough".

    Accepts real numbers and formatted numeric strings such as "$1,200",
    "45%" or "12 kg": at least one digit must survive stripping and fewer than
    three characters may remain once digits and currency, percent and
    separator symbols are removed.
    """
    if isinstance(value, (bool, np.bool_)):
        return False
    if isinstance(value, numbers.Real):
        return math.isfinite(float(value))
    if not isinstance(value, str):
        return False
    cleaned = _NUMBER_STRIP_RE.sub("", value)
    if not _DIGIT_RE.search(cleaned):
        return False
    if len(_NUMERIC_GARBAGE_RE.sub("", value)) >= 3:
        return False
    return _FLOAT_PREFIX_RE.match(cleaned) is not None


def sample_values(values: Iterable[Any], size: int = SAMPLE_SIZE) -> List[Any]:
    """First ``size`` non-blank values, in order."""
    return list(itertools.islice((v for v in values if not is_blank(v)), size))


def is_numeric_column(values: Iterable[Any], size: int = SAMPLE_SIZE) -> bool:
    """A column is numeric iff its sample is non-empty and every sampled value is numeric."""
    sample = sample_values(values, size)
    return bool(sample) and all(is_numeric_value(v) for v in sample)


def column_kind(values: Iterable[Any], size: int = SAMPLE_SIZE) -> str:
    """Classify a column as "numeric", "temporal" or "categorical" from its sample.

    ISO dates also pass the numeric test, so the date check runs first.
    """
    sample = sample_values(values, size)
    if sample and all(looks_like_date(v) for v in sample):
        return "temporal"
    if sample and all(is_numeric_value(v) for v in sample):
        return "numeric"
    return "categorical"


def is_time_like_name(name: Optional[str]) -> bool:
    lower = (name or "").lower()
    return any(hint in lower for hint in TIME_NAME_HINTS)


def is_id_column(name: Optional[str]) -> bool:
    """Identifier columns ("id", "employee_id", "EmployeeID") are never grouped or charted."""
    if not name:
        return False
    return bool(_ID_TOKEN_RE.search(name.lower()) or _CAMEL_ID_RE.search(name))


def to_text(value: Any) -> str:
    """String form used for grouping keys, filter matching and display."""
    if is_blank(value):
        return ""
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        f = float(value)
        if math.isfinite(f) and f.is_integer():
            return str(int(f))
        return str(f)
    if isinstance(value, (pd.Timestamp, datetime)):
        ts = pd.Timestamp(value)
        if ts == ts.normalize():
            return ts.strftime("%Y-%m-%d")
        return ts.isoformat()
    return str(value)
