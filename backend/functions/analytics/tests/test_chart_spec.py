import copy
import json

import pytest

# Temporarily add the parent directory to the path to allow imports
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import chart_spec
from chart_spec import ChartRecommendation

ROWS = [
    {"region": "West", "sales": 120},
    {"region": "East", "sales": 300},
    {"region": "North", "sales": 80},
]


def _rec(chart_type, **kwargs):
    return ChartRecommendation(title="Sales by Region", type=chart_type, x_axis="region", y_axis="sales", **kwargs)


def test_base_option_theme():
    """
    Every chart carries the shared theme.
    """
    option = chart_spec.compile_chart(_rec("bar"), ROWS)
    assert option["backgroundColor"] == "transparent"
    assert option["color"] == chart_spec.POWERBI_COLORS
    assert option["grid"]["containLabel"] is True
    assert option["animationDuration"] == 750
    assert "Segoe UI" in option["textStyle"]["fontFamily"]


def test_bar_sorted_descending():
    """
    Bar charts sort categories by value, highest first.
    """
    option = chart_spec.compile_chart(_rec("bar"), ROWS)
    assert option["xAxis"]["data"] == ["East", "West", "North"]
    assert option["series"][0]["data"] == [300, 120, 80]
    assert option["series"][0]["type"] == "bar"


def test_sort_none_keeps_input_order():
    """
    sort_order="none" keeps the given (e.g. chronological) order.
    """
    option = chart_spec.compile_chart(_rec("line"), ROWS, sort_order="none")
    assert option["xAxis"]["data"] == ["West", "East", "North"]
    assert option["series"][0]["type"] == "line"
    assert option["series"][0]["smooth"] is True


def test_pie_folds_tail_into_others():
    """
    Pie charts keep the top 10 slices and sum the rest into "Others".
    """
    rows = [{"region": f"R{i}", "sales": 100 - i} for i in range(12)]
    option = chart_spec.compile_chart(_rec("pie"), rows)
    data = option["series"][0]["data"]
    assert len(data) == 11
    assert data[-1] == {"name": "Others", "value": (100 - 10) + (100 - 11)}


def test_pie_full_view_keeps_every_slice():
    """
    full_view disables the "Others" bucket.
    """
    rows = [{"region": f"R{i}", "sales": 100 - i} for i in range(12)]
    option = chart_spec.compile_chart(_rec("pie"), rows, full_view=True)
    assert len(option["series"][0]["data"]) == 12


def test_stacked_bar_with_breakdown():
    """
    A breakdown dimension produces one stacked series per group.
    """
    rows = [
        {"region": "West", "segment": "Consumer", "sales": 10},
        {"region": "West", "segment": "Corporate", "sales": 5},
        {"region": "East", "segment": "Consumer", "sales": 7},
    ]
    option = chart_spec.compile_chart(_rec("bar", breakdown_dimension="segment"), rows)
    assert option["xAxis"]["data"] == ["West", "East"]
    names = [s["name"] for s in option["series"]]
    assert names == ["Consumer", "Corporate"]
    assert option["series"][0]["data"] == [10, 7]
    assert option["series"][1]["data"] == [5, 0]
    assert all(s["stack"] == "total" for s in option["series"])


def test_gauge_uses_average():
    """
    The gauge shows the average and scales its max from the largest value.
    """
    option = chart_spec.compile_chart(_rec("gauge"), ROWS)
    series = option["series"][0]
    assert series["data"][0]["value"] == round((120 + 300 + 80) / 3)
    assert series["max"] == round(300 * 1.2)


@pytest.mark.parametrize("chart_type, limit", [
    ("funnel", 8),
    ("radar", 6),
    ("waterfall", 6),
    ("polar-bar", 8),
    ("pictorialBar", 8),
])
def test_builders_cap_categories(chart_type, limit):
    """
    Space-constrained chart types only show their first N categories.
    """
    rows = [{"region": f"R{i}", "sales": i + 1} for i in range(15)]
    option = chart_spec.compile_chart(_rec(chart_type), rows)
    if chart_type == "radar":
        shown = len(option["radar"]["indicator"])
    elif chart_type == "polar-bar":
        shown = len(option["angleAxis"]["data"])
    elif chart_type == "waterfall":
        shown = len(option["xAxis"]["data"])
    else:
        shown = len(option["series"][0]["data"])
    assert shown == limit


@pytest.mark.parametrize("chart_type", chart_spec.SUPPORTED_CHART_TYPES)
def test_every_type_is_json_serialisable(chart_type):
    """
    Compiled options are plain JSON.
    """
    option = chart_spec.compile_chart(_rec(chart_type, breakdown_dimension="region"), ROWS)
    json.dumps(option)
    assert "series" in option


def test_unknown_type_falls_back_to_bar():
    """
    An unrecognised chart type renders as a bar chart.
    """
    option = chart_spec.compile_chart(_rec("hologram"), ROWS)
    assert option["series"][0]["type"] == "bar"


def test_compile_does_not_mutate_input():
    """
    The compiler never changes its input rows.
    """
    rows = copy.deepcopy(ROWS)
    chart_spec.compile_chart(_rec("pie"), rows)
    chart_spec.compile_chart(_rec("waterfall"), rows)
    assert rows == ROWS


def test_compile_accepts_camel_case_dict():
    """
    A wire-form dict with camelCase keys is accepted.
    """
    rec = {"title": "t", "type": "bar", "xAxis": "region", "yAxis": "sales"}
    option = chart_spec.compile_chart(rec, ROWS)
    assert option["xAxis"]["name"] == "Region"


@pytest.mark.parametrize("value, expected", [
    ("sales", "Sales"),
    ("", ""),
    (None, ""),
])
def test_capitalize(value, expected):
    """
    Tests first-letter capitalisation.
    """
    assert chart_spec.capitalize(value) == expected
