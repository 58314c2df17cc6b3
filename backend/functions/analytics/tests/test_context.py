import pytest

# Temporarily add the parent directory to the path to allow imports
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import context
from models import Context, Intent

PRIOR = Context(metric="sales", dimension="category", chart_type="bar", aggregation="sum")


def test_no_context_returns_intent_unchanged():
    """
    Without a prior turn nothing is inherited.
    """
    intent = Intent(metric="sales")
    assert context.merge_context(intent, "total sales", None) is intent


def test_chart_change_inherits_metric_and_dimension():
    """
    A new chart type with no fields keeps the previous metric and dimension.
    """
    merged = context.merge_context(Intent(chart_type="pie"), "now show as a pie chart", PRIOR)
    assert (merged.metric, merged.dimension, merged.chart_type) == ("sales", "category", "pie")


def test_short_follow_up_inherits_both():
    """
    Short follow-ups such as "sort it" inherit the previous fields.
    """
    merged = context.merge_context(Intent(), "sort it", PRIOR)
    assert (merged.metric, merged.dimension) == ("sales", "category")


def test_new_question_without_fields_inherits_nothing():
    """
    A fresh question that names no column starts clean.
    """
    merged = context.merge_context(Intent(), "show me everything in the dataset", PRIOR)
    assert merged.metric is None
    assert merged.dimension is None


@pytest.mark.parametrize("query, expected_metric", [
    ("and by region", "sales"),          # follow-up: keep metric
    ("show breakdown by region", "sales"),  # new intent but explicit grouping
    ("show region", None),               # brand-new question, no grouping words
])
def test_dimension_only_inherits_metric(query, expected_metric):
    """
    A query naming only a dimension takes the prior metric unless it is a new, ungrouped question.
    """
    merged = context.merge_context(Intent(dimension="region"), query, PRIOR)
    assert merged.dimension == "region"
    assert merged.metric == expected_metric


@pytest.mark.parametrize("query, expected_dimension", [
    ("and profit", "category"),
    ("what is the total profit", None),
    ("what is the profit by category", "category"),
])
def test_metric_only_inherits_dimension(query, expected_dimension):
    """
    A query naming only a metric keeps the prior dimension unless it is a bare scalar question.
    """
    merged = context.merge_context(Intent(metric="profit"), query, PRIOR)
    assert merged.metric == "profit"
    assert merged.dimension == expected_dimension


def test_aggregation_carries_forward_unless_total_requested():
    """
    A prior average survives a default-sum follow-up but not an explicit "total".
    """
    prior = Context(metric="sales", dimension="category", chart_type="bar", aggregation="avg")
    assert context.merge_context(Intent(dimension="region"), "and by region", prior).aggregation == "avg"
    assert context.merge_context(Intent(dimension="region"), "total by region", prior).aggregation == "sum"


def test_prior_count_is_not_inherited():
    """
    A prior count does not leak into a later sum question.
    """
    prior = Context(metric=None, dimension="category", chart_type=None, aggregation="count")
    assert context.merge_context(Intent(metric="sales"), "and sales", prior).aggregation == "sum"


@pytest.mark.parametrize("query, expected", [
    ("show sales", True),
    ("visualize it", True),
    ("sort descending", False),
])
def test_is_new_intent(query, expected):
    """
    Tests the new-question detector.
    """
    assert context.is_new_intent(query) is expected


@pytest.mark.parametrize("query, expected", [
    ("sort it", True),
    ("filter to the western regions only", True),
    ("what were the biggest categories last year", False),
])
def test_is_follow_up(query, expected):
    """
    Short queries and those opening with follow-up verbs are follow-ups.
    """
    assert context.is_follow_up(query) is expected
