import json

import pytest
from unittest.mock import patch, MagicMock

# Temporarily add the parent directory to the path to allow imports
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Now, import the module
import main
from data_source import DataSourceError

ORIGIN = "http://localhost:5173"
ROWS = [
    {"category": "A", "sales": 10},
    {"category": "A", "sales": 5},
    {"category": "B", "sales": 7},
]


def _request(method="POST", body=None, origin=ORIGIN):
    request = MagicMock()
    request.method = method
    request.headers = {"Origin": origin} if origin else {}
    request.get_json.return_value = body
    return request


@pytest.fixture(autouse=True)
def allowed(monkeypatch):
    monkeypatch.setattr(main, "ALLOWED_ORIGINS", {ORIGIN})


# Test cases for the _origin_allowed function
@pytest.mark.parametrize("origin, allowed_origins, expected", [
    ("http://localhost:5173", {"http://localhost:5173", "https://example.com"}, True),
    ("https://example.com", {"http://localhost:5173", "https://example.com"}, True),
    ("http://disallowed.com", {"http://localhost:5173", "https://example.com"}, False),
    (None, {"http://localhost:5173", "https://example.com"}, False),
    ("http://localhost:5173", set(), False),
])
def test_origin_allowed(origin, allowed_origins, expected, monkeypatch):
    """
    Tests the _origin_allowed function with various origins and allowed lists.
    """
    monkeypatch.setattr(main, "ALLOWED_ORIGINS", allowed_origins)
    assert main._origin_allowed(origin) == expected


def test_preflight_allowed():
    """
    OPTIONS from an allowed origin gets CORS headers and 204.
    """
    body, status, headers = main.analyze(_request(method="OPTIONS"))
    assert status == 204
    assert headers["Access-Control-Allow-Origin"] == ORIGIN
    assert "POST" in headers["Access-Control-Allow-Methods"]


def test_preflight_forbidden():
    """
    OPTIONS from an unknown origin is rejected.
    """
    assert main.analyze(_request(method="OPTIONS", origin="http://evil.example")) == ("Origin not allowed", 403)


def test_post_forbidden_origin():
    """
    POST from an unknown origin is a 403 JSON error.
    """
    resp = main.analyze(_request(body={"question": "total sales", "rows": ROWS}, origin="http://evil.example"))
    assert resp.status_code == 403
    assert json.loads(resp.get_data(as_text=True)) == {"error": "origin not allowed"}


@pytest.mark.parametrize("body, error", [
    (None, "missing question"),
    ({"rows": ROWS}, "missing question"),
    ({"question": "   ", "rows": ROWS}, "missing question"),
    ({"question": "total sales"}, "missing rows or datasetId"),
    ({"question": "total sales", "rows": "abc"}, "rows must be a list of objects"),
    ({"question": "total sales", "rows": ROWS, "context": "bar"}, "context must be an object"),
])
def test_bad_input(body, error):
    """
    Malformed bodies are rejected with 400.
    """
    resp = main.analyze(_request(body=body))
    assert resp.status_code == 400
    assert json.loads(resp.get_data(as_text=True))["error"] == error


def test_post_inline_rows():
    """
    A question over inline rows returns the handled response.
    """
    resp = main.analyze(_request(body={"question": "sales by category", "rows": ROWS}))
    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == ORIGIN
    payload = json.loads(resp.get_data(as_text=True))
    assert payload["handled"] is True
    assert payload["response"]["chartType"] == "bar"
    assert payload["response"]["context"] == {
        "metric": "sales", "dimension": "category", "chartType": "bar", "aggregation": "sum",
    }


def test_post_with_context_follow_up():
    """
    The context from a previous reply drives the follow-up.
    """
    ctx = {"metric": "sales", "dimension": "category", "chartType": "bar", "aggregation": "sum"}
    resp = main.analyze(_request(body={"question": "now show as a pie chart", "rows": ROWS, "context": ctx}))
    payload = json.loads(resp.get_data(as_text=True))
    assert payload["response"]["chartType"] == "pie"


def test_post_not_handled():
    """
    Non-analytical questions come back unhandled.
    """
    resp = main.analyze(_request(body={"question": "hello there", "rows": ROWS}))
    assert resp.status_code == 200
    assert json.loads(resp.get_data(as_text=True)) == {"handled": False, "response": None}


@patch("main.resolver_from_config")
def test_post_dataset_id(mock_resolver):
    """
    datasetId rows are fetched through the resolver and the file id is returned.
    """
    mock_resolver.return_value.fetch.return_value = (ROWS, "sales.csv")
    resp = main.analyze(_request(body={"question": "total sales", "datasetId": "sales"}))
    payload = json.loads(resp.get_data(as_text=True))
    mock_resolver.return_value.fetch.assert_called_once_with("sales")
    assert payload["response"]["fileId"] == "sales.csv"
    assert "22" in payload["response"]["answer"]


@patch("main.resolver_from_config")
def test_post_dataset_not_found(mock_resolver):
    """
    An unknown datasetId is a 404.
    """
    mock_resolver.return_value.fetch.side_effect = DataSourceError("Data source not found: nope")
    resp = main.analyze(_request(body={"question": "total sales", "datasetId": "nope"}))
    assert resp.status_code == 404
    assert json.loads(resp.get_data(as_text=True))["error"] == "dataset not found"


def test_internal_error(monkeypatch):
    """
    Unexpected exceptions become a 500 with detail.
    """
    engine = MagicMock()
    engine.analyze.side_effect = RuntimeError("boom")
    monkeypatch.setattr(main, "ENGINE", engine)
    resp = main.analyze(_request(body={"question": "total sales", "rows": ROWS}))
    assert resp.status_code == 500
    assert json.loads(resp.get_data(as_text=True)) == {"error": "internal error", "detail": "boom"}
