"""
AnalyticalEngine: the entry point that ties the gate, the extractor, filtering
and the response generator together.

The engine keeps configuration only; every call is independent, and a None
result means "not handled here" so the caller can defer to another handler.
"""
from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import pandas as pd

import config
from aggregation import filter_rows
from data_source import DataSourceError, DataSourceResolver, resolver_from_config
from entities import extract_entities
from insights import generate_insight
from intent import is_analytical
from models import Context, Response

Dataset = Union[pd.DataFrame, Iterable[Mapping[str, Any]]]


def _to_frame(dataset: Optional[Dataset]) -> Optional[pd.DataFrame]:
    if dataset is None:
        return None
    if isinstance(dataset, pd.DataFrame):
        frame = dataset
    else:
        rows = [dict(r) for r in dataset if isinstance(r, Mapping)]
        if not rows:
            return None
        frame = pd.DataFrame(rows, dtype=object)
    if frame.empty or len(frame.columns) == 0:
        return None
    # str labels everywhere; rename returns a new frame so the caller's data stays untouched
    return frame.rename(columns=str)


class AnalyticalEngine:
    """Answers analytical questions over tabular rows.

    Args:
        default_limit: Rows shown in ranked answers and charts when no "top N" was asked
        list_limit: Cap for "list <dimension>" answers
        sample_size: Non-blank values sampled per column for type inference
        resolver: Data-source resolver for ``analyze_source``; built from config when omitted

    Example:
        >>> engine = AnalyticalEngine()
        >>> engine.analyze("total sales", [{"sales": 10}, {"sales": 12}]).answer
        'The Total Sales is **22**.'
    """

    def __init__(
        self,
        default_limit: int = config.DEFAULT_LIMIT,
        list_limit: int = config.LIST_LIMIT,
        sample_size: int = config.TYPE_SAMPLE_SIZE,
        resolver: Optional[DataSourceResolver] = None,
        log_queries: bool = config.LOG_QUERIES,
    ):
        self.default_limit = default_limit
        self.list_limit = list_limit
        self.sample_size = sample_size
        self.resolver = resolver
        self.log_queries = log_queries

    def _log(self, event: str, query: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"event": event}
        if self.log_queries:
            payload["question"] = query
        payload.update(fields)
        logging.info(json.dumps(payload, default=str))

    def analyze(
        self,
        query: str,
        dataset: Optional[Dataset],
        context: Optional[Union[Context, Mapping[str, Any]]] = None,
    ) -> Optional[Response]:
        """Answer ``query`` over ``dataset`` (a DataFrame or a list of row dicts).

        Returns None when the dataset is empty, the query is not analytical,
        or no sensible answer exists.
        """
        frame = _to_frame(dataset)
        if frame is None:
            self._log("analyze_deferred", query, reason="empty_dataset")
            return None
        self._log("analyze_start", query, rows=len(frame), columns=len(frame.columns))

        if not is_analytical(query):
            self._log("analyze_deferred", query, reason="not_analytical")
            return None

        ctx = Context.from_dict(context)
        intent = extract_entities(query, list(frame.columns), frame, ctx, self.sample_size)
        self._log(
            "intent_resolved",
            query,
            metric=intent.metric,
            dimension=intent.dimension,
            dimension2=intent.dimension2,
            aggregation=intent.aggregation,
            chartType=intent.chart_type,
            limit=intent.limit,
        )

        if intent.filters:
            frame = filter_rows(frame, dict(intent.filters))
            self._log("filters_applied", query, filters=dict(intent.filters), rows=len(frame))

        response = generate_insight(query, intent, frame, self.default_limit, self.list_limit)
        if response is None:
            self._log("analyze_deferred", query, reason="no_answer")
            return None
        self._log("analyze_done", query, chartType=response.chart_type, hasChart=response.chart is not None)
        return response

    def analyze_source(
        self,
        query: str,
        data_source_id: str,
        context: Optional[Union[Context, Mapping[str, Any]]] = None,
    ) -> Optional[Response]:
        """Resolve ``data_source_id`` to a file, read it, and answer over its rows.

        A failed lookup or read is logged and returns None.
        """
        resolver = self.resolver or resolver_from_config()
        try:
            rows, file_id = resolver.fetch(data_source_id)
        except DataSourceError as e:
            self._log("source_failed", query, dataSourceId=data_source_id, detail=str(e)[:200])
            return None
        self._log("source_resolved", query, dataSourceId=data_source_id, fileId=file_id, rows=len(rows))

        response = self.analyze(query, rows, context)
        if response is None:
            return None
        return replace(response, file_id=file_id)
