"""
Value objects passed between the extractor, the context merger and the response generator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True)
class Context:
    """The carried-forward subset of a prior turn's intent."""

    metric: Optional[str] = None
    dimension: Optional[str] = None
    chart_type: Optional[str] = None
    aggregation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Context"]:
        """Accept a Context, a wire-form dict (``chartType`` or ``chart_type``) or None."""
        if data is None or isinstance(data, Context):
            return data
        if not isinstance(data, Mapping):
            return None
        chart_type = data.get("chartType", data.get("chart_type"))
        return cls(
            metric=data.get("metric") or None,
            dimension=data.get("dimension") or None,
            chart_type=chart_type or None,
            aggregation=data.get("aggregation") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "dimension": self.dimension,
            "chartType": self.chart_type,
            "aggregation": self.aggregation,
        }


@dataclass(frozen=True)
class Intent:
    """Structured reading of one query. Passes build new instances with ``dataclasses.replace``."""

    metric: Optional[str] = None
    dimension: Optional[str] = None
    dimension2: Optional[str] = None
    chart_type: Optional[str] = None
    aggregation: str = "sum"
    filters: Mapping[str, str] = field(default_factory=dict)
    limit: Optional[int] = None

    def to_context(self) -> Context:
        return Context(
            metric=self.metric,
            dimension=self.dimension,
            chart_type=self.chart_type,
            aggregation=self.aggregation,
        )


@dataclass(frozen=True)
class Response:
    answer: str
    chart: Optional[Dict[str, Any]] = None
    chart_title: Optional[str] = None
    chart_type: Optional[str] = None
    context: Optional[Context] = None
    file_id: Optional[str] = None
    # the rows behind the answer and the chart recommendation, for callers and tests
    data: Optional[List[Dict[str, Any]]] = None
    recommendation: Any = None

    def to_dict(self, include_data: bool = False) -> Dict[str, Any]:
        """Wire form: ``{answer, chart?, chartTitle?, chartType?, context?, fileId?}``."""
        out: Dict[str, Any] = {"answer": self.answer}
        if self.chart is not None:
            out["chart"] = self.chart
        if self.chart_title:
            out["chartTitle"] = self.chart_title
        if self.chart_type:
            out["chartType"] = self.chart_type
        if self.context is not None:
            out["context"] = self.context.to_dict()
        if self.file_id:
            out["fileId"] = self.file_id
        if include_data and self.data is not None:
            out["data"] = self.data
        return out
