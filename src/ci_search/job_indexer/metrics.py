"""Consolidation of job_metrics.json query dumps into flat index records.

The dump is a stream of concatenated JSON objects, each mapping a query name to
a query API result::

    {"<name>": {"status": "success", "data": {"resultType": "vector",
                "result": [{"metric": {...}, "value": [<ts>, "<number>"]}]}}}

Consolidation flattens every vector result into one entry per series, keyed by
the bare query name or ``<name>{<label>="<value>"}``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .errors import DecodeError, MissingRequiredMetric
from .values import TupleValue, labels_from_json
from .writer import encode_record


DEFAULT_REQUIRED_METRIC = "job:duration:total:seconds"
STATUS_SUCCESS = "success"
RESULT_TYPE_VECTOR = "vector"

_WHITESPACE = re.compile(r"[ \t\n\r]*")
_SNIPPET_CHARS = 64

logger = logging.getLogger("ci_search.job_indexer.metrics")


@dataclass(frozen=True)
class LabeledSeries:
    labels: dict[str, str]
    value: TupleValue

    @classmethod
    def from_json(cls, payload: Any) -> "LabeledSeries":
        if not isinstance(payload, Mapping):
            raise DecodeError(f"result entry must be an object, got {type(payload).__name__}")
        return cls(
            labels=labels_from_json(payload.get("metric")),
            value=TupleValue.from_json(payload.get("value")),
        )


@dataclass(frozen=True)
class QueryResult:
    status: str = ""
    result_type: str = ""
    series: tuple[LabeledSeries, ...] = field(default_factory=tuple)

    @classmethod
    def from_json(cls, payload: Any) -> "QueryResult":
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise DecodeError(f"query result must be an object, got {type(payload).__name__}")
        data = payload.get("data")
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise DecodeError(f"data must be an object, got {type(data).__name__}")
        rows = data.get("result")
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise DecodeError(f"result must be an array, got {type(rows).__name__}")
        return cls(
            status=_optional_str(payload.get("status"), "status"),
            result_type=_optional_str(data.get("resultType"), "resultType"),
            series=tuple(LabeledSeries.from_json(row) for row in rows),
        )


@dataclass(frozen=True)
class ConsolidatedMetrics:
    metrics: dict[str, TupleValue]
    completed_at: int

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return {name: value.as_dict() for name, value in sorted(self.metrics.items())}

    def to_bytes(self) -> bytes:
        return encode_record(self.as_dict())


def decode_metrics_document(data: bytes | str) -> dict[str, QueryResult]:
    """Decode every concatenated fragment in ``data``; later names win."""
    if isinstance(data, (bytes, bytearray)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"metrics dump is not utf-8: {exc}") from exc
    else:
        text = data
    decoder = json.JSONDecoder()
    document: dict[str, QueryResult] = {}
    ordinal = 0
    pos = _WHITESPACE.match(text, 0).end()
    while pos < len(text):
        ordinal += 1
        try:
            fragment, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError as exc:
            snippet = text[exc.pos : exc.pos + _SNIPPET_CHARS]
            raise DecodeError(
                f"failed to decode metric fragment {ordinal}: {exc.msg} near {snippet!r}"
            ) from exc
        if fragment is not None:
            if not isinstance(fragment, Mapping):
                raise DecodeError(
                    f"failed to decode metric fragment {ordinal}: expected object, got {type(fragment).__name__}"
                )
            for name, entry in fragment.items():
                try:
                    document[name] = QueryResult.from_json(entry)
                except DecodeError as exc:
                    raise DecodeError(
                        f"failed to decode metric {name!r} in fragment {ordinal}: {exc.detail}"
                    ) from exc
        pos = _WHITESPACE.match(text, pos).end()
    return document


def representative_label(series: Sequence[LabeledSeries]) -> str | None:
    """Smallest label key of the first labeled series, so keys never depend on map order."""
    for item in series:
        if item.labels:
            return min(item.labels)
    return None


def composite_metric_name(name: str, label: str, value: str) -> str:
    return f"{name}{{{label}={json.dumps(value, ensure_ascii=False)}}}"


def consolidate_metrics(
    document: Mapping[str, QueryResult],
    *,
    required_metric: str = DEFAULT_REQUIRED_METRIC,
    log: logging.Logger | None = None,
) -> ConsolidatedMetrics:
    log = log or logger
    output: dict[str, TupleValue] = {}
    for name, result in document.items():
        if result.status != STATUS_SUCCESS:
            continue
        if result.result_type != RESULT_TYPE_VECTOR:
            continue
        if not result.series:
            continue
        if len(result.series) == 1 and not result.series[0].labels:
            output[name] = result.series[0].value
            continue
        label = representative_label(result.series)
        if label is None:
            log.warning("Dropped %d results from %s because none carry labels", len(result.series), name)
            continue
        for index, item in enumerate(result.series):
            value = item.labels.get(label)
            if value is None:
                log.warning("Dropped result %d from %s because no value for label %s", index, name, label)
                continue
            output[composite_metric_name(name, label, value)] = item.value

    required = output.get(required_metric)
    if required is None:
        raise MissingRequiredMetric(required_metric)
    return ConsolidatedMetrics(metrics=output, completed_at=int(required.timestamp))


def _optional_str(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"{field_name} must be a string, got {type(value).__name__}")
    return value
