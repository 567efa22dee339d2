from __future__ import annotations

import pytest

from ci_search.job_indexer.errors import (
    DecodeError,
    EmptyTuple,
    IndexerError,
    MalformedTuple,
    MissingRequiredMetric,
    reason_code,
)


def test_indexer_errors_carry_stable_codes() -> None:
    assert reason_code(EmptyTuple("unexpected empty value")) == "EMPTY_TUPLE"
    assert isinstance(EmptyTuple(), MalformedTuple)
    assert isinstance(MalformedTuple(), DecodeError)
    assert reason_code(MissingRequiredMetric("up")) == "MISSING_REQUIRED_METRIC"
    assert reason_code(IndexerError("detail", code="CUSTOM")) == "CUSTOM"
    assert str(DecodeError("bad json")) == "DECODE_ERROR:bad json"
    assert str(DecodeError()) == "DECODE_ERROR"


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (RuntimeError("STORE_UNAVAILABLE"), "STORE_UNAVAILABLE"),
        (RuntimeError("STORE_UNAVAILABLE:connection reset"), "STORE_UNAVAILABLE"),
        (FileNotFoundError("logs/my-job/55/finished.json"), "INTERNAL_ERROR"),
        (ValueError(), "INTERNAL_ERROR"),
    ],
)
def test_reason_code_for_foreign_exceptions(exc: Exception, code: str) -> None:
    assert reason_code(exc) == code
