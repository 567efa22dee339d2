"""Job indexer error taxonomy and helpers."""

from __future__ import annotations


class IndexerError(RuntimeError):
    """Stable error surfaced to operators as a reason code."""

    code = "INDEXER_ERROR"

    def __init__(self, detail: str | None = None, *, code: str | None = None) -> None:
        if code:
            self.code = code
        self.detail = detail
        message = f"{self.code}:{detail}" if detail else self.code
        super().__init__(message)


class DecodeError(IndexerError):
    """Raised when a completion marker, metrics fragment or value is malformed."""

    code = "DECODE_ERROR"


class MalformedTuple(DecodeError):
    code = "MALFORMED_TUPLE"


class EmptyTuple(MalformedTuple):
    """An empty `[]` sample is ambiguous and never a valid zero-element tuple."""

    code = "EMPTY_TUPLE"


class MissingRequiredMetric(IndexerError):
    code = "MISSING_REQUIRED_METRIC"

    def __init__(self, metric: str) -> None:
        self.metric = metric
        super().__init__(f"job not indexed, does not have metric {metric!r}")


class IndexConflictError(IndexerError):
    """An index entry exists at the target key with different content."""

    code = "INDEX_CONFLICT"


def reason_code(exc: Exception) -> str:
    if isinstance(exc, IndexerError):
        return exc.code
    text = str(exc or "").strip()
    if text.isupper():
        return text
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isupper():
            return head
    return "INTERNAL_ERROR"
