"""Completion marker (finished.json) decoding and job state classification."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import DecodeError
from .writer import encode_record


JOB_STATE_SUCCESS = "success"
JOB_STATE_FAILED = "failed"
JOB_STATE_ERROR = "error"

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class JobMetadata:
    """Values computed by the job at runtime (strings or nested objects)."""

    values: dict[str, Any] = field(default_factory=dict)

    def string(self, name: str) -> tuple[str | None, bool]:
        if name not in self.values:
            return None, False
        value = self.values[name]
        return (value, True) if isinstance(value, str) else (None, True)

    def meta(self, name: str) -> tuple["JobMetadata | None", bool]:
        if name not in self.values:
            return None, False
        value = self.values[name]
        if isinstance(value, Mapping):
            return JobMetadata(dict(value)), True
        return None, True

    def keys(self) -> list[str]:
        return sorted(key for key, value in self.values.items() if isinstance(value, Mapping))

    def strings(self) -> dict[str, str]:
        return {key: value for key, value in self.values.items() if isinstance(value, str)}


@dataclass(frozen=True)
class CompletionRecord:
    timestamp: int | None
    passed: bool | None
    metadata: JobMetadata

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "CompletionRecord":
        try:
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise DecodeError(f"invalid completion marker: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise DecodeError(f"completion marker must be an object, got {type(payload).__name__}")
        return cls(
            timestamp=_optional_int64(payload.get("timestamp"), "timestamp"),
            passed=_optional_bool(payload.get("passed"), "passed"),
            metadata=_metadata(payload.get("metadata")),
        )

    @property
    def pending(self) -> bool:
        return not self.timestamp

    def state(self) -> str:
        if self.passed is None:
            return JOB_STATE_ERROR
        return JOB_STATE_SUCCESS if self.passed else JOB_STATE_FAILED


@dataclass(frozen=True)
class JobCompletion:
    state: str
    completed_at: int
    record: CompletionRecord

    @property
    def completed_at_utc(self) -> datetime:
        return datetime.fromtimestamp(self.completed_at, tz=timezone.utc)


@dataclass(frozen=True)
class JobStateRecord:
    state: str
    completed_at: int
    link: str

    def as_dict(self) -> dict[str, Any]:
        return {"state": self.state, "completed_at": int(self.completed_at), "link": self.link}

    def to_bytes(self) -> bytes:
        return encode_record(self.as_dict())


def classify_completion(data: bytes | str) -> JobCompletion | None:
    """Return the job's terminal state, or None while the job is still running."""
    record = CompletionRecord.from_bytes(data)
    if record.pending:
        return None
    return JobCompletion(state=record.state(), completed_at=int(record.timestamp or 0), record=record)


def _optional_int64(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{field_name} must be an integer, got {value!r}")
    if value < _INT64_MIN or value > _INT64_MAX:
        raise DecodeError(f"{field_name} out of int64 range: {value}")
    return value


def _optional_bool(value: Any, field_name: str) -> bool | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise DecodeError(f"{field_name} must be a boolean, got {value!r}")
    return value


def _metadata(value: Any) -> JobMetadata:
    if value is None:
        return JobMetadata()
    if not isinstance(value, Mapping):
        raise DecodeError(f"metadata must be an object, got {type(value).__name__}")
    return JobMetadata(dict(value))
