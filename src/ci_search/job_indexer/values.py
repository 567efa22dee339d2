"""Decoders for time-series sample values and label maps.

Query results carry each sample as ``[<timestamp int>, "<number string>"]``.
The upstream API does not guarantee its exact formatting, so the sample is
scanned with a small explicit grammar instead of a generic decoder. The number
is kept as the source string so consumers see the exact precision that was
reported.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping

from .errors import DecodeError, EmptyTuple, MalformedTuple


_EXPECTED = 'expected [<timestamp int>, "<number string>"]'
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_DECIMAL_PATTERN = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class _State(IntEnum):
    START = 0
    TIMESTAMP = 1
    STRING_NUMBER = 2
    CLOSE = 3
    DONE = 4


@dataclass
class TupleValue:
    timestamp: int = 0
    value: str = ""

    def decode(self, data: str | bytes) -> "TupleValue":
        """Decode raw JSON text into this value, in place."""
        decode_tuple_value(data, into=self)
        return self

    @classmethod
    def from_json(cls, value: Any, into: "TupleValue | None" = None) -> "TupleValue":
        """Decode an already-parsed JSON value with the same grammar as raw text."""
        target = into if into is not None else cls()
        decode_tuple_value(json.dumps(value), into=target)
        return target

    def as_dict(self) -> dict[str, Any]:
        return {"timestamp": int(self.timestamp), "value": str(self.value)}

    def to_json(self) -> str:
        return json.dumps([int(self.timestamp), str(self.value)])


def decode_tuple_value(data: str | bytes, into: TupleValue | None = None) -> TupleValue | None:
    """Scan ``data`` into ``into`` (or a fresh value) and return it.

    ``null`` leaves the destination untouched and returns it as-is. Fields are
    assigned as soon as they are scanned, so a failure part way through leaves
    the earlier fields set.
    """
    text = _text(data).strip()
    if text == "null":
        return into
    if text == "[]":
        raise EmptyTuple("unexpected empty value")

    target = into if into is not None else TupleValue()
    state = _State.START
    rest = text
    while rest:
        head = rest[0]
        if head == "[":
            if state is not _State.START:
                raise _unexpected(head, state)
            rest = rest[1:].strip()
            state = _State.TIMESTAMP
        elif head == "]":
            if state is not _State.CLOSE:
                raise _unexpected(head, state)
            rest = rest[1:].strip()
            state = _State.DONE
        elif state is _State.TIMESTAMP:
            pos = rest.find(",")
            if pos == -1:
                raise MalformedTuple(f"{_EXPECTED}, could not find comma")
            target.timestamp = _parse_int64(rest[:pos].strip())
            rest = rest[pos + 1 :]
            state = _State.STRING_NUMBER
        elif state is _State.STRING_NUMBER:
            pos = rest.find("]")
            if pos == -1:
                raise MalformedTuple(f"{_EXPECTED}, could not find ending bracket in {rest!r}")
            target.value = _parse_number_string(rest[:pos].strip())
            rest = rest[pos:]
            state = _State.CLOSE
        else:
            raise _unexpected(head, state)
    if state is not _State.DONE:
        raise MalformedTuple(_EXPECTED)
    return target


def decode_labels(data: str | bytes, into: dict[str, str] | None = None) -> dict[str, str]:
    """Decode a raw JSON label map into ``into``.

    ``null`` is a no-op and ``{}`` clears the destination in place.
    """
    text = _text(data).strip()
    if text == "null":
        return into if into is not None else {}
    if text == "{}":
        return _clear(into)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid label map: {exc}") from exc
    return labels_from_json(payload, into)


def labels_from_json(payload: Any, into: dict[str, str] | None = None) -> dict[str, str]:
    target = into if into is not None else {}
    if payload is None:
        return target
    if not isinstance(payload, Mapping):
        raise DecodeError(f"labels must be an object, got {type(payload).__name__}")
    if not payload:
        return _clear(target)
    for key, value in payload.items():
        if not isinstance(value, str):
            raise DecodeError(f"label {key!r} must be a string, got {type(value).__name__}")
        target[str(key)] = value
    return target


def _parse_int64(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise MalformedTuple(f"{_EXPECTED}, timestamp was not an int64: {text!r}")
    value = int(text)
    if value < _INT64_MIN or value > _INT64_MAX:
        raise MalformedTuple(f"{_EXPECTED}, timestamp was not an int64: {text!r} out of range")
    return value


def _parse_number_string(token: str) -> str:
    if len(token) < 2 or token[0] != '"' or token[-1] != '"':
        raise MalformedTuple(f"{_EXPECTED}, could not find number string")
    inner = token[1:-1]
    if inner != inner.strip():
        raise MalformedTuple(f"{_EXPECTED}, number was not a valid float64: whitespace in string")
    if not _DECIMAL_PATTERN.fullmatch(inner) or not math.isfinite(float(inner)):
        raise MalformedTuple(f"{_EXPECTED}, number was not a valid float64: {inner!r}")
    return inner


def _unexpected(head: str, state: _State) -> MalformedTuple:
    return MalformedTuple(f"unexpected character {head} in state {state.name.lower()}")


def _clear(target: dict[str, str] | None) -> dict[str, str]:
    if target is None:
        return {}
    target.clear()
    return target


def _text(data: str | bytes) -> str:
    if isinstance(data, (bytes, bytearray)):
        try:
            return bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"value is not utf-8: {exc}") from exc
    return str(data)
