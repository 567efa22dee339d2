"""Index path derivation for date-sharded job index entries."""

from __future__ import annotations

import posixpath
from datetime import datetime, timedelta, timezone
from typing import Iterable
from urllib.parse import quote

from .errors import DecodeError


KIND_JOB_STATE = "job-state"
KIND_JOB_FAILURES = "job-failures"
KIND_JOB_METRICS = "job-metrics"
INDEX_KINDS: frozenset[str] = frozenset({KIND_JOB_STATE, KIND_JOB_FAILURES, KIND_JOB_METRICS})

DEFAULT_INDEX_ROOT = "index"
DEFAULT_LOG_ROOT = "logs"
DEFAULT_METRICS_JOB_PREFIXES: tuple[str, ...] = (
    "periodic-ci-openshift-release-",
    "release-openshift-",
)

_URI_SAFE = "/:@!$&'()*+,;=-._~"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_shard_key(timestamp: int) -> str:
    """Render epoch seconds as second-precision RFC3339 in UTC."""
    try:
        moment = _EPOCH + timedelta(seconds=int(timestamp))
    except OverflowError as exc:
        raise DecodeError(f"timestamp {timestamp} cannot be rendered as RFC3339: {exc}") from exc
    return f"{moment.year:04d}-{moment:%m-%dT%H:%M:%S}Z"


def build_index_path(
    kind: str,
    completed_at: int,
    job: str,
    build: str,
    *,
    root: str = DEFAULT_INDEX_ROOT,
) -> str:
    if kind not in INDEX_KINDS:
        raise ValueError(f"unsupported index kind: {kind}")
    return posixpath.join(root, kind, format_shard_key(completed_at), job, build)


def state_path_parts(name: str, *, log_root: str = DEFAULT_LOG_ROOT) -> tuple[str, str] | None:
    """Return ``(job, build)`` for a completion marker path, or None for short paths.

    Markers under ``<log_root>/<job>/<build>/`` take job and build from the
    segments beneath the log root, however deep the marker sits. Other layouts
    use the two directories above the marker.
    """
    parts = name.split("/")
    if len(parts) < 4:
        return None
    if parts[0] == log_root:
        return parts[1], parts[2]
    return parts[-3], parts[-2]


def metrics_path_parts(
    name: str,
    *,
    log_root: str = DEFAULT_LOG_ROOT,
    job_prefixes: Iterable[str] = DEFAULT_METRICS_JOB_PREFIXES,
) -> tuple[str, str, str] | None:
    """Return ``(job, build, link_dir)`` for metrics dumps in scope, else None.

    Only dumps directly under ``<log_root>/<job>/<build>/`` for the release and
    periodic job families are indexed.
    """
    parts = name.split("/")
    if len(parts) < 4 or parts[0] != log_root:
        return None
    job, build = parts[1], parts[2]
    if not any(job.startswith(prefix) for prefix in job_prefixes):
        return None
    return job, build, posixpath.join(*parts[:3])


def source_link(bucket: str, path: str, *, scheme: str = "gs") -> str:
    cleaned = posixpath.normpath(path) if path else ""
    if cleaned in {"", "."}:
        return f"{scheme}://{bucket}"
    return f"{scheme}://{bucket}/{quote(cleaned.lstrip('/'), safe=_URI_SAFE)}"


def marker_link(bucket: str, name: str, *, scheme: str = "gs") -> str:
    """Link to the directory holding the changed object."""
    return source_link(bucket, posixpath.dirname(name), scheme=scheme)
