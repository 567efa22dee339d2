"""Configuration loader for job indexer profiles."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, field_validator

from .keys import DEFAULT_INDEX_ROOT, DEFAULT_LOG_ROOT, DEFAULT_METRICS_JOB_PREFIXES
from .metrics import DEFAULT_REQUIRED_METRIC

PROFILE_ENV = "CI_SEARCH_PROFILE"
_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class IndexerProfile(BaseModel):
    profile_id: str = "default"
    object_store_kind: Literal["gcs", "s3", "local"] = "gcs"
    object_store_root: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_path_style: bool | None = None
    index_root: str = DEFAULT_INDEX_ROOT
    link_scheme: str = "gs"
    log_root: str = DEFAULT_LOG_ROOT
    metrics_job_prefixes: list[str] = list(DEFAULT_METRICS_JOB_PREFIXES)
    required_metric: str = DEFAULT_REQUIRED_METRIC
    publish_failures: bool = False
    conflict_policy: Literal["error", "warn"] = "error"
    log_level: str = "INFO"

    @field_validator("index_root", "log_root")
    @classmethod
    def _path_segment(cls, value: str) -> str:
        text = value.strip().strip("/")
        if not text:
            raise ValueError("path segment must not be empty")
        return text

    @field_validator("metrics_job_prefixes")
    @classmethod
    def _non_empty_prefixes(cls, value: list[str]) -> list[str]:
        prefixes = [item.strip() for item in value if item.strip()]
        if not prefixes:
            raise ValueError("metrics_job_prefixes must name at least one prefix")
        return prefixes


def _expand_str(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token:
            key, default = token.split(":-", 1)
            actual = os.getenv(key, "")
            return actual if actual.strip() else default
        actual = os.getenv(token, "")
        if not actual.strip():
            raise ValueError(f"missing environment variable: {token}")
        return actual

    return _VAR_PATTERN.sub(replacer, value)


def _expand_payload(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_str(value)
    if isinstance(value, list):
        return [_expand_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _expand_payload(item) for key, item in value.items()}
    return value


def load_profile(path: Path) -> IndexerProfile:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"indexer profile must be a mapping: {path}")
    payload = data.get("job_indexer", data)
    expanded = _expand_payload(payload)
    return IndexerProfile(**expanded)


def resolve_profile(path: str | Path | None = None) -> IndexerProfile:
    """Load ``path`` or the profile named by CI_SEARCH_PROFILE; defaults otherwise."""
    explicit = str(path or os.getenv(PROFILE_ENV) or "").strip()
    if not explicit:
        return IndexerProfile()
    return load_profile(Path(explicit))
