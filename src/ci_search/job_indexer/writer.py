"""Idempotent index publication over a create-if-absent object store."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from ci_search.storage import JSON_CONTENT_TYPE, ObjectStore

from .errors import IndexConflictError


PUBLISH_NEW = "NEW"
PUBLISH_DUPLICATE = "DUPLICATE"
PUBLISH_CONFLICT = "CONFLICT"

CONFLICT_POLICY_ERROR = "error"
CONFLICT_POLICY_WARN = "warn"

logger = logging.getLogger("ci_search.job_indexer.writer")


@dataclass(frozen=True)
class PublishObservation:
    outcome: str
    index_path: str
    link: str | None
    payload_hash: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "index_path": self.index_path,
            "link": self.link,
            "payload_hash": self.payload_hash,
        }


class IndexWriter:
    """Publishes index entries at most once per key.

    A second publish of identical bytes is a duplicate delivery and succeeds
    without writing. Different bytes at an existing key are a conflict.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        conflict_policy: str = CONFLICT_POLICY_ERROR,
        log: logging.Logger | None = None,
    ) -> None:
        if conflict_policy not in {CONFLICT_POLICY_ERROR, CONFLICT_POLICY_WARN}:
            raise ValueError(f"unsupported conflict policy: {conflict_policy}")
        self.store = store
        self.conflict_policy = conflict_policy
        self.log = log or logger

    def publish(
        self,
        index_path: str,
        body: bytes,
        *,
        metadata: Mapping[str, str],
        content_type: str = JSON_CONTENT_TYPE,
    ) -> PublishObservation:
        payload_hash = payload_digest(body)
        link = metadata.get("link")
        try:
            self.store.write_bytes_if_absent(index_path, body, metadata=metadata, content_type=content_type)
        except FileExistsError:
            existing_hash = payload_digest(self.store.read_bytes(index_path))
            if existing_hash == payload_hash:
                self.log.info("Index entry %s already published; treating as duplicate delivery", index_path)
                return PublishObservation(PUBLISH_DUPLICATE, index_path, link, payload_hash)
            detail = f"{index_path} expected_hash={existing_hash} observed_hash={payload_hash}"
            if self.conflict_policy == CONFLICT_POLICY_ERROR:
                raise IndexConflictError(detail) from None
            self.log.warning("Index entry conflict left in place: %s", detail)
            return PublishObservation(PUBLISH_CONFLICT, index_path, link, payload_hash)
        return PublishObservation(PUBLISH_NEW, index_path, link, payload_hash)


def encode_record(payload: Mapping[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, ensure_ascii=True, separators=(",", ":")).encode("utf-8")


def payload_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
