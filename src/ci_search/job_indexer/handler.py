"""Job indexer dispatcher: one storage change event in, at most one index entry per kind out.

Completed jobs are linked from::

    <bucket>/index/job-state/<RFC3339 completion>/<job>/<build>

with a job result body and a ``link`` metadata attribute pointing at the
``gs://`` directory of the source. Release job metrics are consolidated into::

    <bucket>/index/job-metrics/<RFC3339 completion>/<job>/<build>

Readers should not assume the link is in the same bucket as the index.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ci_search.logging_utils import configure_logging
from ci_search.storage import ObjectStore, build_object_store

from .completion import JOB_STATE_SUCCESS, JobStateRecord, classify_completion
from .config import IndexerProfile, resolve_profile
from .errors import DecodeError
from .keys import (
    KIND_JOB_FAILURES,
    KIND_JOB_METRICS,
    KIND_JOB_STATE,
    build_index_path,
    marker_link,
    metrics_path_parts,
    source_link,
    state_path_parts,
)
from .metrics import consolidate_metrics, decode_metrics_document
from .writer import IndexWriter, PublishObservation


MARKER_FILENAME = "finished.json"
METRICS_FILENAME = "job_metrics.json"

ACTION_IGNORED = "ignored"
ACTION_SKIPPED = "skipped"
ACTION_PENDING = "pending"
ACTION_PUBLISHED = "published"

logger = logging.getLogger("ci_search.job_indexer.handler")

StoreFactory = Callable[[str], ObjectStore]


@dataclass(frozen=True)
class ObjectChangeEvent:
    bucket: str
    name: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ObjectChangeEvent":
        """Accept a storage notification, a CloudEvent body or a Pub/Sub push envelope."""
        if not isinstance(payload, Mapping):
            raise DecodeError(f"event must be an object, got {type(payload).__name__}")
        message = payload.get("message")
        if isinstance(message, Mapping):
            return cls._from_push_message(message)
        nested = payload.get("data")
        if isinstance(nested, Mapping) and "bucket" not in payload:
            payload = nested
        return cls(
            bucket=_required(payload.get("bucket"), "bucket"),
            name=_required(payload.get("name"), "name"),
        )

    @classmethod
    def _from_push_message(cls, message: Mapping[str, Any]) -> "ObjectChangeEvent":
        attributes = message.get("attributes")
        if isinstance(attributes, Mapping) and attributes.get("bucketId") and attributes.get("objectId"):
            return cls(bucket=str(attributes["bucketId"]), name=str(attributes["objectId"]))
        raw = message.get("data")
        if not raw:
            raise DecodeError("push message carries neither object attributes nor data")
        try:
            body = json.loads(base64.b64decode(str(raw), validate=True))
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"push message data is not base64 JSON: {exc}") from exc
        return cls.from_payload(body)


@dataclass(frozen=True)
class IndexOutcome:
    action: str
    kind: str | None = None
    observations: tuple[PublishObservation, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "kind": self.kind,
            "observations": [item.as_dict() for item in self.observations],
        }


class JobIndexer:
    def __init__(
        self,
        profile: IndexerProfile,
        *,
        store_factory: StoreFactory | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.profile = profile
        self._store_factory = store_factory or self._default_store
        self.log = log or logger

    def handle(self, event: ObjectChangeEvent) -> IndexOutcome:
        base = posixpath.basename(event.name)
        if base == MARKER_FILENAME:
            return self._index_completion(event)
        if base == METRICS_FILENAME:
            return self._index_metrics(event)
        return IndexOutcome(ACTION_IGNORED)

    def _index_completion(self, event: ObjectChangeEvent) -> IndexOutcome:
        parts = state_path_parts(event.name, log_root=self.profile.log_root)
        if parts is None:
            return IndexOutcome(ACTION_SKIPPED, KIND_JOB_STATE)
        job, build = parts
        store = self._store_factory(event.bucket)
        data = store.read_bytes(event.name)
        completion = classify_completion(data)
        if completion is None:
            self.log.debug("Job %s/%s has not finished yet", job, build)
            return IndexOutcome(ACTION_PENDING, KIND_JOB_STATE)

        link = marker_link(event.bucket, event.name, scheme=self.profile.link_scheme)
        record = JobStateRecord(state=completion.state, completed_at=completion.completed_at, link=link)
        index_path = build_index_path(
            KIND_JOB_STATE,
            completion.completed_at,
            job,
            build,
            root=self.profile.index_root,
        )
        writer = self._writer(store)
        observations = [
            writer.publish(
                index_path,
                record.to_bytes(),
                metadata={
                    "link": link,
                    "state": completion.state,
                    "completed": str(completion.completed_at),
                },
            )
        ]
        self.log.info(
            "Indexed job %s with state %s to %s://%s/%s",
            link,
            completion.state,
            self.profile.link_scheme,
            event.bucket,
            index_path,
        )

        if self.profile.publish_failures and completion.state != JOB_STATE_SUCCESS:
            failures_path = build_index_path(
                KIND_JOB_FAILURES,
                completion.completed_at,
                job,
                build,
                root=self.profile.index_root,
            )
            observations.append(writer.publish(failures_path, data, metadata={"link": link}))
            self.log.info("Indexed failed job %s to %s", link, failures_path)
        return IndexOutcome(ACTION_PUBLISHED, KIND_JOB_STATE, tuple(observations))

    def _index_metrics(self, event: ObjectChangeEvent) -> IndexOutcome:
        parts = metrics_path_parts(
            event.name,
            log_root=self.profile.log_root,
            job_prefixes=self.profile.metrics_job_prefixes,
        )
        if parts is None:
            return IndexOutcome(ACTION_SKIPPED, KIND_JOB_METRICS)
        job, build, link_dir = parts
        store = self._store_factory(event.bucket)
        document = decode_metrics_document(store.read_bytes(event.name))
        consolidated = consolidate_metrics(
            document,
            required_metric=self.profile.required_metric,
            log=self.log,
        )
        body = consolidated.to_bytes()
        link = source_link(event.bucket, link_dir, scheme=self.profile.link_scheme)
        index_path = build_index_path(
            KIND_JOB_METRICS,
            consolidated.completed_at,
            job,
            build,
            root=self.profile.index_root,
        )
        observation = self._writer(store).publish(
            index_path,
            body,
            metadata={"link": link, "completed": str(consolidated.completed_at)},
        )
        self.log.info(
            "Indexed %d job metrics %s in %d bytes to %s (link to %s)",
            len(consolidated.metrics),
            event.name,
            len(body),
            index_path,
            link,
        )
        return IndexOutcome(ACTION_PUBLISHED, KIND_JOB_METRICS, (observation,))

    def _writer(self, store: ObjectStore) -> IndexWriter:
        return IndexWriter(store, conflict_policy=self.profile.conflict_policy, log=self.log)

    def _default_store(self, bucket: str) -> ObjectStore:
        return build_object_store(
            self.profile.object_store_kind,
            bucket,
            root=self.profile.object_store_root,
            s3_endpoint_url=self.profile.s3_endpoint_url,
            s3_region=self.profile.s3_region,
            s3_path_style=self.profile.s3_path_style,
        )


def handler(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """Function entry point invoked once per storage object change."""
    profile = resolve_profile()
    configure_logging(profile.log_level)
    indexer = JobIndexer(profile)
    outcome = indexer.handle(ObjectChangeEvent.from_payload(event))
    return outcome.as_dict()


def _required(value: Any, field_name: str) -> str:
    text = str(value or "")
    if not text.strip():
        raise DecodeError(f"event {field_name} is required")
    return text
