from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from ci_search.job_indexer.completion import (
    JOB_STATE_ERROR,
    JOB_STATE_FAILED,
    JOB_STATE_SUCCESS,
    CompletionRecord,
    JobStateRecord,
    classify_completion,
)
from ci_search.job_indexer.errors import DecodeError


@pytest.mark.parametrize(
    ("passed", "state"),
    [(True, JOB_STATE_SUCCESS), (False, JOB_STATE_FAILED), (None, JOB_STATE_ERROR)],
)
def test_classify_completion_derives_state(passed: bool | None, state: str) -> None:
    data = json.dumps({"timestamp": 1620000000, "passed": passed}).encode("utf-8")
    completion = classify_completion(data)
    assert completion is not None
    assert completion.state == state
    assert completion.completed_at == 1620000000
    assert completion.completed_at_utc == datetime(2021, 5, 3, tzinfo=timezone.utc)


def test_classify_completion_missing_passed_is_error_state() -> None:
    completion = classify_completion(b'{"timestamp": 1620000000}')
    assert completion is not None
    assert completion.state == JOB_STATE_ERROR


@pytest.mark.parametrize("data", [b'{"passed": true}', b'{"timestamp": 0, "passed": true}', b'{"timestamp": null}'])
def test_classify_completion_pending_job_is_none(data: bytes) -> None:
    assert classify_completion(data) is None


@pytest.mark.parametrize(
    "data",
    [
        b"{not json",
        b"[1, 2]",
        b'{"timestamp": "1620000000"}',
        b'{"timestamp": 1.5}',
        b'{"timestamp": true}',
        b'{"timestamp": 1620000000, "passed": "yes"}',
        b'{"timestamp": 1620000000, "metadata": "v1"}',
    ],
)
def test_classify_completion_rejects_malformed_marker(data: bytes) -> None:
    with pytest.raises(DecodeError):
        classify_completion(data)


def test_completion_metadata_helpers() -> None:
    record = CompletionRecord.from_bytes(
        json.dumps(
            {
                "timestamp": 1,
                "passed": True,
                "metadata": {
                    "repo": "openshift/origin",
                    "infra-commit": "abc123",
                    "repos": {"openshift/origin": "master"},
                    "pod": 3,
                },
            }
        )
    )
    metadata = record.metadata
    assert metadata.string("repo") == ("openshift/origin", True)
    assert metadata.string("repos") == (None, True)
    assert metadata.string("missing") == (None, False)
    child, present = metadata.meta("repos")
    assert present and child is not None
    assert child.string("openshift/origin") == ("master", True)
    assert metadata.meta("repo") == (None, True)
    assert metadata.meta("missing") == (None, False)
    assert metadata.keys() == ["repos"]
    assert metadata.strings() == {"repo": "openshift/origin", "infra-commit": "abc123"}


def test_job_state_record_serializes_compactly() -> None:
    record = JobStateRecord(state="success", completed_at=1620000000, link="gs://b/logs/my-job/55")
    assert json.loads(record.to_bytes()) == {
        "state": "success",
        "completed_at": 1620000000,
        "link": "gs://b/logs/my-job/55",
    }
    assert record.to_bytes() == JobStateRecord("success", 1620000000, "gs://b/logs/my-job/55").to_bytes()
