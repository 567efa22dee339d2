from __future__ import annotations

import json
from pathlib import Path

import pytest

from ci_search.job_indexer.cli import main
from ci_search.job_indexer.errors import DecodeError
from ci_search.storage import LocalObjectStore


def test_classify_prints_state(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    marker = tmp_path / "finished.json"
    marker.write_text(
        json.dumps({"timestamp": 1620000000, "passed": False, "metadata": {"repo": "openshift/origin"}}),
        encoding="utf-8",
    )

    assert main(["classify", str(marker)]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload == {
        "state": "failed",
        "completed_at": 1620000000,
        "completed_at_utc": "2021-05-03T00:00:00+00:00",
        "metadata": {"repo": "openshift/origin"},
    }


def test_classify_pending_marker(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    marker = tmp_path / "finished.json"
    marker.write_text("{}", encoding="utf-8")
    assert main(["classify", str(marker)]) == 0
    assert json.loads(capsys.readouterr().out) == {"state": "pending"}


def test_consolidate_prints_metric_map(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    dump = tmp_path / "job_metrics.json"
    fragments = [
        {"up": {"status": "success", "data": {"resultType": "vector", "result": [{"metric": {"job": "x"}, "value": [3, "1"]}]}}},
        {
            "job:duration:total:seconds": {
                "status": "success",
                "data": {"resultType": "vector", "result": [{"value": [1620000000, "42.5"]}]},
            }
        },
    ]
    dump.write_text("\n".join(json.dumps(item) for item in fragments), encoding="utf-8")

    assert main(["consolidate", str(dump)]) == 0

    assert json.loads(capsys.readouterr().out) == {
        "job:duration:total:seconds": {"timestamp": 1620000000, "value": "42.5"},
        'up{job="x"}': {"timestamp": 3, "value": "1"},
    }


def test_consolidate_propagates_decode_errors(tmp_path: Path) -> None:
    dump = tmp_path / "job_metrics.json"
    dump.write_text('{"up": ', encoding="utf-8")
    with pytest.raises(DecodeError):
        main(["consolidate", str(dump)])


def test_index_replays_one_object(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_root = tmp_path / "store"
    LocalObjectStore(store_root, "b").write_bytes_if_absent(
        "logs/my-job/55/finished.json", b'{"timestamp":1620000000,"passed":true}'
    )
    profile = tmp_path / "profile.yaml"
    profile.write_text(
        f"object_store_kind: local\nobject_store_root: {store_root}\n",
        encoding="utf-8",
    )

    code = main(["index", "--bucket", "b", "--name", "logs/my-job/55/finished.json", "--profile", str(profile)])

    assert code == 0
    outcome = json.loads(capsys.readouterr().out)
    assert outcome["action"] == "published"
    assert outcome["observations"][0]["index_path"] == "index/job-state/2021-05-03T00:00:00Z/my-job/55"
