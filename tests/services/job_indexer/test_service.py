import base64
import json
from pathlib import Path

from ci_search.job_indexer.service import create_app
from ci_search.storage import LocalObjectStore


MARKER = "logs/my-job/55/finished.json"
STATE_PATH = "index/job-state/2021-05-03T00:00:00Z/my-job/55"


def _write_profile(tmp_path: Path) -> Path:
    import yaml

    store_root = tmp_path / "store"
    profile = {
        "profile_id": "svc-test",
        "job_indexer": {
            "profile_id": "svc-test",
            "object_store_kind": "local",
            "object_store_root": str(store_root),
        },
    }
    path = tmp_path / "profile.yaml"
    path.write_text(yaml.safe_dump(profile, sort_keys=False), encoding="utf-8")
    return path


def _seed_marker(tmp_path: Path, payload: bytes) -> LocalObjectStore:
    store = LocalObjectStore(tmp_path / "store", "b")
    store.write_bytes_if_absent(MARKER, payload)
    return store


def test_health_reports_profile(tmp_path: Path) -> None:
    app = create_app(str(_write_profile(tmp_path)))
    client = app.test_client()
    response = client.get("/v1/ops/health")
    assert response.status_code == 200
    assert response.get_json() == {"state": "GREEN", "profile_id": "svc-test"}


def test_storage_event_is_indexed(tmp_path: Path) -> None:
    app = create_app(str(_write_profile(tmp_path)))
    store = _seed_marker(tmp_path, b'{"timestamp":1620000000,"passed":true}')
    client = app.test_client()

    response = client.post("/v1/events", data=json.dumps({"bucket": "b", "name": MARKER}))

    assert response.status_code == 200
    body = response.get_json()
    assert body["action"] == "published"
    assert body["observations"][0]["outcome"] == "NEW"
    assert json.loads(store.read_bytes(STATE_PATH))["state"] == "success"


def test_push_envelope_redelivery_is_acknowledged(tmp_path: Path) -> None:
    app = create_app(str(_write_profile(tmp_path)))
    _seed_marker(tmp_path, b'{"timestamp":1620000000,"passed":false}')
    client = app.test_client()
    data = base64.b64encode(json.dumps({"bucket": "b", "name": MARKER}).encode("utf-8")).decode("ascii")
    envelope = {"message": {"data": data, "messageId": "1"}, "subscription": "projects/p/subscriptions/s"}

    first = client.post("/v1/events", json=envelope)
    second = client.post("/v1/events", json=envelope)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.get_json()["observations"][0]["outcome"] == "DUPLICATE"


def test_malformed_event_returns_reason_code(tmp_path: Path) -> None:
    app = create_app(str(_write_profile(tmp_path)))
    client = app.test_client()
    response = client.post("/v1/events", data="not json")
    assert response.status_code == 500
    assert response.get_json()["error"] == "DECODE_ERROR"


def test_missing_duration_metric_returns_reason_code(tmp_path: Path) -> None:
    app = create_app(str(_write_profile(tmp_path)))
    store = LocalObjectStore(tmp_path / "store", "b")
    name = "logs/release-openshift-origin-installer-e2e-aws-4.8/9/job_metrics.json"
    store.write_bytes_if_absent(name, b'{"up":{"status":"success","data":{"resultType":"vector","result":[]}}}')
    client = app.test_client()

    response = client.post("/v1/events", json={"bucket": "b", "name": name})

    assert response.status_code == 500
    assert response.get_json()["error"] == "MISSING_REQUIRED_METRIC"
    assert not store.exists("index")


def test_missing_source_object_returns_internal_error(tmp_path: Path) -> None:
    app = create_app(str(_write_profile(tmp_path)))
    client = app.test_client()
    response = client.post("/v1/events", json={"bucket": "b", "name": MARKER})
    assert response.status_code == 500
    assert response.get_json() == {"error": "INTERNAL_ERROR"}


def test_storage_failure_reason_code_is_surfaced(tmp_path: Path) -> None:
    def unavailable(bucket: str) -> LocalObjectStore:
        raise RuntimeError("STORE_UNAVAILABLE:connection reset")

    app = create_app(str(_write_profile(tmp_path)), store_factory=unavailable)
    client = app.test_client()
    response = client.post("/v1/events", json={"bucket": "b", "name": MARKER})
    assert response.status_code == 500
    assert response.get_json() == {"error": "STORE_UNAVAILABLE"}
