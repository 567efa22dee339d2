"""Object-store adapters for index publication (local, S3-compatible, GCS)."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol


JSON_CONTENT_TYPE = "application/json"
_METADATA_SUFFIX = ".metadata.json"


@dataclass(frozen=True)
class ArtifactRef:
    path: str
    digest: str | None = None


class ObjectStore(Protocol):
    bucket: str

    def read_bytes(self, relative_path: str) -> bytes:
        ...

    def write_bytes_if_absent(
        self,
        relative_path: str,
        data: bytes,
        *,
        metadata: Mapping[str, str] | None = None,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> ArtifactRef:
        """Create the object; raise FileExistsError if it already exists."""
        ...

    def read_metadata(self, relative_path: str) -> dict[str, str]:
        ...

    def exists(self, relative_path: str) -> bool:
        ...


class LocalObjectStore:
    """Filesystem store rooted at ``<root>/<bucket>``; metadata lives in a sidecar."""

    def __init__(self, root: Path, bucket: str) -> None:
        self.root = Path(root)
        self.bucket = bucket

    def _full_path(self, relative_path: str) -> Path:
        return self.root / self.bucket / relative_path.lstrip("/")

    def read_bytes(self, relative_path: str) -> bytes:
        return self._full_path(relative_path).read_bytes()

    def write_bytes_if_absent(
        self,
        relative_path: str,
        data: bytes,
        *,
        metadata: Mapping[str, str] | None = None,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> ArtifactRef:
        path = self._full_path(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        meta_path = path.with_name(path.name + _METADATA_SUFFIX)
        token = uuid.uuid4().hex
        tmp_path = path.with_name(f".{path.name}.{token}.tmp")
        meta_tmp_path = path.with_name(f".{meta_path.name}.{token}.tmp")
        sidecar = {"content_type": content_type, "metadata": dict(metadata or {})}
        try:
            tmp_path.write_bytes(data)
            meta_tmp_path.write_text(json.dumps(sidecar, sort_keys=True, ensure_ascii=True), encoding="utf-8")
            # readers never see a partial body; link raises FileExistsError if the object exists
            os.link(tmp_path, path)
            os.replace(meta_tmp_path, meta_path)
        finally:
            tmp_path.unlink(missing_ok=True)
            meta_tmp_path.unlink(missing_ok=True)
        return ArtifactRef(path=str(path))

    def read_metadata(self, relative_path: str) -> dict[str, str]:
        path = self._full_path(relative_path)
        meta_path = path.with_name(path.name + _METADATA_SUFFIX)
        if not meta_path.exists():
            return {}
        payload = json.loads(meta_path.read_text(encoding="utf-8"))
        return dict(payload.get("metadata") or {})

    def exists(self, relative_path: str) -> bool:
        return self._full_path(relative_path).exists()


class S3ObjectStore:
    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: str | None = None,
        region_name: str | None = None,
        path_style: bool | None = None,
    ) -> None:
        import boto3
        from botocore.config import Config

        self.bucket = bucket
        self.prefix = prefix.strip("/")
        config = None
        if path_style:
            config = Config(s3={"addressing_style": "path"})
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region_name,
            config=config,
        )

    def _key(self, relative_path: str) -> str:
        relative = relative_path.lstrip("/")
        if not self.prefix:
            return relative
        return f"{self.prefix}/{relative}"

    def read_bytes(self, relative_path: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=self._key(relative_path))
        return response["Body"].read()

    def write_bytes_if_absent(
        self,
        relative_path: str,
        data: bytes,
        *,
        metadata: Mapping[str, str] | None = None,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> ArtifactRef:
        from botocore.exceptions import ClientError

        key = self._key(relative_path)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=dict(metadata or {}),
                IfNoneMatch="*",
            )
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code in {"PreconditionFailed", "412"}:
                raise FileExistsError(key) from exc
            raise
        return ArtifactRef(path=f"s3://{self.bucket}/{key}")

    def read_metadata(self, relative_path: str) -> dict[str, str]:
        response = self._client.head_object(Bucket=self.bucket, Key=self._key(relative_path))
        return dict(response.get("Metadata") or {})

    def exists(self, relative_path: str) -> bool:
        from botocore.exceptions import ClientError

        key = self._key(relative_path)
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code")
            if error_code in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise


class GcsObjectStore:
    def __init__(self, bucket: str, prefix: str = "", project: str | None = None) -> None:
        from google.cloud import storage

        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._client = storage.Client(project=project)

    def _key(self, relative_path: str) -> str:
        relative = relative_path.lstrip("/")
        if not self.prefix:
            return relative
        return f"{self.prefix}/{relative}"

    def _blob(self, relative_path: str):
        return self._client.bucket(self.bucket).blob(self._key(relative_path))

    def read_bytes(self, relative_path: str) -> bytes:
        return self._blob(relative_path).download_as_bytes()

    def write_bytes_if_absent(
        self,
        relative_path: str,
        data: bytes,
        *,
        metadata: Mapping[str, str] | None = None,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> ArtifactRef:
        from google.api_core.exceptions import PreconditionFailed

        blob = self._blob(relative_path)
        blob.metadata = dict(metadata or {})
        try:
            # generation 0 only matches when no live object exists
            blob.upload_from_string(data, content_type=content_type, if_generation_match=0)
        except PreconditionFailed as exc:
            raise FileExistsError(blob.name) from exc
        return ArtifactRef(path=f"gs://{self.bucket}/{blob.name}")

    def read_metadata(self, relative_path: str) -> dict[str, str]:
        blob = self._client.bucket(self.bucket).get_blob(self._key(relative_path))
        if blob is None:
            raise FileNotFoundError(self._key(relative_path))
        return dict(blob.metadata or {})

    def exists(self, relative_path: str) -> bool:
        return bool(self._blob(relative_path).exists())


def build_object_store(
    kind: str,
    bucket: str,
    *,
    root: str | None = None,
    s3_endpoint_url: str | None = None,
    s3_region: str | None = None,
    s3_path_style: bool | None = None,
) -> ObjectStore:
    kind = (kind or "").strip().lower()
    if not bucket:
        raise ValueError("object store bucket is required")
    if kind == "gcs":
        return GcsObjectStore(bucket=bucket)
    if kind == "s3":
        endpoint = s3_endpoint_url or os.getenv("CI_SEARCH_S3_ENDPOINT_URL") or os.getenv("AWS_ENDPOINT_URL")
        region = s3_region or os.getenv("CI_SEARCH_S3_REGION") or os.getenv("AWS_DEFAULT_REGION")
        path_style_env = os.getenv("CI_SEARCH_S3_PATH_STYLE")
        path_style = s3_path_style if s3_path_style is not None else (path_style_env == "true")
        return S3ObjectStore(
            bucket=bucket,
            endpoint_url=endpoint,
            region_name=region,
            path_style=path_style,
        )
    if kind == "local":
        if not root:
            raise ValueError("local object store requires a root directory")
        return LocalObjectStore(Path(root), bucket)
    raise ValueError(f"unsupported object store kind: {kind}")
