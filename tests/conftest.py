"""Pytest configuration and fixtures for blobstore.

Every test starts with no STORAGE_* variables in the environment (except
tests marked requires_s3, which read real credentials). Config fixtures
disable the .env file so a developer's local settings never leak in.
"""

import hashlib
import io
import os
from collections.abc import Iterator
from typing import Any

import pytest
from botocore.exceptions import ClientError

from blobstore.core.config import StorageConfig, register_builtin_configs
from blobstore.core.config_registry import ConfigSchemaRegistry
from blobstore.infrastructure.storage.factory import get_storage_factory


def client_error(code: str, operation: str, message: str = "", status: int = 400) -> ClientError:
    """Build a botocore ClientError the way the S3 client raises it."""
    return ClientError(
        {
            "Error": {"Code": code, "Message": message or code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client (put/get/head/delete/presign)."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        body = kwargs["Body"]
        data = body if isinstance(body, bytes) else body.read()
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = {
            "data": data,
            "content_type": kwargs.get("ContentType"),
            "metadata": kwargs.get("Metadata", {}),
        }
        return {"ETag": f'"{hashlib.md5(data).hexdigest()}"'}

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_object", kwargs))
        obj = self.objects.get((kwargs["Bucket"], kwargs["Key"]))
        if obj is None:
            raise client_error("NoSuchKey", "GetObject", "The specified key does not exist.", 404)
        return {"Body": io.BytesIO(obj["data"]), "ContentLength": len(obj["data"])}

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("head_object", kwargs))
        obj = self.objects.get((kwargs["Bucket"], kwargs["Key"]))
        if obj is None:
            raise client_error("404", "HeadObject", "Not Found", 404)
        return {"ContentLength": len(obj["data"]), "ContentType": obj["content_type"]}

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        self.objects.pop((kwargs["Bucket"], kwargs["Key"]), None)
        return {}

    def generate_presigned_url(
        self, ClientMethod: str, Params: dict[str, Any] | None = None, ExpiresIn: int = 3600
    ) -> str:
        self.calls.append(("generate_presigned_url", {"ClientMethod": ClientMethod, "Params": Params}))
        params = Params or {}
        return (
            f"https://{params['Bucket']}.s3.test/{params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=fake"
        )


class FailingS3Client:
    """S3 client whose every operation raises the given error."""

    def __init__(self, error: BaseException) -> None:
        self.error = error

    def _fail(self, **kwargs: Any) -> dict[str, Any]:
        raise self.error

    put_object = get_object = head_object = delete_object = _fail

    def generate_presigned_url(self, ClientMethod: str, Params: Any = None, ExpiresIn: int = 3600) -> str:
        raise self.error


@pytest.fixture(autouse=True)
def clean_storage_env(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Remove STORAGE_* variables and the cached default factory."""
    if request.node.get_closest_marker("requires_s3") is None:
        for name in list(os.environ):
            if name.upper().startswith("STORAGE_"):
                monkeypatch.delenv(name, raising=False)
    get_storage_factory.cache_clear()
    yield
    get_storage_factory.cache_clear()


@pytest.fixture
def schema_registry() -> ConfigSchemaRegistry:
    """Schema registry with the built-in backend schemas."""
    registry = ConfigSchemaRegistry()
    register_builtin_configs(registry)
    return registry


@pytest.fixture
def storage_config(schema_registry: ConfigSchemaRegistry) -> StorageConfig:
    return StorageConfig(schema_registry, env_file=None)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Complete, valid STORAGE_S3_* settings."""
    monkeypatch.setenv("STORAGE_BACKEND", "s3")
    monkeypatch.setenv("STORAGE_S3_REGION", "us-east-1")
    monkeypatch.setenv("STORAGE_S3_BUCKET", "test-bucket")
    monkeypatch.setenv("STORAGE_S3_ACCESS_KEY_ID", "AKIATESTKEY")
    monkeypatch.setenv("STORAGE_S3_SECRET_ACCESS_KEY", "test-secret-value")
