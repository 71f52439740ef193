"""S3-compatible object storage (AWS S3, MinIO, etc.) with presigned URLs.

Uses boto3 (sync) via asyncio.to_thread for the async API. The low-level
client and the URL signer are injected so tests can pass a stub client
instead of patching boto3.
"""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NoReturn, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)

from blobstore.core.config import DEFAULT_SIGNED_URL_EXPIRATION_SECONDS, S3StorageSettings
from blobstore.infrastructure.exceptions import (
    StorageError,
    StorageException,
    StorageNotFoundError,
)
from blobstore.infrastructure.storage.protocol import (
    ObjectStream,
    SignedUrl,
    SignedUrlOptions,
    UploadParams,
    UploadResult,
)
from blobstore.shared.logging import get_logger
from blobstore.shared.utils.datetime import expires_at_iso, utc_now

if TYPE_CHECKING:
    from blobstore.core.config import StorageConfig

logger = get_logger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_AUTH_ERROR_CODES = frozenset(
    {
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "InvalidToken",
        "ExpiredToken",
        "InvalidClientTokenId",
        "AuthorizationHeaderMalformed",
        # HeadObject responses have no body, so a rejected credential
        # surfaces only as the bare status code.
        "403",
    }
)
AUTH_FAILED_MESSAGE = "Storage authentication failed"


class S3Client(Protocol):
    """Subset of the boto3 S3 client used by S3StorageService."""

    def put_object(self, **kwargs: Any) -> dict[str, Any]: ...

    def get_object(self, **kwargs: Any) -> dict[str, Any]: ...

    def delete_object(self, **kwargs: Any) -> dict[str, Any]: ...

    def head_object(self, **kwargs: Any) -> dict[str, Any]: ...

    def generate_presigned_url(
        self,
        ClientMethod: str,
        Params: dict[str, Any] | None = None,
        ExpiresIn: int = 3600,
    ) -> str: ...


@dataclass(frozen=True)
class PresignRequest:
    """Operation to sign: "get_object" (read) or "put_object" (write)."""

    client_method: str
    params: dict[str, Any] = field(default_factory=dict)


Presigner = Callable[[S3Client, PresignRequest, int], Awaitable[str]]


async def presign_with_client(
    client: S3Client, request: PresignRequest, expires_in: int
) -> str:
    """Default presigner: sign locally with the client's credentials."""
    return await asyncio.to_thread(
        client.generate_presigned_url,
        ClientMethod=request.client_method,
        Params=dict(request.params),
        ExpiresIn=expires_in,
    )


def _client_error_code(error: object) -> str | None:
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", "")) or None
    return None


def is_not_found_error(error: object) -> bool:
    """True for NoSuchKey / NotFound / 404 style provider errors."""
    return _client_error_code(error) in _NOT_FOUND_CODES


def is_auth_error(error: object) -> bool:
    if isinstance(error, NoCredentialsError | PartialCredentialsError):
        return True
    return _client_error_code(error) in _AUTH_ERROR_CODES


def is_unavailable_error(error: object) -> bool:
    """Connection refused or endpoint/DNS resolution failure."""
    return isinstance(
        error, EndpointConnectionError | ConnectionRefusedError | socket.gaierror
    )


def translate_storage_error(error: object, key: str) -> StorageException:
    """Map a provider failure to the storage error taxonomy.

    Authentication failures get a fixed message with no provider text.
    """
    if isinstance(error, StorageException):
        return error
    if is_not_found_error(error):
        return StorageNotFoundError(key)
    if is_auth_error(error):
        return StorageError(AUTH_FAILED_MESSAGE, {"key": key})
    if is_unavailable_error(error):
        return StorageError(
            "Storage service unavailable",
            {"key": key, "original_error": str(error)},
        )
    if isinstance(error, Exception):
        return StorageError(
            f"Storage operation failed: {error}",
            {"key": key, "original_error": str(error)},
        )
    return StorageError("Unknown storage error", {"key": key})


class S3StorageService:
    """S3-compatible storage backend.

    Args:
        client: boto3 S3 client (or any object implementing S3Client).
        bucket: Bucket name.
        signed_url_expiration: Default signed URL lifetime in seconds.
        presigner: Signs read/write requests; defaults to the client's
            generate_presigned_url.
    """

    def __init__(
        self,
        client: S3Client,
        bucket: str,
        signed_url_expiration: int = DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
        presigner: Presigner | None = None,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.signed_url_expiration = signed_url_expiration
        self._presigner = presigner or presign_with_client

    def _raise_storage_error(self, error: Exception, key: str, operation: str) -> NoReturn:
        mapped = translate_storage_error(error, key)
        logger.warning(
            "S3 %s failed for key %s: %s", operation, key, mapped.error_code
        )
        if is_auth_error(error):
            raise mapped from None
        raise mapped from error

    async def upload(self, params: UploadParams) -> UploadResult:
        """Put object with content type, length and metadata; overwrites."""
        kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": params.key,
            "Body": params.body,
            "ContentType": params.content_type,
        }
        if params.content_length is not None:
            kwargs["ContentLength"] = params.content_length
        if params.metadata:
            kwargs["Metadata"] = dict(params.metadata)

        try:
            response = await asyncio.to_thread(self._client.put_object, **kwargs)
        except Exception as e:
            self._raise_storage_error(e, params.key, "upload")
        return UploadResult(key=params.key, etag=response.get("ETag") or None)

    async def download(self, key: str) -> ObjectStream:
        """Get object and return its body as a stream."""
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=key
            )
        except Exception as e:
            self._raise_storage_error(e, key, "download")

        body = response.get("Body")
        if body is None:
            raise StorageNotFoundError(key)

        async def read(size: int) -> bytes:
            try:
                return await asyncio.to_thread(body.read, size)
            except Exception as e:
                self._raise_storage_error(e, key, "download")

        async def close() -> None:
            await asyncio.to_thread(body.close)

        return ObjectStream(read, close, content_length=response.get("ContentLength"))

    async def delete(self, key: str) -> None:
        """Delete object. A missing key is not an error."""
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=key
            )
        except Exception as e:
            if is_not_found_error(e):
                logger.debug("S3 delete: key %s already absent", key)
                return
            self._raise_storage_error(e, key, "delete")

    async def exists(self, key: str) -> bool:
        """Head object; False when the provider reports not found."""
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self.bucket, Key=key
            )
        except Exception as e:
            if is_not_found_error(e):
                return False
            self._raise_storage_error(e, key, "exists")
        return True

    async def get_signed_url(
        self, key: str, options: SignedUrlOptions | None = None
    ) -> SignedUrl:
        """Sign a GET (default) or PUT request without contacting the bucket."""
        opts = options or SignedUrlOptions()
        expires_in = (
            opts.expires_in if opts.expires_in is not None else self.signed_url_expiration
        )
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if opts.method == "PUT":
            if opts.content_type:
                params["ContentType"] = opts.content_type
            request = PresignRequest("put_object", params)
        else:
            request = PresignRequest("get_object", params)

        generated_at = utc_now()
        try:
            url = await self._presigner(self._client, request, expires_in)
        except Exception as e:
            self._raise_storage_error(e, key, "sign")
        return SignedUrl(url=url, expires_at=expires_at_iso(expires_in, generated_at))


def build_s3_client(settings: S3StorageSettings) -> S3Client:
    """Create a boto3 S3 client from validated settings.

    A custom endpoint (MinIO, Ceph, ...) gets path-style addressing.
    """
    kwargs: dict[str, Any] = {
        "region_name": settings.region,
        "aws_access_key_id": settings.access_key_id,
        "aws_secret_access_key": settings.secret_access_key.get_secret_value(),
    }
    if settings.endpoint is not None:
        kwargs["endpoint_url"] = str(settings.endpoint).rstrip("/")
        kwargs["config"] = BotoConfig(
            signature_version="s3v4", s3={"addressing_style": "path"}
        )
    else:
        kwargs["config"] = BotoConfig(signature_version="s3v4")
    return boto3.client("s3", **kwargs)


def create_s3_storage(config: StorageConfig) -> S3StorageService:
    """Build an S3StorageService from StorageConfig (STORAGE_S3_*).

    Raises:
        ConfigurationError: STORAGE_S3_* settings missing or invalid.
    """
    settings = config.backend_config(S3StorageSettings)
    return S3StorageService(
        build_s3_client(settings),
        settings.bucket,
        signed_url_expiration=config.signed_url_expiration_seconds,
    )
