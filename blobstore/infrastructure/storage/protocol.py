"""Storage contract (DIP). Implementations: LocalStorageService, S3StorageService.

Callers (upload endpoints, attachment services) depend on StorageProtocol
only; the concrete backend is resolved through BackendRegistry.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import BinaryIO, Literal, Protocol

SignedUrlMethod = Literal["GET", "PUT"]


@dataclass(frozen=True)
class UploadParams:
    """Parameters for upload().

    body is an in-memory buffer or a readable binary stream; give
    content_length for streams when it is known.
    """

    key: str
    body: bytes | BinaryIO
    content_type: str
    content_length: int | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadResult:
    key: str
    etag: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class SignedUrlOptions:
    """Per-call signed URL options. content_type applies to PUT URLs."""

    expires_in: int | None = None
    method: SignedUrlMethod = "GET"
    content_type: str | None = None


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: str  # ISO-8601 UTC


class ObjectStream:
    """Async byte stream returned by download().

    Iterate with ``async for chunk in stream`` or call ``await stream.read()``.
    The caller must drain or close the stream to release the underlying
    connection or file handle; ``async with`` closes it on exit.
    """

    CHUNK_SIZE = 64 * 1024  # 64KB

    def __init__(
        self,
        read: Callable[[int], Awaitable[bytes]],
        close: Callable[[], Awaitable[None]],
        content_length: int | None = None,
    ) -> None:
        self._read = read
        self._close = close
        self.content_length = content_length
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int = -1) -> bytes:
        """Read up to size bytes, or everything that remains when size < 0."""
        if size >= 0:
            return await self._read(size)
        parts = []
        while chunk := await self._read(self.CHUNK_SIZE):
            parts.append(chunk)
        return b"".join(parts)

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._close()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while chunk := await self._read(self.CHUNK_SIZE):
            yield chunk

    async def __aenter__(self) -> ObjectStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class StorageProtocol(Protocol):
    """Protocol for object storage backends (local, S3-compatible, ...)."""

    async def upload(self, params: UploadParams) -> UploadResult:
        """Store body under params.key, overwriting any existing object."""
        ...

    async def download(self, key: str) -> ObjectStream:
        """Return a stream of the object's bytes.

        Raises:
            StorageNotFoundError: Object missing or provider returned no body.
        """
        ...

    async def delete(self, key: str) -> None:
        """Delete the object. Deleting a missing key succeeds silently."""
        ...

    async def exists(self, key: str) -> bool:
        """Return False for a missing object; raise only for other failures."""
        ...

    async def get_signed_url(
        self, key: str, options: SignedUrlOptions | None = None
    ) -> SignedUrl:
        """Return a temporary GET (default) or PUT URL.

        Does not check that the object exists; failures surface when the
        URL is used.
        """
        ...


BackendFactory = Callable[[], StorageProtocol]
