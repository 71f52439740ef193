"""Local filesystem storage with path validation and atomic writes."""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import os
import secrets
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

import aiofiles
import aiofiles.os

from blobstore.core.config import (
    DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
    LocalStorageSettings,
)
from blobstore.infrastructure.exceptions import (
    StorageError,
    StorageException,
    StorageNotFoundError,
)
from blobstore.infrastructure.storage.protocol import (
    ObjectStream,
    SignedUrl,
    SignedUrlMethod,
    SignedUrlOptions,
    UploadParams,
    UploadResult,
)
from blobstore.shared.logging import get_logger
from blobstore.shared.utils.datetime import expires_at_iso, from_timestamp_utc, utc_now

if TYPE_CHECKING:
    from blobstore.core.config import StorageConfig

logger = get_logger(__name__)

META_DIR = ".meta"
META_SUFFIX = ".json"


@dataclass(frozen=True)
class _SignedToken:
    key: str
    method: SignedUrlMethod
    content_type: str | None
    expires_at: datetime


class LocalStorageService:
    """Local filesystem storage with atomic writes and path traversal protection.

    Keys map to paths under storage_root. Writes use temp file + rename.
    Content type and metadata live in a sidecar under storage_root/.meta,
    a tree no key can resolve into. Signed URLs are
    opaque in-memory tokens that the serving route checks with
    validate_signed_token().
    """

    CHUNK_SIZE = 64 * 1024  # 64KB

    def __init__(
        self,
        storage_root: str,
        base_url: str = "/storage/signed",
        signed_url_expiration: int = DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
    ) -> None:
        """Initialize local storage.

        Args:
            storage_root: Base directory for all files.
            base_url: Prefix for signed URLs (e.g. https://api.example.com/files).
            signed_url_expiration: Default signed URL lifetime in seconds.
        """
        self.storage_root = Path(storage_root).resolve()
        self.meta_root = self.storage_root / META_DIR
        self.base_url = base_url.rstrip("/")
        self.signed_url_expiration = signed_url_expiration
        self._signed_tokens: dict[str, _SignedToken] = {}
        self.storage_root.mkdir(parents=True, exist_ok=True, mode=0o750)

    def _get_full_path(self, key: str) -> Path:
        """Resolve key under storage_root.

        Raises StorageError on traversal, an empty key, or a key inside the
        sidecar tree.
        """
        full_path = (self.storage_root / key).resolve()
        try:
            relative = full_path.relative_to(self.storage_root)
        except ValueError as e:
            raise StorageError(
                "Invalid storage key", {"key": key, "reason": "path_traversal"}
            ) from e
        if full_path == self.storage_root:
            raise StorageError("Invalid storage key", {"key": key, "reason": "empty"})
        if relative.parts[0] == META_DIR:
            raise StorageError("Invalid storage key", {"key": key, "reason": "reserved"})
        return full_path

    def _meta_path(self, file_path: Path) -> Path:
        relative = file_path.relative_to(self.storage_root)
        return (self.meta_root / relative).with_name(relative.name + META_SUFFIX)

    async def _write_metadata(self, file_path: Path, metadata: dict[str, Any]) -> None:
        meta_path = self._meta_path(file_path)
        meta_path.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
        async with aiofiles.open(meta_path, "w") as f:
            await f.write(json.dumps(metadata, indent=2))
        os.chmod(meta_path, 0o640)

    async def _read_metadata(self, file_path: Path) -> dict[str, Any]:
        """Read JSON sidecar or empty dict."""
        meta_path = self._meta_path(file_path)
        if not meta_path.exists():
            return {}
        async with aiofiles.open(meta_path, "r") as f:
            content = await f.read()
            result = json.loads(content)
            return cast(dict[str, Any], result) if isinstance(result, dict) else {}

    async def _read_body(self, params: UploadParams) -> AsyncIterator[bytes]:
        if isinstance(params.body, bytes | bytearray | memoryview):
            yield bytes(params.body)
            return
        while chunk := await asyncio.to_thread(params.body.read, self.CHUNK_SIZE):
            yield chunk

    async def upload(self, params: UploadParams) -> UploadResult:
        """Write atomically, replacing any existing object. etag is the SHA-256 hex."""
        target_path = self._get_full_path(params.key)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
            temp_fd, temp_path = tempfile.mkstemp(
                dir=target_path.parent, prefix=".tmp_", suffix=target_path.suffix
            )
            os.close(temp_fd)
            sha256 = hashlib.sha256()
            size = 0
            try:
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in self._read_body(params):
                        sha256.update(chunk)
                        size += len(chunk)
                        await f.write(chunk)
                os.chmod(temp_path, 0o640)
                os.replace(temp_path, target_path)
            except BaseException:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(temp_path)
                raise
            checksum = sha256.hexdigest()
            await self._write_metadata(
                target_path,
                {
                    "key": params.key,
                    "checksum": checksum,
                    "size": size,
                    "content_type": params.content_type,
                    "uploaded_at": utc_now().isoformat(),
                    "custom": dict(params.metadata),
                },
            )
        except StorageException:
            raise
        except Exception as e:
            raise self._storage_error(e, params.key, "upload") from e
        return UploadResult(key=params.key, etag=checksum)

    async def download(self, key: str) -> ObjectStream:
        """Open the file and return it as a stream."""
        file_path = self._get_full_path(key)
        if not file_path.is_file():
            raise StorageNotFoundError(key)
        try:
            f = await aiofiles.open(file_path, "rb")
        except FileNotFoundError as e:
            raise StorageNotFoundError(key) from e
        except OSError as e:
            raise self._storage_error(e, key, "download") from e
        size = file_path.stat().st_size
        return ObjectStream(f.read, f.close, content_length=size)

    async def delete(self, key: str) -> None:
        """Delete file and sidecar; a missing key is not an error.

        A key that names a directory (a prefix of other keys) is not an
        object, so it is treated as missing.
        """
        file_path = self._get_full_path(key)
        if not file_path.is_file():
            logger.debug("Local delete: key %s already absent", key)
            return
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            logger.debug("Local delete: key %s already absent", key)
            return
        except OSError as e:
            raise self._storage_error(e, key, "delete") from e
        meta_path = self._meta_path(file_path)
        with contextlib.suppress(FileNotFoundError):
            await aiofiles.os.remove(meta_path)
        self._prune_empty_dirs(file_path.parent, self.storage_root)
        self._prune_empty_dirs(meta_path.parent, self.meta_root)

    @staticmethod
    def _prune_empty_dirs(directory: Path, stop: Path) -> None:
        while directory != stop and directory.is_relative_to(stop):
            try:
                directory.rmdir()
            except OSError:
                break
            directory = directory.parent

    async def exists(self, key: str) -> bool:
        return self._get_full_path(key).is_file()

    async def get_metadata(self, key: str) -> dict[str, Any]:
        """Return size, content_type, checksum, last_modified, custom."""
        file_path = self._get_full_path(key)
        if not file_path.is_file():
            raise StorageNotFoundError(key)
        stat = file_path.stat()
        stored = await self._read_metadata(file_path)
        return {
            "size": stat.st_size,
            "content_type": stored.get("content_type", "application/octet-stream"),
            "checksum": stored.get("checksum"),
            "last_modified": from_timestamp_utc(stat.st_mtime).isoformat(),
            "custom": stored.get("custom", {}),
        }

    async def get_signed_url(
        self, key: str, options: SignedUrlOptions | None = None
    ) -> SignedUrl:
        """Issue a token URL for GET or PUT. The key need not exist yet."""
        self._get_full_path(key)
        opts = options or SignedUrlOptions()
        expires_in = (
            opts.expires_in if opts.expires_in is not None else self.signed_url_expiration
        )
        generated_at = utc_now()
        token = secrets.token_urlsafe(32)
        self._signed_tokens[token] = _SignedToken(
            key=key,
            method=opts.method,
            content_type=opts.content_type,
            expires_at=generated_at + timedelta(seconds=expires_in),
        )
        self._cleanup_expired_tokens()
        return SignedUrl(
            url=f"{self.base_url}/{token}",
            expires_at=expires_at_iso(expires_in, generated_at),
        )

    def validate_signed_token(
        self, token: str, method: SignedUrlMethod = "GET"
    ) -> str | None:
        """Return the key if token is valid for method and not expired."""
        signed = self._signed_tokens.get(token)
        if signed is None:
            return None
        if utc_now() >= signed.expires_at:
            del self._signed_tokens[token]
            return None
        if signed.method != method:
            return None
        return signed.key

    def _cleanup_expired_tokens(self) -> None:
        now = utc_now()
        for token in [t for t, s in self._signed_tokens.items() if s.expires_at <= now]:
            del self._signed_tokens[token]

    @staticmethod
    def _storage_error(error: Exception, key: str, operation: str) -> StorageError:
        logger.warning("Local %s failed for key %s: %s", operation, key, error)
        if isinstance(error, PermissionError):
            return StorageError("Storage permission denied", {"key": key, "operation": operation})
        return StorageError(
            f"Storage operation failed: {error}",
            {"key": key, "original_error": str(error)},
        )


def create_local_storage(config: StorageConfig) -> LocalStorageService:
    """Build a LocalStorageService from StorageConfig (STORAGE_LOCAL_*)."""
    settings = config.backend_config(LocalStorageSettings)
    return LocalStorageService(
        settings.path,
        base_url=settings.base_url,
        signed_url_expiration=config.signed_url_expiration_seconds,
    )
