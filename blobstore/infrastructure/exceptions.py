"""Infrastructure exceptions for storage backends, registries and config.

Storage errors extend BlobStoreException so presentation can map them
to HTTP responses consistently. Each class fixes its StorageErrorCode and
default status; details never include credentials or provider error text
for authentication failures.
"""

from enum import StrEnum
from typing import Any

from blobstore.domain.exceptions import BlobStoreException


class StorageErrorCode(StrEnum):
    """Stable codes callers can pattern-match on."""

    STORAGE_ERROR = "STORAGE_ERROR"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    BACKEND_NOT_REGISTERED = "BACKEND_NOT_REGISTERED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class StorageException(BlobStoreException):
    """Base exception for storage operations."""


class StorageError(StorageException):
    """Generic backend failure (network, permissions, service unavailable)."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, StorageErrorCode.STORAGE_ERROR, details)


class QuotaExceededError(StorageException):
    """Storage quota would be exceeded. Enforcement lives with the caller."""

    status_code = 403

    def __init__(
        self,
        message: str = "Storage quota exceeded",
        current_usage: int | None = None,
        quota_limit: int | None = None,
        requested_size: int | None = None,
    ) -> None:
        details = {
            k: v
            for k, v in {
                "current_usage": current_usage,
                "quota_limit": quota_limit,
                "requested_size": requested_size,
            }.items()
            if v is not None
        }
        super().__init__(message, StorageErrorCode.QUOTA_EXCEEDED, details)


class StorageNotFoundError(StorageException):
    """Object not found in storage."""

    status_code = 404

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"File not found in storage: {key}",
            StorageErrorCode.FILE_NOT_FOUND,
            {"key": key},
        )


class InvalidFileTypeError(StorageException):
    """Caller-supplied content type rejected."""

    status_code = 400

    def __init__(
        self, provided_type: str, allowed_types: list[str] | None = None
    ) -> None:
        message = f"Invalid file type: {provided_type}"
        if allowed_types:
            message += f". Allowed types: {', '.join(allowed_types)}"
        super().__init__(
            message,
            StorageErrorCode.INVALID_FILE_TYPE,
            {"provided_type": provided_type, "allowed_types": allowed_types},
        )


class BackendNotRegisteredError(StorageException):
    """Requested backend identifier has no registered factory."""

    status_code = 500

    def __init__(self, identifier: str, available_backends: list[str]) -> None:
        if available_backends:
            message = (
                f'Storage backend not registered: "{identifier}". '
                f"Available backends: {', '.join(available_backends)}"
            )
        else:
            message = (
                f'Storage backend not registered: "{identifier}". '
                "No backends are currently registered."
            )
        self.identifier = identifier
        super().__init__(
            message,
            StorageErrorCode.BACKEND_NOT_REGISTERED,
            {
                "requested_backend": identifier,
                "available_backends": list(available_backends),
            },
        )


class ConfigurationError(StorageException):
    """Storage settings missing or invalid.

    details["issues"] lists every failing field as {"field", "message"}.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        issues: list[dict[str, str]] | None = None,
        backend: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if issues is not None:
            details["issues"] = issues
        if backend is not None:
            details["backend"] = backend
        super().__init__(message, StorageErrorCode.CONFIGURATION_ERROR, details)
