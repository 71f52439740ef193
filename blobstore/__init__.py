"""blobstore: pluggable binary-object storage.

Callers depend on StorageProtocol; the concrete backend is selected by
STORAGE_BACKEND and resolved through a BackendRegistry at runtime.
"""

from blobstore.core.config import StorageConfig
from blobstore.core.config_registry import ConfigSchemaRegistry
from blobstore.infrastructure.exceptions import (
    BackendNotRegisteredError,
    ConfigurationError,
    InvalidFileTypeError,
    QuotaExceededError,
    StorageError,
    StorageErrorCode,
    StorageException,
    StorageNotFoundError,
)
from blobstore.infrastructure.storage import (
    BackendRegistry,
    ObjectStream,
    SignedUrl,
    SignedUrlOptions,
    StorageFactory,
    StorageProtocol,
    UploadParams,
    UploadResult,
    get_storage,
    get_storage_factory,
)

__all__ = [
    "BackendNotRegisteredError",
    "BackendRegistry",
    "ConfigSchemaRegistry",
    "ConfigurationError",
    "InvalidFileTypeError",
    "ObjectStream",
    "QuotaExceededError",
    "SignedUrl",
    "SignedUrlOptions",
    "StorageConfig",
    "StorageError",
    "StorageErrorCode",
    "StorageException",
    "StorageFactory",
    "StorageNotFoundError",
    "StorageProtocol",
    "UploadParams",
    "UploadResult",
    "get_storage",
    "get_storage_factory",
]
