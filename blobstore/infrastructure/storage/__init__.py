"""Storage: backend registry, provider contract and built-in providers.

StorageFactory wires a BackendRegistry and a ConfigSchemaRegistry to a lazy
StorageConfig. Providers are loaded lazily by the built-in factories so
that:
- Default (local) only requires aiofiles.
- The S3 backend only loads boto3 when it is built.

Providers implement StorageProtocol (upload, download, delete, exists,
get_signed_url).
"""

from blobstore.infrastructure.storage.factory import (
    StorageFactory,
    get_storage,
    get_storage_factory,
)
from blobstore.infrastructure.storage.protocol import (
    BackendFactory,
    ObjectStream,
    SignedUrl,
    SignedUrlOptions,
    StorageProtocol,
    UploadParams,
    UploadResult,
)
from blobstore.infrastructure.storage.registry import BackendRegistry

__all__ = [
    "BackendFactory",
    "BackendRegistry",
    "ObjectStream",
    "SignedUrl",
    "SignedUrlOptions",
    "StorageFactory",
    "StorageProtocol",
    "UploadParams",
    "UploadResult",
    "get_storage",
    "get_storage_factory",
]
