"""Storage service factory: wires registries and config, caches backends."""

from __future__ import annotations

from functools import lru_cache

from blobstore.core.config import StorageConfig, register_builtin_configs
from blobstore.core.config_registry import ConfigSchemaRegistry
from blobstore.infrastructure.storage.protocol import StorageProtocol
from blobstore.infrastructure.storage.registry import BackendRegistry
from blobstore.shared.logging import get_logger

logger = get_logger(__name__)


class StorageFactory:
    """Owns the backend registry, schema registry and StorageConfig.

    get_backend() resolves a backend once per identifier and caches the
    instance. Registries are passed in (or created empty) so tests and
    embedding applications control what is registered.

    Usage:
        factory = StorageFactory()
        factory.register_builtins()
        storage = factory.get_backend()  # backend selected by STORAGE_BACKEND
    """

    def __init__(
        self,
        backends: BackendRegistry | None = None,
        schemas: ConfigSchemaRegistry | None = None,
        env_file: str | None = ".env",
    ) -> None:
        self.backends = backends if backends is not None else BackendRegistry()
        self.schemas = schemas if schemas is not None else ConfigSchemaRegistry()
        self.config = StorageConfig(self.schemas, env_file=env_file)
        self._instances: dict[str, StorageProtocol] = {}

    def register_builtin_configs(self) -> None:
        register_builtin_configs(self.schemas)

    def register_builtin_backends(self) -> None:
        """Register factories for the built-in providers (local, s3).

        Provider modules are imported lazily so boto3 is only loaded when
        the s3 backend is actually built.
        """

        def local() -> StorageProtocol:
            from blobstore.infrastructure.storage.local_storage import (
                create_local_storage,
            )

            return create_local_storage(self.config)

        def s3() -> StorageProtocol:
            from blobstore.infrastructure.storage.s3_storage import create_s3_storage

            return create_s3_storage(self.config)

        self.backends.register("local", local)
        self.backends.register("s3", s3)

    def register_builtins(self) -> None:
        """Register built-in config schemas and backend factories."""
        self.register_builtin_configs()
        self.register_builtin_backends()

    def get_backend(self, identifier: str | None = None) -> StorageProtocol:
        """Return the cached backend for identifier (default: STORAGE_BACKEND).

        Raises:
            ConfigurationError: Settings invalid for the selected backend.
            BackendNotRegisteredError: No factory registered for identifier.
        """
        name = identifier if identifier is not None else self.config.backend
        instance = self._instances.get(name)
        if instance is None:
            instance = self.backends.resolve(name)
            self._instances[name] = instance
            logger.info("Storage backend %r initialized", name)
        return instance

    def is_backend_cached(self, identifier: str) -> bool:
        return identifier in self._instances

    def reset_backends(self) -> None:
        """Drop cached instances; registrations are kept."""
        self._instances.clear()

    def reset(self) -> None:
        """Drop instances, registrations, schemas and cached config.

        Built-ins must be registered again afterwards.
        """
        self._instances.clear()
        self.backends.reset()
        self.schemas.reset()
        self.config.reset()


@lru_cache
def get_storage_factory() -> StorageFactory:
    """Return the process-wide StorageFactory with built-ins registered.

    Nothing is validated until the first get_backend() or config access.
    In tests, call get_storage_factory.cache_clear() to start fresh.
    """
    factory = StorageFactory()
    factory.register_builtins()
    return factory


def get_storage() -> StorageProtocol:
    """Return the active backend (STORAGE_BACKEND) from the default factory."""
    return get_storage_factory().get_backend()
