"""Storage backend plugin registry.

Maps a backend identifier ("local", "s3", ...) to a zero-argument factory.
The registry holds factories, not instances; each resolve() calls the
factory again (StorageFactory caches instances on top of this).
"""

from __future__ import annotations

from blobstore.infrastructure.exceptions import BackendNotRegisteredError
from blobstore.infrastructure.storage.protocol import BackendFactory, StorageProtocol
from blobstore.shared.logging import get_logger

logger = get_logger(__name__)


class BackendRegistry:
    """Registry of storage backend factories.

    Registration is last-write-wins; identifiers are case-sensitive.

    Usage:
        registry = BackendRegistry()
        registry.register("local", lambda: LocalStorageService("/uploads"))
        storage = registry.resolve("local")
    """

    def __init__(self) -> None:
        self._factories: dict[str, BackendFactory] = {}

    def register(self, identifier: str, factory: BackendFactory) -> None:
        """Register (or overwrite) the factory for identifier."""
        self._factories[identifier] = factory
        logger.debug("Registered storage backend %r", identifier)

    def get_factory(self, identifier: str) -> BackendFactory:
        """Return the factory for identifier.

        Raises:
            BackendNotRegisteredError: identifier unknown; the error lists
                the identifiers that are registered.
        """
        factory = self._factories.get(identifier)
        if factory is None:
            raise BackendNotRegisteredError(identifier, self.list())
        return factory

    def resolve(self, identifier: str) -> StorageProtocol:
        """Build a backend instance by calling the registered factory."""
        return self.get_factory(identifier)()

    def is_registered(self, identifier: str) -> bool:
        return identifier in self._factories

    def list(self) -> list[str]:
        """Return a new list of registered identifiers."""
        return list(self._factories)

    def reset(self) -> None:
        """Remove every registration. Safe to call repeatedly."""
        self._factories.clear()
        logger.debug("Storage backend registry reset")
