"""Registry of backend-specific configuration schemas.

Backends register a pydantic-settings model under their identifier so that
StorageConfig can validate STORAGE_<BACKEND>_* settings when that backend
is selected. Third parties register their own schemas before first config
access; re-registering an identifier overwrites the previous schema.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings

from blobstore.shared.logging import get_logger

logger = get_logger(__name__)

ConfigSchema = type[BaseSettings]


class ConfigSchemaRegistry:
    """Map of backend identifier to its settings schema.

    Identifiers are compared exactly (case-sensitive).
    """

    def __init__(self) -> None:
        self._schemas: dict[str, ConfigSchema] = {}

    def register(self, identifier: str, schema: ConfigSchema) -> None:
        """Register (or overwrite) the schema for identifier."""
        self._schemas[identifier] = schema
        logger.debug("Registered config schema %s for backend %r", schema.__name__, identifier)

    def get(self, identifier: str) -> ConfigSchema | None:
        """Return the schema for identifier, or None if none is registered."""
        return self._schemas.get(identifier)

    def is_registered(self, identifier: str) -> bool:
        return identifier in self._schemas

    def list(self) -> list[str]:
        """Return a new list of identifiers with a registered schema."""
        return list(self._schemas)

    def reset(self) -> None:
        """Drop every schema, built-ins included."""
        self._schemas.clear()
        logger.debug("Config schema registry reset")
