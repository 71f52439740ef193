"""Storage configuration (common settings plus per-backend schemas).

Uses pydantic-settings with .env support. Nothing is read or validated at
import time: StorageConfig validates on first field access, caches the
result, and re-validates only after reset(). Backend-specific settings are
validated against whichever schema is registered for STORAGE_BACKEND in the
ConfigSchemaRegistry; an unknown backend with no schema passes here and
fails later when the backend registry resolves it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, TypeVar, overload

from pydantic import AnyHttpUrl, Field, PositiveInt, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from blobstore.core.config_registry import ConfigSchema, ConfigSchemaRegistry
from blobstore.infrastructure.exceptions import ConfigurationError
from blobstore.shared.logging import get_logger

logger = get_logger(__name__)

SettingsT = TypeVar("SettingsT", bound=BaseSettings)

DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MiB
DEFAULT_QUOTA_BYTES = 1024 * 1024 * 1024  # 1 GiB
DEFAULT_SIGNED_URL_EXPIRATION_SECONDS = 15 * 60


class CommonStorageSettings(BaseSettings):
    """Settings shared by every backend (STORAGE_*)."""

    backend: str = Field(default="local", min_length=1)
    max_file_size_bytes: PositiveInt = DEFAULT_MAX_FILE_SIZE_BYTES
    quota_bytes: PositiveInt = DEFAULT_QUOTA_BYTES
    signed_url_expiration_seconds: PositiveInt = DEFAULT_SIGNED_URL_EXPIRATION_SECONDS

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


class BackendSettings(BaseSettings):
    """Base for built-in backend schemas; subclasses set env_prefix."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


def _require_secret(value: SecretStr) -> SecretStr:
    if not value.get_secret_value():
        raise ValueError("must not be empty")
    return value


class LocalStorageSettings(BackendSettings):
    """Local filesystem backend (STORAGE_LOCAL_*)."""

    path: str = "./storage/uploads"
    # Prefix for signed URLs served by the application's download route.
    base_url: str = "/storage/signed"

    model_config = SettingsConfigDict(env_prefix="STORAGE_LOCAL_")


class S3StorageSettings(BackendSettings):
    """S3-compatible backend (STORAGE_S3_*). Omit endpoint for AWS."""

    endpoint: AnyHttpUrl | None = None
    region: str = Field(min_length=1)
    bucket: str = Field(min_length=1)
    access_key_id: str = Field(min_length=1)
    secret_access_key: SecretStr

    model_config = SettingsConfigDict(env_prefix="STORAGE_S3_")

    @field_validator("secret_access_key")
    @classmethod
    def validate_secret_access_key(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v)


class AzureStorageSettings(BackendSettings):
    """Azure Blob Storage backend (STORAGE_AZURE_*)."""

    account_name: str = Field(min_length=1)
    access_key: SecretStr
    container: str = Field(min_length=1)

    model_config = SettingsConfigDict(env_prefix="STORAGE_AZURE_")

    @field_validator("access_key")
    @classmethod
    def validate_access_key(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v)


class GcsStorageSettings(BackendSettings):
    """Google Cloud Storage backend (STORAGE_GCS_*).

    Without key_file_path the client falls back to ambient credentials.
    """

    project_id: str = Field(min_length=1)
    bucket: str = Field(min_length=1)
    key_file_path: str | None = None

    model_config = SettingsConfigDict(env_prefix="STORAGE_GCS_")


class AliyunStorageSettings(BackendSettings):
    """Aliyun OSS backend (STORAGE_ALIYUN_*)."""

    region: str = Field(min_length=1)
    bucket: str = Field(min_length=1)
    access_key_id: str = Field(min_length=1)
    secret_access_key: SecretStr

    model_config = SettingsConfigDict(env_prefix="STORAGE_ALIYUN_")

    @field_validator("secret_access_key")
    @classmethod
    def validate_secret_access_key(cls, v: SecretStr) -> SecretStr:
        return _require_secret(v)


BUILTIN_CONFIG_SCHEMAS: dict[str, ConfigSchema] = {
    "local": LocalStorageSettings,
    "s3": S3StorageSettings,
    "azure": AzureStorageSettings,
    "gcs": GcsStorageSettings,
    "aliyun": AliyunStorageSettings,
}


def register_builtin_configs(registry: ConfigSchemaRegistry) -> None:
    """Register the built-in backend schemas (local, s3, azure, gcs, aliyun).

    Call again after registry.reset() if the built-ins are still needed.
    """
    for identifier, schema in BUILTIN_CONFIG_SCHEMAS.items():
        registry.register(identifier, schema)


@dataclass(frozen=True)
class ResolvedStorageConfig:
    """Validated common settings plus the selected backend's settings.

    backend_settings is None when no schema is registered for backend.
    """

    backend: str
    max_file_size_bytes: int
    quota_bytes: int
    signed_url_expiration_seconds: int
    backend_settings: BaseSettings | None = None


def _env_key(schema: ConfigSchema, loc: tuple[Any, ...]) -> str:
    prefix = schema.model_config.get("env_prefix") or ""
    field = ".".join(str(part) for part in loc) or "(unknown)"
    return f"{prefix}{field}".upper()


def _configuration_error(
    exc: ValidationError, schema: ConfigSchema, backend: str | None = None
) -> ConfigurationError:
    """Build one ConfigurationError naming every failing field."""
    issues = [
        {"field": _env_key(schema, err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    summary = "; ".join(f"{i['field']}: {i['message']}" for i in issues)
    return ConfigurationError(
        f"Invalid storage configuration: {summary}",
        issues=issues,
        backend=backend,
    )


class StorageConfig:
    """Lazily validated, cached storage configuration.

    Attribute access (config.backend, config.quota_bytes, ...) triggers
    validation on first use; later reads return the cached values even if
    the environment changes. reset() drops the cache.

    Usage:
        config = StorageConfig(schema_registry)
        config.backend  # "local" unless STORAGE_BACKEND is set
    """

    def __init__(
        self,
        schema_registry: ConfigSchemaRegistry,
        env_file: str | None = ".env",
    ) -> None:
        """Initialize without reading any settings.

        Args:
            schema_registry: Source of backend-specific schemas.
            env_file: Optional dotenv file read in addition to the environment.
        """
        self._schema_registry = schema_registry
        self._env_file = env_file
        self._resolved: ResolvedStorageConfig | None = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._resolved is not None

    def get(self) -> ResolvedStorageConfig:
        """Return the validated configuration, computing it on first call.

        Raises:
            ConfigurationError: Common or backend-specific settings invalid.
        """
        resolved = self._resolved
        if resolved is None:
            with self._lock:
                if self._resolved is None:
                    self._resolved = self._load()
                resolved = self._resolved
        return resolved

    def reset(self) -> None:
        """Drop the cached configuration; next access re-validates."""
        with self._lock:
            self._resolved = None

    @overload
    def backend_config(self) -> BaseSettings | None: ...

    @overload
    def backend_config(self, schema: type[SettingsT]) -> SettingsT: ...

    def backend_config(self, schema: type[SettingsT] | None = None) -> BaseSettings | None:
        """Return a copy of backend-specific settings.

        Without schema, returns the selected backend's settings (None if it
        has no registered schema). With schema, returns the cached settings
        when they are of that type, otherwise validates schema on demand so
        a factory for a non-selected backend still fails fast.

        Raises:
            ConfigurationError: Settings invalid.
        """
        settings = self.get().backend_settings
        if schema is None or isinstance(settings, schema):
            return settings.model_copy(deep=True) if settings is not None else None
        try:
            return schema(_env_file=self._env_file)
        except ValidationError as e:
            raise _configuration_error(e, schema) from None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.get(), name)

    def _load(self) -> ResolvedStorageConfig:
        try:
            common = CommonStorageSettings(_env_file=self._env_file)
        except ValidationError as e:
            raise _configuration_error(e, CommonStorageSettings) from e

        backend_settings: BaseSettings | None = None
        schema = self._schema_registry.get(common.backend)
        if schema is not None:
            try:
                backend_settings = schema(_env_file=self._env_file)
            except ValidationError as e:
                # from None: pydantic's error text echoes input values.
                raise _configuration_error(e, schema, backend=common.backend) from None
        else:
            logger.debug(
                "No config schema registered for backend %r; skipping backend validation",
                common.backend,
            )

        logger.debug("Storage configuration loaded for backend %r", common.backend)
        return ResolvedStorageConfig(
            backend=common.backend,
            max_file_size_bytes=common.max_file_size_bytes,
            quota_bytes=common.quota_bytes,
            signed_url_expiration_seconds=common.signed_url_expiration_seconds,
            backend_settings=backend_settings,
        )
