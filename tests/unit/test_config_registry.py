"""Tests for ConfigSchemaRegistry and built-in schema registration."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from blobstore.core.config import (
    AliyunStorageSettings,
    AzureStorageSettings,
    GcsStorageSettings,
    LocalStorageSettings,
    S3StorageSettings,
    register_builtin_configs,
)
from blobstore.core.config_registry import ConfigSchemaRegistry


class FirstSchema(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STORAGE_CUSTOM_")


class SecondSchema(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STORAGE_CUSTOM_")


def test_register_and_get() -> None:
    registry = ConfigSchemaRegistry()
    registry.register("custom", FirstSchema)
    assert registry.get("custom") is FirstSchema
    assert registry.is_registered("custom")


def test_get_unregistered_returns_none() -> None:
    assert ConfigSchemaRegistry().get("missing") is None


def test_reregister_overwrites() -> None:
    registry = ConfigSchemaRegistry()
    registry.register("custom", FirstSchema)
    registry.register("custom", SecondSchema)
    assert registry.get("custom") is SecondSchema
    assert registry.list() == ["custom"]


def test_identifiers_are_case_sensitive() -> None:
    registry = ConfigSchemaRegistry()
    registry.register("local", FirstSchema)
    registry.register("Local", SecondSchema)
    assert registry.get("local") is FirstSchema
    assert registry.get("Local") is SecondSchema


def test_list_returns_copy() -> None:
    registry = ConfigSchemaRegistry()
    registry.register("custom", FirstSchema)
    registry.list().append("other")
    assert registry.list() == ["custom"]


def test_register_builtins() -> None:
    registry = ConfigSchemaRegistry()
    register_builtin_configs(registry)
    assert sorted(registry.list()) == ["aliyun", "azure", "gcs", "local", "s3"]
    assert registry.get("local") is LocalStorageSettings
    assert registry.get("s3") is S3StorageSettings
    assert registry.get("azure") is AzureStorageSettings
    assert registry.get("gcs") is GcsStorageSettings
    assert registry.get("aliyun") is AliyunStorageSettings


def test_reset_clears_builtins_until_reregistered() -> None:
    registry = ConfigSchemaRegistry()
    register_builtin_configs(registry)
    registry.reset()
    registry.reset()
    assert registry.list() == []
    assert registry.get("s3") is None
    register_builtin_configs(registry)
    assert registry.get("s3") is S3StorageSettings
