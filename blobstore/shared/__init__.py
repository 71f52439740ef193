"""Shared helpers: logging setup and UTC datetime utilities."""
