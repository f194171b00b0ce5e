"""Pluggable transports for publishing release builds."""

from __future__ import annotations

from typing import Any, Callable

from .base import (
    UPDATES_JSON_KEY,
    ConfigError,
    DeleteError,
    ListError,
    ProvisionError,
    Transport,
    TransportError,
    UploadError,
)
from .build import Build, is_build_id, normalize_file_name
from .s3 import S3Transport, S3TransportOptions

TRANSPORTS: dict[str, Callable[..., Transport]] = {
    "s3": S3Transport,
}


def create_transport(name: str, options: Any, **kwargs: Any) -> Transport:
    """Build the transport registered under ``name``."""
    backend = (name or "").strip().lower()
    factory = TRANSPORTS.get(backend)
    if factory is None:
        raise ConfigError(
            f"Unsupported transport: {name!r}. Available: {', '.join(sorted(TRANSPORTS))}"
        )
    return factory(options, **kwargs)


__all__ = [
    "Build",
    "ConfigError",
    "DeleteError",
    "ListError",
    "ProvisionError",
    "S3Transport",
    "S3TransportOptions",
    "TRANSPORTS",
    "Transport",
    "TransportError",
    "UPDATES_JSON_KEY",
    "UploadError",
    "create_transport",
    "is_build_id",
    "normalize_file_name",
]
