"""Transport protocol and error types.

A transport publishes build artifacts and the ``updates.json`` manifest to a
hosting location. Each storage backend provides one implementation of the
``Transport`` protocol.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

from release_publisher.infra.storage.client import DeleteOutcome
from release_publisher.transport.build import Build

UPDATES_JSON_KEY = "updates.json"

# Receives (bytes_loaded, bytes_total) while a file is being uploaded.
ProgressCallback = Callable[[int, int], None]
BuildIdResolver = Callable[[Build], str]


class TransportError(RuntimeError):
    """Base class for transport failures."""


class ConfigError(TransportError):
    """Raised when transport options are missing or invalid."""


class ProvisionError(TransportError):
    """Raised when the target bucket neither exists nor can be created."""


class UploadError(TransportError):
    """Raised when an artifact or the manifest cannot be written."""


class ListError(TransportError):
    """Raised when listing or reading published objects fails."""


class DeleteError(TransportError):
    """Raised when a batch delete request fails."""


class Transport(Protocol):
    """Operations the publishing pipeline calls on every backend."""

    def init(self) -> asyncio.Task[None]:
        ...

    async def upload_file(self, file_path: str, build: Build) -> str:
        ...

    async def push_updates_json(self, data: Any) -> str:
        ...

    async def fetch_updates_json(self) -> dict[str, Any]:
        ...

    async def fetch_builds_list(self) -> list[str]:
        ...

    async def remove_build(self, build: Build) -> DeleteOutcome:
        ...

    async def close(self) -> None:
        ...
