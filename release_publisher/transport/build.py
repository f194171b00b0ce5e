"""Build metadata and the naming rules derived from it."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass

BUILD_ID_PATTERN = re.compile(r"^[\w.]+-[\w.]+-[\w.]+-[\w.]+$")

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class Build:
    """One release artifact set for a version/platform/arch."""

    name: str
    version: str
    platform: str
    arch: str
    channel: str = "prod"

    @property
    def build_id(self) -> str:
        return f"{self.name}-{self.version}-{self.platform}-{self.arch}"

    @property
    def manifest_key(self) -> str:
        """Entry name of this build in ``updates.json``."""
        return f"{self.platform}-{self.arch}-{self.channel}"

    @classmethod
    def from_build_id(cls, build_id: str) -> "Build":
        """Parse ``name-version-platform-arch``; the name may contain hyphens."""
        parts = build_id.rsplit("-", 3)
        if len(parts) != 4 or not all(parts):
            raise ValueError(f"Not a build id: {build_id!r}")
        return cls(*parts)


def default_build_id(build: Build) -> str:
    return build.build_id


def is_build_id(value: str) -> bool:
    return BUILD_ID_PATTERN.match(value) is not None


def normalize_file_name(file_path: str) -> str:
    """Return the file's base name with whitespace runs replaced by ``-``.

    Both ``/`` and ``\\`` count as directory separators so that a Windows
    path yields the same name on any host.
    """
    name = posixpath.basename(file_path.replace("\\", "/"))
    return _WHITESPACE.sub("-", name.strip())
