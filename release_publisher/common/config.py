from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    PUBLISHER_PACKAGE_NAME: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_ENDPOINT_URL: str | None = None
    S3_ADDRESSING_STYLE: str | None = None
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    def __post_init__(self) -> None:
        self.LOG_LEVEL = self.LOG_LEVEL.upper()
        if self.LOG_LEVEL not in LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {self.LOG_LEVEL!r}."
            )

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            PUBLISHER_PACKAGE_NAME=_as_optional(os.environ.get("PUBLISHER_PACKAGE_NAME")),
            S3_ACCESS_KEY_ID=_as_optional(os.environ.get("S3_ACCESS_KEY_ID")),
            S3_SECRET_ACCESS_KEY=_as_optional(os.environ.get("S3_SECRET_ACCESS_KEY")),
            S3_BUCKET=_as_optional(os.environ.get("S3_BUCKET")),
            S3_REGION=_as_optional(os.environ.get("S3_REGION")),
            S3_ENDPOINT_URL=_as_optional(os.environ.get("S3_ENDPOINT_URL")),
            S3_ADDRESSING_STYLE=_as_optional(os.environ.get("S3_ADDRESSING_STYLE")),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            LOG_JSON=_as_bool(os.environ.get("LOG_JSON"), cls.LOG_JSON),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
