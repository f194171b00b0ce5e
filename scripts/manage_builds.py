#!/usr/bin/env python3
"""List or remove builds published to the S3 bucket.

Usage:
  .venv/bin/python scripts/manage_builds.py list
  .venv/bin/python scripts/manage_builds.py remove myapp-1.2.0-win32-x64 --dry-run

Credentials and the bucket are read from the environment (or .env), see
release_publisher.common.config.Settings.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from release_publisher.common.config import get_settings
from release_publisher.common.logging import setup_logging
from release_publisher.transport import Build, S3Transport


async def list_builds(transport: S3Transport) -> list[str]:
    transport.init()
    try:
        return await transport.fetch_builds_list()
    finally:
        await transport.close()


async def remove_build(
    transport: S3Transport, build_id: str, *, dry_run: bool = False
) -> list[str]:
    """Remove a build and return the keys it held (or would delete)."""
    build = Build.from_build_id(build_id)
    transport.init()
    try:
        keys = await transport.list_build_keys(build)
        if dry_run or not keys:
            return keys
        outcome = await transport.remove_build(build)
        if outcome.errors:
            failed = ", ".join(str(err.get("Key")) for err in outcome.errors)
            raise RuntimeError(f"Some objects could not be deleted: {failed}")
        return keys
    finally:
        await transport.close()


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Manage published builds")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="Print published build ids")
    remove = subparsers.add_parser("remove", help="Delete every object of a build")
    remove.add_argument("build_id", help="Build id, e.g. myapp-1.2.0-win32-x64")
    remove.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the keys that would be deleted",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    transport = S3Transport.from_settings(settings)

    if args.command == "list":
        for build_id in asyncio.run(list_builds(transport)):
            print(build_id)
        return

    keys = asyncio.run(remove_build(transport, args.build_id, dry_run=args.dry_run))
    if args.dry_run:
        print(f"[DRY-RUN] {len(keys)} objects would be deleted")
        for key in keys:
            print(f"  {key}")
    else:
        print(f"Deleted {len(keys)} objects")


if __name__ == "__main__":
    main()
