"""Publish release builds and their update manifest to object storage."""

__version__ = "0.1.0"
