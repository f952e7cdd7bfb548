"""Persistence implementations."""
from .file_store import FileKeyValueStore

__all__ = ["FileKeyValueStore"]
