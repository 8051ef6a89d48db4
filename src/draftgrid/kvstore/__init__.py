"""Key-value store registry and factory."""
from __future__ import annotations

from pathlib import Path

from .base import FileStore, KeyValueStore
from .memory import MemoryStore

_REGISTRY: dict[str, type[FileStore]] = {}


def register_store(store: type[FileStore]) -> type[FileStore]:
    """Register a file store class and return it for decorator use."""
    for suf in store.suffixes:
        _REGISTRY[suf] = store
    return store


def store_for_path(path: Path) -> FileStore:
    path = Path(path)
    store_cls = _REGISTRY.get(path.suffix.lower())
    if store_cls is None:
        raise ValueError(f"No key-value store for {path.suffix}")
    return store_cls(path)


# register default stores
from . import json_store, yaml_store  # noqa: F401,E402

__all__ = [
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
    "register_store",
    "store_for_path",
]
