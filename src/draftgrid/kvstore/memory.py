from __future__ import annotations

from .base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Process-local store, mostly useful for tests and throwaway views."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        self._data[key] = value
