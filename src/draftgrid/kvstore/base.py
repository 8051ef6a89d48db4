from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, MutableMapping
from pathlib import Path

from ..errors import StoreLoadError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Durable string storage addressed by key."""

    @abstractmethod
    def read(self, key: str) -> str | None:
        pass

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        pass


class FileStore(KeyValueStore):
    """Store keeping every key in a single file.

    Subclasses only implement parsing and dumping of the whole mapping.
    Writes go through a temporary file that replaces the target.
    """

    suffixes: tuple[str, ...] = ()

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    @abstractmethod
    def load(self) -> MutableMapping[str, str]:
        pass

    @abstractmethod
    def dump(self, data: Mapping[str, str], fh) -> None:  # noqa: ANN001
        pass

    def read(self, key: str) -> str | None:
        return self.load().get(key)

    def write(self, key: str, value: str) -> None:
        """Store *value* under *key*.

        A file that cannot be parsed is moved aside to ``<name>.corrupt`` and
        replaced by a fresh one holding only *key*.
        """
        try:
            data = self.load()
        except StoreLoadError as exc:
            backup = self.path.with_suffix(self.path.suffix + ".corrupt")
            logger.warning("overwriting unreadable %s (kept as %s): %s", self.path, backup, exc)
            self.path.replace(backup)
            data = {}
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            self.dump(data, fh)
        tmp.replace(self.path)
