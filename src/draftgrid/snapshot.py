from __future__ import annotations

import copy
import logging
from collections.abc import Hashable, Iterable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class SnapshotStore:
    """Last fetched, authoritative copy of a collection keyed by identifier.

    The collection is replaced wholesale on every fetch; records handed out are
    copies so callers cannot mutate the snapshot in place.
    """

    def __init__(self, *, id_field: str = "id") -> None:
        self.id_field = id_field
        self._records: dict[Hashable, Record] = {}
        self.version = 0
        self.loaded = False
        self.stale = False

    def index(self, records: Iterable[Mapping[str, Any]]) -> dict[Hashable, Record]:
        """Key deep copies of *records* by identifier.

        Raises :class:`ValueError` for a record without the identifier or a
        repeated identifier.
        """
        fresh: dict[Hashable, Record] = {}
        for rec in records:
            if self.id_field not in rec:
                raise ValueError(f"record without {self.id_field!r}: {rec!r}")
            rid = rec[self.id_field]
            if rid in fresh:
                raise ValueError(f"duplicate record id: {rid!r}")
            fresh[rid] = copy.deepcopy(dict(rec))
        return fresh

    def replace(self, records: Iterable[Mapping[str, Any]]) -> None:
        """Replace the whole collection with *records*."""
        fresh = self.index(records)
        self._records = fresh
        self.version += 1
        self.loaded = True
        self.stale = False
        logger.debug("snapshot v%d holds %d records", self.version, len(fresh))

    def patch(self, rid: Hashable, values: Mapping[str, Any]) -> None:
        """Merge *values* into one record without refetching.

        The snapshot is flagged :attr:`stale` until the next :meth:`replace`.
        """
        if rid not in self._records:
            return
        self._records[rid].update(copy.deepcopy(dict(values)))
        self.stale = True

    def get(self, rid: Hashable) -> Record:
        return copy.deepcopy(self._records[rid])

    def value(self, rid: Hashable, field: str) -> Any:
        return copy.deepcopy(self._records[rid].get(field))

    def ids(self) -> list[Hashable]:
        return list(self._records)

    def records(self) -> list[Record]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def clone(self) -> dict[Hashable, Record]:
        """Return a deep copy suitable for use as a working draft."""
        return copy.deepcopy(self._records)

    def __contains__(self, rid: object) -> bool:
        return rid in self._records

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["Record", "SnapshotStore"]
