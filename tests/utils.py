from __future__ import annotations

import copy
import threading
from collections.abc import Hashable, Mapping
from typing import Any

from draftgrid.errors import NetworkError, RecordNotFound
from draftgrid.fields import FieldRegistry, FieldSpec


def student_fields() -> FieldRegistry:
    return FieldRegistry(
        [
            FieldSpec("id", "integer"),
            FieldSpec("nom", "text", editable=True),
            FieldSpec("prenom", "text", editable=True),
            FieldSpec("age", "integer", editable=True),
            FieldSpec("moyenne", "decimal", editable=True),
            FieldSpec("actif", "boolean", editable=True),
            FieldSpec(
                "admin", "boolean", editable=True, true_labels=("Admin",), false_labels=("User",)
            ),
            FieldSpec("entreeFonction", "date", editable=True),
            FieldSpec("classe", "enum", editable=True, options=("6A", "6B", "5A")),
            FieldSpec("email", "text"),
        ]
    )


def student_records() -> list[dict[str, Any]]:
    return [
        {"id": 3, "nom": "Petit", "prenom": "Lou", "age": 11, "actif": False, "email": "lou@x.fr"},
        {"id": 7, "nom": "Dupont", "prenom": "Jean", "age": 12, "actif": True, "email": "jd@x.fr"},
        {"id": 9, "nom": "Martin", "prenom": "Zoe", "age": 11, "actif": True, "email": "zm@x.fr"},
    ]


class FakeGateway:
    """In-memory collection recording every call it receives."""

    def __init__(
        self,
        records: list[Mapping[str, Any]] = (),
        *,
        fail: Mapping[Hashable, Exception] | None = None,
    ) -> None:
        self.records: dict[Hashable, dict[str, Any]] = {r["id"]: dict(r) for r in records}
        self.fail: dict[Hashable, Exception] = dict(fail or {})
        self.fetch_error: Exception | None = None
        self.calls: list[tuple] = []

    def fetch_all(self) -> list[dict[str, Any]]:
        self.calls.append(("fetch_all",))
        if self.fetch_error is not None:
            raise self.fetch_error
        return [copy.deepcopy(r) for r in self.records.values()]

    def fetch_by_id(self, rid: Hashable) -> dict[str, Any]:
        self.calls.append(("fetch", rid))
        if rid not in self.records:
            raise RecordNotFound(f"no record {rid}", status=404)
        return copy.deepcopy(self.records[rid])

    def update_by_id(self, rid: Hashable, patch: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("update", rid, dict(patch)))
        if rid in self.fail:
            raise self.fail[rid]
        if rid not in self.records:
            raise RecordNotFound(f"no record {rid}", status=404)
        self.records[rid].update(patch)
        return copy.deepcopy(self.records[rid])

    def delete_by_id(self, rid: Hashable) -> None:
        self.calls.append(("delete", rid))
        if rid in self.fail:
            raise self.fail[rid]
        if self.records.pop(rid, None) is None:
            raise RecordNotFound(f"no record {rid}", status=404)

    def updates(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "update"]


class BlockingGateway(FakeGateway):
    """Gateway whose updates wait until :attr:`release` is set."""

    def __init__(self, records: list[Mapping[str, Any]] = ()) -> None:
        super().__init__(records)
        self.started = threading.Event()
        self.release = threading.Event()

    def update_by_id(self, rid: Hashable, patch: Mapping[str, Any]) -> dict[str, Any]:
        self.started.set()
        if not self.release.wait(timeout=5):
            raise NetworkError("test gateway was never released")
        return super().update_by_id(rid, patch)
