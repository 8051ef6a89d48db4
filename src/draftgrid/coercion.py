from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .errors import InvalidFieldValue, NotEditable
from .fields import FieldRegistry, FieldSpec


def coerce_value(spec: FieldSpec, raw: Any) -> Any:
    """Convert *raw* cell input into the wire value for ``spec.kind``.

    Adapter failures surface as :class:`InvalidFieldValue` so callers only
    deal with one error type per field.
    """
    try:
        return spec.adapter.coerce(raw, spec)
    except (TypeError, ValueError) as exc:
        raise InvalidFieldValue(spec.name, raw, str(exc)) from exc


def build_patch(fields: FieldRegistry, edits: Mapping[str, Any]) -> dict[str, Any]:
    """Return the coerced patch for one record's pending *edits*."""
    patch: dict[str, Any] = {}
    for name, raw in edits.items():
        spec = fields.get(name)
        if not spec.editable:
            raise NotEditable(f"field {name!r} is not editable")
        patch[name] = coerce_value(spec, raw)
    return patch


__all__ = ["build_patch", "coerce_value"]
