"""Static field declarations for a grid view.

Each view declares its columns once as a :class:`FieldRegistry` of
:class:`FieldSpec` objects.  A spec names the field, the kind of value it
carries and whether operators may edit it in place.  The kind selects the
adapter from :data:`KIND_REGISTRY` that turns raw cell input into the value
sent to the remote API.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Protocol

from .errors import UnknownFieldError

####################
##### ADAPTERS #####
####################


class KindAdapter(Protocol):
    """Adapter for a field kind.

    Adapters convert raw cell input into the wire value expected by the
    remote API.  Implementations raise :class:`TypeError` or
    :class:`ValueError` when the input cannot be converted.
    """

    def coerce(self, raw: Any, spec: FieldSpec) -> Any:
        """Return the wire value for *raw*."""


_TRUE_WORDS = frozenset({"true", "1", "yes", "oui", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "non", "off"})


class BooleanKind:
    """Adapter for boolean fields, including role-label columns."""

    def coerce(self, raw: Any, spec: FieldSpec) -> bool | None:
        if raw is None:
            return None
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, int):
            if raw in (0, 1):
                return bool(raw)
            raise ValueError(f"invalid boolean: {raw!r}")
        if not isinstance(raw, str):
            raise TypeError("expected bool or str")
        text = raw.strip()
        if not text:
            return None
        lowered = text.casefold()
        if lowered in {label.casefold() for label in spec.true_labels}:
            return True
        if lowered in {label.casefold() for label in spec.false_labels}:
            return False
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ValueError(f"invalid boolean: {raw!r}")


def _number_text(raw: str) -> str:
    return raw.strip().replace("\u00a0", "").replace(" ", "").replace(",", ".")


class IntegerKind:
    """Adapter for integer fields."""

    def coerce(self, raw: Any, spec: FieldSpec) -> int | None:
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise TypeError("expected integer, got bool")
        if isinstance(raw, int):
            return raw
        if isinstance(raw, float):
            if math.isfinite(raw) and raw.is_integer():
                return int(raw)
            raise ValueError(f"not an integer: {raw!r}")
        if not isinstance(raw, str):
            raise TypeError("expected int or str")
        text = _number_text(raw)
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        value = float(text)
        if not (math.isfinite(value) and value.is_integer()):
            raise ValueError(f"not an integer: {raw!r}")
        return int(value)


class DecimalKind:
    """Adapter for decimal fields.  Wire values are floats."""

    def coerce(self, raw: Any, spec: FieldSpec) -> float | None:
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise TypeError("expected number, got bool")
        if isinstance(raw, int | float):
            value = float(raw)
        elif isinstance(raw, str):
            text = _number_text(raw)
            if not text:
                return None
            value = float(text)
        else:
            raise TypeError("expected number or str")
        if not math.isfinite(value):
            raise ValueError(f"not a finite number: {raw!r}")
        return value


_DAY_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def format_timestamp(moment: datetime) -> str:
    """Return *moment* in the API's canonical UTC form.

    Naive datetimes are taken to be UTC already.
    """

    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    millis = moment.microsecond // 1000
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{millis:03d}Z"


class DateKind:
    """Adapter for date fields.

    Day-only input is normalised to a timestamp at midnight UTC.  Values that
    are already timestamps are re-emitted in canonical form so coercing a
    previously committed value yields the same wire value.
    """

    def coerce(self, raw: Any, spec: FieldSpec) -> str | None:
        if raw is None:
            return None
        if isinstance(raw, datetime):
            return format_timestamp(raw)
        if isinstance(raw, date):
            return format_timestamp(datetime.combine(raw, time.min))
        if not isinstance(raw, str):
            raise TypeError("expected date or str")
        text = raw.strip()
        if not text:
            return None
        if _DAY_ONLY_RE.fullmatch(text):
            return format_timestamp(datetime.combine(date.fromisoformat(text), time.min))
        m = _DAY_FIRST_RE.fullmatch(text)
        if m:
            day, month, year = (int(g) for g in m.groups())
            return format_timestamp(datetime.combine(date(year, month, day), time.min))
        return format_timestamp(datetime.fromisoformat(text))


class TextKind:
    """Adapter for free text fields."""

    def coerce(self, raw: Any, spec: FieldSpec) -> Any:  # pragma: no cover - trivial
        return raw


class EnumKind:
    """Adapter for enumerated fields.

    Values are passed through; checking them against ``spec.options`` is left
    to the caller.
    """

    def coerce(self, raw: Any, spec: FieldSpec) -> Any:  # pragma: no cover - trivial
        return raw


KIND_REGISTRY: dict[str, KindAdapter] = {
    "boolean": BooleanKind(),
    "integer": IntegerKind(),
    "decimal": DecimalKind(),
    "date": DateKind(),
    "text": TextKind(),
    "enum": EnumKind(),
}

######################
##### FIELD SPEC #####
######################


@dataclass(frozen=True)
class FieldSpec:
    """Declaration of a single grid column."""

    name: str
    kind: str
    editable: bool = False
    label: str | None = None
    options: tuple[str, ...] = ()
    true_labels: tuple[str, ...] = ()
    false_labels: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("field name must not be empty")
        if self.kind not in KIND_REGISTRY:
            raise ValueError(f"unknown kind: {self.kind!r}")
        # Freeze iterables into tuples for immutability
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "true_labels", tuple(self.true_labels))
        object.__setattr__(self, "false_labels", tuple(self.false_labels))
        if self.kind == "enum" and not self.options:
            raise ValueError(f"enum field {self.name!r} needs options")
        if (self.true_labels or self.false_labels) and self.kind != "boolean":
            raise ValueError(f"labels are only valid on boolean fields ({self.name!r})")

    @property
    def adapter(self) -> KindAdapter:
        return KIND_REGISTRY[self.kind]


class FieldRegistry:
    """Ordered, read-only collection of the fields declared for one view."""

    def __init__(self, fields: Iterable[FieldSpec]) -> None:
        self._fields: tuple[FieldSpec, ...] = tuple(fields)
        self._index: dict[str, FieldSpec] = {}
        for spec in self._fields:
            if spec.name in self._index:
                raise ValueError(f"duplicate field: {spec.name!r}")
            self._index[spec.name] = spec

    def get(self, name: str) -> FieldSpec:
        try:
            return self._index[name]
        except KeyError:
            raise UnknownFieldError(name) from None

    def names(self) -> list[str]:
        return [f.name for f in self._fields]

    def editable_names(self) -> list[str]:
        return [f.name for f in self._fields if f.editable]

    def is_editable(self, name: str) -> bool:
        spec = self._index.get(name)
        return spec is not None and spec.editable

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[FieldSpec]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"FieldRegistry({self.names()!r})"


__all__ = [
    "KIND_REGISTRY",
    "BooleanKind",
    "DateKind",
    "DecimalKind",
    "EnumKind",
    "FieldRegistry",
    "FieldSpec",
    "IntegerKind",
    "KindAdapter",
    "TextKind",
    "format_timestamp",
]
