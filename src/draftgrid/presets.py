"""Named column layouts for a grid view.

A :class:`ViewPreset` records which fields a grid shows and in what order.
:class:`PresetStore` keeps the presets of one view, the currently applied
layout and an optional :class:`EditBuffer` used while an operator reorders
or hides columns before saving.  Every mutation rewrites the whole store to
the injected :class:`~draftgrid.kvstore.KeyValueStore`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from .errors import (
    DraftGridError,
    DuplicateName,
    InvalidPresetError,
    NoPresetBufferError,
    NotFound,
    PersistenceWarning,
    StoreLoadError,
    UnknownFieldError,
)
from .fields import FieldRegistry
from .kvstore import KeyValueStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

Direction = Literal["up", "down"]


@dataclass
class ViewPreset:
    """Column order and visibility saved under a unique name."""

    name: str
    field_order: list[str] = field(default_factory=list)
    visibility: dict[str, bool] = field(default_factory=dict)

    def copy(self) -> ViewPreset:
        return ViewPreset(self.name, list(self.field_order), dict(self.visibility))

    def visible_fields(self) -> list[str]:
        return [f for f in self.field_order if self.visibility.get(f, True)]

    def to_dict(self) -> dict[str, Any]:
        return {"field_order": list(self.field_order), "visibility": dict(self.visibility)}

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> ViewPreset:
        order = data.get("field_order", [])
        vis = data.get("visibility", {})
        if not isinstance(order, list) or not isinstance(vis, dict):
            raise InvalidPresetError(f"malformed preset {name!r}")
        return cls(name, [str(f) for f in order], {str(k): bool(v) for k, v in vis.items()})


@dataclass
class EditBuffer:
    """Unsaved changes to the preset called :attr:`name`."""

    name: str
    field_order: list[str]
    visibility: dict[str, bool]


class PresetStore:
    """Named view presets of one grid, persisted as a single JSON document."""

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        view: str = "default",
        key: str | None = None,
        fields: FieldRegistry | None = None,
    ) -> None:
        self.kv = kv
        self.key = key or f"draftgrid.presets.{view}"
        self.fields = fields
        self._presets: dict[str, ViewPreset] = {}
        self._active_name: str | None = None
        self._active = ViewPreset("", *self._default_layout())
        self._buffer: EditBuffer | None = None
        self.persist_error: str | None = None
        self.reload()

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------
    def _default_layout(self) -> tuple[list[str], dict[str, bool]]:
        names = self.fields.names() if self.fields is not None else []
        return names, {n: True for n in names}

    def reload(self) -> None:
        """Replace the in-memory store with the persisted one."""
        self._presets = {}
        self._active_name = None
        self._active = ViewPreset("", *self._default_layout())
        self._buffer = None
        try:
            raw = self.kv.read(self.key)
        except StoreLoadError as exc:
            logger.warning("ignoring unreadable preset store for %s: %s", self.key, exc)
            return
        if not raw:
            return
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("ignoring unreadable presets under %s: %s", self.key, exc)
            return
        if not isinstance(data, dict) or not isinstance(data.get("presets", {}), dict):
            logger.warning("ignoring malformed presets under %s", self.key)
            return
        for name, entry in data.get("presets", {}).items():
            try:
                preset = ViewPreset.from_dict(name, entry)
                self._presets[name] = self._sanitize(preset)
            except (InvalidPresetError, AttributeError) as exc:
                logger.warning("skipping preset %r: %s", name, exc)
        active = data.get("active")
        if isinstance(active, str) and active in self._presets:
            self._active_name = active
            self._active = self._presets[active].copy()
        logger.debug("loaded %d presets from %s", len(self._presets), self.key)

    def _sanitize(self, preset: ViewPreset) -> ViewPreset:
        """Drop fields the view no longer declares from a loaded preset."""
        if self.fields is None:
            return preset
        known = [f for f in preset.field_order if f in self.fields]
        if len(known) != len(preset.field_order):
            logger.warning("preset %r lists unknown fields; dropping them", preset.name)
        vis = {k: v for k, v in preset.visibility.items() if k in known}
        return ViewPreset(preset.name, list(dict.fromkeys(known)), vis)

    def dumps(self) -> str:
        payload = {
            "version": SCHEMA_VERSION,
            "active": self._active_name,
            "presets": {name: p.to_dict() for name, p in self._presets.items()},
        }
        return json.dumps(payload, ensure_ascii=False)

    def _persist(self) -> None:
        try:
            self.kv.write(self.key, self.dumps())
        except (OSError, DraftGridError) as exc:
            self.persist_error = str(exc)
            logger.warning("failed to persist presets under %s: %s", self.key, exc)
            raise PersistenceWarning(
                f"presets changed but could not be saved: {exc}"
            ) from exc
        self.persist_error = None

    # ------------------------------------------------------------------
    # Read-only helpers
    # ------------------------------------------------------------------
    def names(self) -> list[str]:
        return list(self._presets)

    def get(self, name: str) -> ViewPreset:
        try:
            return self._presets[name].copy()
        except KeyError:
            raise NotFound(f"no preset named {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._presets

    def __len__(self) -> int:
        return len(self._presets)

    @property
    def active_name(self) -> str | None:
        return self._active_name

    @property
    def active_order(self) -> list[str]:
        return list(self._active.field_order)

    @property
    def active_visibility(self) -> dict[str, bool]:
        return dict(self._active.visibility)

    def visible_fields(self) -> list[str]:
        return self._active.visible_fields()

    @property
    def editing_name(self) -> str | None:
        return self._buffer.name if self._buffer is not None else None

    @property
    def buffer(self) -> EditBuffer | None:
        if self._buffer is None:
            return None
        return EditBuffer(
            self._buffer.name, list(self._buffer.field_order), dict(self._buffer.visibility)
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    @staticmethod
    def _check_name(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise InvalidPresetError("preset name must not be empty")
        return name.strip()

    def _check_layout(
        self, field_order: Iterable[str], visibility: Mapping[str, bool]
    ) -> tuple[list[str], dict[str, bool]]:
        order = list(field_order)
        if len(set(order)) != len(order):
            raise InvalidPresetError("field order lists a field twice")
        if self.fields is not None:
            unknown = [f for f in order if f not in self.fields]
            if unknown:
                raise InvalidPresetError(f"unknown fields: {', '.join(unknown)}")
        extra = [k for k in visibility if k not in order]
        if extra:
            raise InvalidPresetError(
                f"visibility names fields outside the order: {', '.join(extra)}"
            )
        return order, {k: bool(v) for k, v in visibility.items()}

    def _require_buffer(self) -> EditBuffer:
        if self._buffer is None:
            raise NoPresetBufferError("no preset is being edited")
        return self._buffer

    # ------------------------------------------------------------------
    # Preset CRUD
    # ------------------------------------------------------------------
    def create_preset(
        self,
        name: str,
        field_order: Iterable[str],
        visibility: Mapping[str, bool] | None = None,
    ) -> ViewPreset:
        name = self._check_name(name)
        if name in self._presets:
            raise DuplicateName(f"a preset named {name!r} already exists")
        order, vis = self._check_layout(field_order, visibility or {})
        preset = ViewPreset(name, order, vis)
        self._presets[name] = preset
        logger.info("created preset %r", name)
        self._persist()
        return preset.copy()

    def apply_preset(self, name: str) -> ViewPreset:
        """Make *name* the active layout and return it."""
        preset = self.get(name)
        self._active_name = name
        self._active = preset.copy()
        logger.debug("applied preset %r", name)
        self._persist()
        return preset

    def rename_preset(self, old: str, new: str) -> ViewPreset:
        preset = self.get(old)
        new = self._check_name(new)
        if new == old:
            return preset
        if new in self._presets:
            raise DuplicateName(f"a preset named {new!r} already exists")
        self._replace_entry(old, ViewPreset(new, preset.field_order, preset.visibility))
        if self._buffer is not None and self._buffer.name == old:
            self._buffer.name = new
        logger.info("renamed preset %r to %r", old, new)
        self._persist()
        return self.get(new)

    def delete_preset(self, name: str) -> None:
        if name not in self._presets:
            raise NotFound(f"no preset named {name!r}")
        del self._presets[name]
        if self._active_name == name:
            self._active_name = None
        if self._buffer is not None and self._buffer.name == name:
            self._buffer = None
        logger.info("deleted preset %r", name)
        self._persist()

    def _replace_entry(self, old: str, preset: ViewPreset) -> None:
        """Swap the entry *old* for *preset*, keeping its position."""
        self._presets = {
            (preset.name if k == old else k): (preset if k == old else v)
            for k, v in self._presets.items()
        }
        if self._active_name == old:
            self._active_name = preset.name
            self._active = preset.copy()

    # ------------------------------------------------------------------
    # Edit buffer
    # ------------------------------------------------------------------
    def begin_editing(self, name: str) -> EditBuffer:
        preset = self.get(name)
        self._buffer = EditBuffer(name, preset.field_order, preset.visibility)
        return self.buffer  # type: ignore[return-value]

    def cancel_editing(self) -> None:
        self._buffer = None

    def reorder(self, field_name: str, direction: Direction) -> bool:
        """Swap *field_name* with its neighbour; ``False`` at either end."""
        buf = self._require_buffer()
        if direction not in ("up", "down"):
            raise ValueError(f"direction must be 'up' or 'down', not {direction!r}")
        try:
            idx = buf.field_order.index(field_name)
        except ValueError:
            raise UnknownFieldError(field_name) from None
        other = idx - 1 if direction == "up" else idx + 1
        if other < 0 or other >= len(buf.field_order):
            return False
        order = buf.field_order
        order[idx], order[other] = order[other], order[idx]
        return True

    def toggle_visibility(self, field_name: str) -> bool:
        """Flip *field_name* in the buffer and return its new visibility."""
        buf = self._require_buffer()
        if field_name not in buf.field_order:
            raise UnknownFieldError(field_name)
        shown = not buf.visibility.get(field_name, True)
        buf.visibility[field_name] = shown
        return shown

    def save_edited_preset(self, new_name: str | None = None) -> ViewPreset:
        """Write the buffer back, under *new_name* if given, and close it."""
        buf = self._require_buffer()
        target = self._check_name(new_name) if new_name is not None else buf.name
        if target != buf.name and target in self._presets:
            raise DuplicateName(f"a preset named {target!r} already exists")
        preset = ViewPreset(target, list(buf.field_order), dict(buf.visibility))
        if buf.name in self._presets:
            self._replace_entry(buf.name, preset)
        else:
            self._presets[target] = preset
        if self._active_name == target:
            self._active = preset.copy()
        self._buffer = None
        logger.info("saved preset %r", target)
        self._persist()
        return preset.copy()

    def save_buffer_as_new_preset(self, name: str) -> ViewPreset:
        """Store the open buffer, or the active layout, as a new preset."""
        name = self._check_name(name)
        if name in self._presets:
            raise DuplicateName(f"a preset named {name!r} already exists")
        if self._buffer is not None:
            source = ViewPreset(name, list(self._buffer.field_order), dict(self._buffer.visibility))
            self._buffer = None
        else:
            source = ViewPreset(name, self.active_order, self.active_visibility)
        self._presets[name] = source
        logger.info("created preset %r from current layout", name)
        self._persist()
        return source.copy()


__all__ = ["Direction", "EditBuffer", "PresetStore", "ViewPreset"]
