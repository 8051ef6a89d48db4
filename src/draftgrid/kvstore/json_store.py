from __future__ import annotations

import json
from collections.abc import Mapping, MutableMapping

from ..errors import StoreLoadError
from . import register_store
from .base import FileStore


@register_store
class JsonFileStore(FileStore):
    """JSON file store."""

    suffixes = (".json",)

    def load(self) -> MutableMapping[str, str]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if raw.strip() == "":
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreLoadError(f"{self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreLoadError(f"{self.path}: root must be an object")
        return {str(k): str(v) for k, v in data.items()}

    def dump(self, data: Mapping[str, str], fh) -> None:  # noqa: ANN001
        json.dump(dict(data), fh, indent=2, sort_keys=True, ensure_ascii=False)
