from __future__ import annotations

from collections.abc import Mapping, MutableMapping

import yaml

from ..errors import StoreLoadError
from . import register_store
from .base import FileStore


@register_store
class YamlFileStore(FileStore):
    """YAML file store."""

    suffixes = (".yaml", ".yml")

    def load(self) -> MutableMapping[str, str]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if raw.strip() == "":
            return {}
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as exc:
            raise StoreLoadError(f"{self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreLoadError(f"{self.path}: root must be a mapping")
        return {str(k): str(v) for k, v in data.items()}

    def dump(self, data: Mapping[str, str], fh) -> None:  # noqa: ANN001
        yaml.safe_dump(dict(data), fh, sort_keys=True, allow_unicode=True)
