"""Settings for grids and the command line.

Values come from the ``[draftgrid]`` section of an INI file, by default
``settings.ini`` in the user configuration directory, and may be overridden
with ``DRAFTGRID_*`` environment variables.
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .draft import COMMIT_POLICIES
from .errors import ConfigError
from .paths import presets_file, settings_file

logger = logging.getLogger(__name__)

SECTION = "draftgrid"
ENV_PREFIX = "DRAFTGRID_"
DEFAULT_API_URL = "http://localhost:4000"


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    token: str | None = None
    timeout: float = 10.0
    presets_file: Path | None = None
    commit_policy: str = "fail_fast"

    def presets_path(self) -> Path:
        return self.presets_file or presets_file()


# ---------------------------------------------------------------------------
# Reading helpers
# ---------------------------------------------------------------------------

def _read_ini(path: Path) -> dict[str, str]:
    parser = configparser.ConfigParser()
    try:
        parser.read(path, encoding="utf-8")
    except configparser.Error as exc:
        logger.warning("Failed to read config %s: %s", path, exc)
        return {}
    if not parser.has_section(SECTION):
        return {}
    return dict(parser.items(SECTION))


def _read_env() -> dict[str, str]:
    out: dict[str, str] = {}
    for name in ("api_url", "token", "timeout", "presets_file", "commit_policy"):
        value = os.environ.get(ENV_PREFIX + name.upper())
        if value is not None:
            out[name] = value
    return out


def _coerce(raw: dict[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "api_url" in raw:
        url = raw["api_url"].strip()
        if not url.startswith(("http://", "https://")):
            raise ConfigError(f"api_url must be an http(s) URL, got {url!r}")
        values["api_url"] = url.rstrip("/")
    if "token" in raw:
        values["token"] = raw["token"].strip() or None
    if "timeout" in raw:
        try:
            timeout = float(raw["timeout"])
        except ValueError as exc:
            raise ConfigError(f"timeout must be a number, got {raw['timeout']!r}") from exc
        if timeout <= 0:
            raise ConfigError("timeout must be positive")
        values["timeout"] = timeout
    if "presets_file" in raw and raw["presets_file"].strip():
        values["presets_file"] = Path(raw["presets_file"]).expanduser()
    if "commit_policy" in raw:
        policy = raw["commit_policy"].strip().replace("-", "_")
        if policy not in COMMIT_POLICIES:
            raise ConfigError(
                f"commit_policy must be one of {', '.join(COMMIT_POLICIES)}, got {policy!r}"
            )
        values["commit_policy"] = policy
    return values


def load_settings(path: Path | None = None) -> Settings:
    """Return settings from *path* (or the user settings file) and the environment."""
    path = Path(path) if path is not None else settings_file()
    raw: dict[str, str] = {}
    if path.exists():
        raw.update(_read_ini(path))
    raw.update(_read_env())
    return replace(Settings(), **_coerce(raw))


def write_settings(settings: Settings, path: Path | None = None) -> Path:
    """Persist *settings* to *path*, leaving other sections untouched."""
    path = Path(path) if path is not None else settings_file()
    parser = configparser.ConfigParser()
    if path.exists():
        try:
            parser.read(path, encoding="utf-8")
        except configparser.Error as exc:
            raise ConfigError(f"cannot update {path}: {exc}") from exc
    if not parser.has_section(SECTION):
        parser.add_section(SECTION)
    parser.set(SECTION, "api_url", settings.api_url)
    parser.set(SECTION, "timeout", str(settings.timeout))
    parser.set(SECTION, "commit_policy", settings.commit_policy)
    if settings.presets_file is not None:
        parser.set(SECTION, "presets_file", str(settings.presets_file))
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        parser.write(fh)
    tmp.replace(path)
    return path


__all__ = ["Settings", "load_settings", "write_settings"]
