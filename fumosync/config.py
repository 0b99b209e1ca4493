"""Configuration management for fumosync.

Two kinds of configuration live here:

* :class:`Configuration` — the per-project metadata file
  (``fumosync.json``) linking a directory to a remote script.
* :class:`Settings` — user-wide settings stored as JSON in the
  platform-appropriate application data directory.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fumosync.errors import ConfigurationError
from fumosync.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from fumosync.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

# ---- project layout ----

SYNC_CONFIGURATION_FILE = "fumosync.json"
MAIN_SCRIPT_FILE = "init.server.luau"
DESCRIPTION_FILE = "README.md"
PACKAGE_DIRECTORY = "pkg"
MODULE_EXTENSION = "luau"

PLACEHOLDER_SCRIPT_ID = "???"

DEFAULT_BASE_URL = "https://fumosclubv1.vercel.app"

DEFAULT_SETTINGS: dict[str, Any] = {
    "base_url": DEFAULT_BASE_URL,
    "debounce_seconds": 2.0,
    "request_timeout_seconds": 30,
    "log_level": "INFO",
    # ---- log rotation ----
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_settings_path() -> Path:
    """Return the path to the settings file."""
    return get_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


@dataclass
class Configuration:
    """Project metadata, serialized to ``fumosync.json`` with camelCase keys."""

    script_name: str
    script_id: str = PLACEHOLDER_SCRIPT_ID
    whitelist: list[str] = field(default_factory=list)
    is_public: bool = False

    @classmethod
    def from_dict(cls, data: Any, source: Path | str = SYNC_CONFIGURATION_FILE) -> Configuration:
        if not isinstance(data, dict):
            raise ConfigurationError(source, "expected a JSON object")
        try:
            name = data["scriptName"]
            script_id = data["scriptId"]
            whitelist = data["whitelist"]
            is_public = data["isPublic"]
        except KeyError as exc:
            raise ConfigurationError(source, f"missing field {exc.args[0]!r}") from None

        if not isinstance(name, str) or not isinstance(script_id, str):
            raise ConfigurationError(source, "scriptName and scriptId must be strings")
        if not isinstance(whitelist, list) or not all(isinstance(w, str) for w in whitelist):
            raise ConfigurationError(source, "whitelist must be a list of strings")
        if not isinstance(is_public, bool):
            raise ConfigurationError(source, "isPublic must be a boolean")

        return cls(
            script_name=name,
            script_id=script_id,
            whitelist=list(whitelist),
            is_public=is_public,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "scriptName": self.script_name,
            "scriptId": self.script_id,
            "whitelist": list(self.whitelist),
            "isPublic": self.is_public,
        }

    def to_json(self) -> str:
        """Return the pretty-printed form written to disk."""
        return json.dumps(self.to_dict(), indent=2)


class Settings:
    """User-wide settings backed by a JSON file.

    Stored values are checked on every read: anything out of range is
    clamped and anything of the wrong type falls back to its default.
    """

    def __init__(self, path: Path | None = None):
        """Load settings from *path*, falling back to the platform default."""
        self._path = path or get_settings_path()
        self._data: dict[str, Any] = dict(DEFAULT_SETTINGS)
        self.load()

    # ---- persistence ----

    def load(self) -> None:
        """Load settings from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                if not isinstance(stored, dict):
                    raise ValueError("settings file does not hold a JSON object")
                # Merge stored values over defaults so new keys get defaults
                self._data = {**DEFAULT_SETTINGS, **stored}
                logger.debug("Settings loaded from %s", self._path)
            except (ValueError, OSError) as exc:
                logger.warning("Could not read settings (%s); using defaults.", exc)
                self._data = dict(DEFAULT_SETTINGS)
        else:
            self._data = dict(DEFAULT_SETTINGS)
            self.save()
            logger.debug("Created default settings at %s", self._path)

    def save(self) -> None:
        """Persist the current settings to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
        except OSError as exc:
            logger.error("Failed to save settings: %s", exc)

    @property
    def path(self) -> Path:
        return self._path

    def _number(self, key: str, cast: type, minimum: float) -> Any:
        raw = self._data.get(key, DEFAULT_SETTINGS[key])
        try:
            if isinstance(raw, bool):
                raise TypeError(key)
            value = cast(raw)
        except (TypeError, ValueError):
            logger.warning("Invalid %s %r in settings; using the default.", key, raw)
            value = cast(DEFAULT_SETTINGS[key])
        if value != value:  # NaN
            value = cast(DEFAULT_SETTINGS[key])
        return max(minimum, value)

    # ---- accessors ----

    @property
    def base_url(self) -> str:
        """Return the fumosclub API base URL."""
        value = self._data.get("base_url")
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_BASE_URL
        return value.strip().rstrip("/")

    @property
    def debounce_seconds(self) -> float:
        """Return the watch debounce interval (minimum 0.1 s)."""
        return self._number("debounce_seconds", float, 0.1)

    @debounce_seconds.setter
    def debounce_seconds(self, value: float) -> None:
        self._data["debounce_seconds"] = value

    @property
    def request_timeout(self) -> float:
        """Return the HTTP request timeout (minimum 1 s)."""
        return self._number("request_timeout_seconds", float, 1.0)

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        value = self._data.get("log_level")
        if not isinstance(value, str):
            return "INFO"
        level = value.strip().upper()
        return level if level in _LOG_LEVELS else "INFO"

    # ---- log rotation ----

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation (minimum 1)."""
        return self._number("max_log_size_mb", int, 1)

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return self._number("log_backup_count", int, 0)
