"""
Cross-platform utilities for fumosync.

Centralises OS detection and the per-user directory layout so every
other module can import a single canonical set of helpers rather than
scattering ``sys.platform`` checks throughout the codebase.
"""

from __future__ import annotations

import logging
import os
import sys
import webbrowser
from pathlib import Path

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"

HOME_ENV_VAR = "FUMOSYNC_HOME"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - ``$FUMOSYNC_HOME`` when set
    - Windows : ``%APPDATA%\\fumosync``
    - macOS   : ``~/Library/Application Support/fumosync``
    - Linux   : ``$XDG_CONFIG_HOME/fumosync`` (default ``~/.config``)
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        config_dir = Path(override)
    else:
        if IS_WINDOWS:
            base = os.environ.get("APPDATA", str(Path.home()))
        elif IS_MACOS:
            base = str(Path.home() / "Library" / "Application Support")
        else:
            base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))
        config_dir = Path(base) / "fumosync"

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "fumosync.log"


def get_secrets_path() -> Path:
    """Return the path to the stored session secrets."""
    return get_config_dir() / "secrets.json"


# ---- desktop integration -----------------------------------------------


def open_url_in_browser(url: str) -> bool:
    """Open *url* in the default browser.  Returns True on success."""
    try:
        opened = webbrowser.open(url, new=2)
    except webbrowser.Error:
        logger.warning("Could not open browser for %s", url, exc_info=True)
        return False
    if not opened:
        logger.warning("No browser available to open %s", url)
    return opened
