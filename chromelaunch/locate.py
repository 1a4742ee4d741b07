"""Find an installed Chrome, Chromium or Edge executable."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path, PureWindowsPath
from typing import Iterable

logger = logging.getLogger(__name__)

CHROME_ENV_VAR = "CHROME"

_RELEASE_CHANNELS = ("stable", "beta", "dev")

# Order matters: Chrome first, then Chromium, then Edge, then generic names.
EXECUTABLE_NAMES: tuple[str, ...] = (
    *(f"google-chrome-{channel}" for channel in (*_RELEASE_CHANNELS, "unstable")),
    "chromium",
    "chromium-browser",
    *(f"microsoft-edge-{channel}" for channel in _RELEASE_CHANNELS),
    "chrome",
    "chrome-browser",
    "msedge",
    "microsoft-edge",
)

_MAC_EDITIONS = ("", " Beta", " Dev", " Canary")
_MAC_APP_NAMES = (
    *(f"Google Chrome{edition}" for edition in _MAC_EDITIONS),
    "Chromium",
    *(f"Microsoft Edge{edition}" for edition in _MAC_EDITIONS),
)
MACOS_APP_PATHS: tuple[str, ...] = tuple(
    f"/Applications/{app}.app/Contents/MacOS/{app}" for app in _MAC_APP_NAMES
)

WINDOWS_FALLBACK_PATHS: tuple[str, ...] = (
    str(
        PureWindowsPath(
            "C:/", "Program Files (x86)", "Microsoft", "Edge", "Application", "msedge.exe"
        )
    ),
)

_REGISTRY_KEY = "\\".join(
    ("SOFTWARE", "Microsoft", "Windows", "CurrentVersion", "App Paths", "chrome.exe")
)


class ExecutableNotFound(Exception):
    """Raised when no browser executable can be found."""


def _chrome_path_from_registry() -> Path | None:
    try:
        import winreg
    except ImportError:
        return None
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, _REGISTRY_KEY) as key:
            value, _ = winreg.QueryValueEx(key, "")
    except OSError:
        return None
    return Path(value) if value else None


def _first_existing(paths: Iterable[str]) -> Path | None:
    return next((Path(p) for p in paths if os.path.exists(p)), None)


def _from_path_search() -> Path | None:
    for name in EXECUTABLE_NAMES:
        found = shutil.which(name)
        if found:
            return Path(found)
    return None


def _from_windows() -> Path | None:
    registry_path = _chrome_path_from_registry()
    if registry_path is None:
        return None
    if registry_path.exists():
        return registry_path
    return _first_existing(WINDOWS_FALLBACK_PATHS)


def default_executable() -> Path:
    """Return the path of a browser executable found on this system.

    Tries the ``CHROME`` environment variable, then known program names on
    ``PATH``, then the usual application folders on macOS and the registry
    on Windows.
    """
    env_path = os.environ.get(CHROME_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return Path(env_path)

    found = _from_path_search()
    if found is not None:
        return found

    if sys.platform == "darwin":
        found = _first_existing(MACOS_APP_PATHS)
        if found is not None:
            return found

    if sys.platform in ("win32", "cygwin"):
        found = _from_windows()
        if found is not None:
            return found

    logger.debug("no browser executable found")
    raise ExecutableNotFound("Could not auto detect a chrome executable")