"""Locate or download a Chromium snapshot build for the current platform."""

from __future__ import annotations

import logging
import os
import platform as _platform_mod
import subprocess
import sys
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import platformdirs
import requests

logger = logging.getLogger(__name__)

CUR_REV = "1095492"
APP_NAME = "headless-chrome"
DEFAULT_HOST = "https://storage.googleapis.com"

_SNAPSHOT_DIRS = {
    "linux": "Linux_x64",
    "mac": "Mac",
    "mac_arm": "Mac_Arm",
    "win": "Win_x64",
}

_EXECUTABLE_PARTS = {
    "linux": ("chrome",),
    "mac": ("Chromium.app", "Contents", "MacOS", "Chromium"),
    "mac_arm": ("Chromium.app", "Contents", "MacOS", "Chromium"),
    "win": ("chrome.exe",),
}

_WIN_ARCHIVE_RENAME_REV = 591_479
_HTTP_TIMEOUT = 60


class FetchError(Exception):
    """Raised when a Chromium build cannot be found or installed."""


@dataclass(frozen=True)
class Revision:
    """A Chromium snapshot revision; ``value`` is None for the latest one."""

    value: str | None = None

    @classmethod
    def latest(cls) -> Revision:
        return cls(None)

    @classmethod
    def specific(cls, value) -> Revision:
        return cls(str(value))

    @property
    def is_latest(self) -> bool:
        return self.value is None


@dataclass
class FetcherOptions:
    """Where to look for a Chromium build and whether one may be downloaded.

    ``platform`` defaults to the platform this interpreter runs on.
    """

    revision: Revision = field(default_factory=lambda: Revision.specific(CUR_REV))
    install_dir: Path | None = None
    allow_download: bool = True
    allow_standard_dirs: bool = True
    platform: str | None = None

    def __post_init__(self) -> None:
        if self.install_dir is not None:
            self.install_dir = Path(self.install_dir)


def current_platform() -> str:
    """Return the snapshot platform name for the running system."""
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        machine = _platform_mod.machine().lower()
        return "mac_arm" if machine in ("arm64", "aarch64") else "mac"
    if sys.platform in ("win32", "cygwin"):
        return "win"
    raise FetchError(f"Unsupported platform: {sys.platform}")


def _check_platform(platform: str) -> str:
    if platform not in _SNAPSHOT_DIRS:
        raise FetchError(f"Unsupported platform: {platform}")
    return platform


def archive_name(revision, platform) -> str:
    """Return the name of the snapshot archive (and its top folder)."""
    platform = _check_platform(platform)
    if platform == "linux":
        return "chrome-linux"
    if platform in ("mac", "mac_arm"):
        return "chrome-mac"
    try:
        number = int(str(revision))
    except ValueError as exc:
        raise FetchError(f"Invalid revision: {revision!r}") from exc
    # The Windows archive name changed after this revision.
    return "chrome-win" if number > _WIN_ARCHIVE_RENAME_REV else "chrome-win32"


def download_url(revision, platform) -> str:
    """Return the URL of the snapshot zip for ``revision`` on ``platform``."""
    platform = _check_platform(platform)
    return (
        f"{DEFAULT_HOST}/chromium-browser-snapshots/{_SNAPSHOT_DIRS[platform]}"
        f"/{revision}/{archive_name(revision, platform)}.zip"
    )


def _get(url: str, **kwargs) -> requests.Response:
    try:
        response = requests.get(url, timeout=_HTTP_TIMEOUT, **kwargs)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"Request to {url} failed: {exc}") from exc
    return response


def latest_revision(platform) -> str:
    """Ask the snapshot server for the newest revision on ``platform``."""
    platform = _check_platform(platform)
    url = f"{DEFAULT_HOST}/chromium-browser-snapshots/{_SNAPSHOT_DIRS[platform]}/LAST_CHANGE"
    return _get(url).text.strip()


def get_size(url) -> int:
    """Return the size of the resource at ``url`` in whole MiB."""
    response = _get(url, stream=True)
    try:
        length = response.headers.get("Content-Length")
    finally:
        response.close()
    if length is None:
        raise FetchError("response doesn't include the content length")
    try:
        return int(length) // 2**20
    except ValueError as exc:
        raise FetchError(f"Invalid content length: {length!r}") from exc


def default_data_dir() -> Path:
    """Return the per-user data directory where builds are installed."""
    logger.info("Getting project dir")
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def _walk(root: Path) -> Iterator[Path]:
    """Yield ``root`` and everything below it, depth first, skipping errors."""
    if not root.exists():
        return
    yield root
    if not root.is_dir() or root.is_symlink():
        return
    try:
        children = sorted(root.iterdir())
    except OSError:
        return
    for child in children:
        yield from _walk(child)


class Fetcher:
    """Finds an installed Chromium build, downloading it when allowed."""

    def __init__(self, options=None):
        self.options = options if options is not None else FetcherOptions()
        self.platform = _check_platform(self.options.platform or current_platform())

    def fetch(self) -> Path:
        """Return the path of the Chromium executable, installing it if needed."""
        revision = self.options.revision
        rev = latest_revision(self.platform) if revision.is_latest else revision.value

        try:
            return self._chrome_path(rev)
        except FetchError:
            pass

        if self.options.allow_download:
            zip_path = self._download(rev)
            self._unzip(zip_path)
            return self._chrome_path(rev)

        raise FetchError("Could not fetch")

    def _search_dirs(self) -> list[Path]:
        dirs = []
        if self.options.install_dir is not None:
            dirs.append(self.options.install_dir)
        if self.options.allow_standard_dirs:
            dirs.append(default_data_dir())
        return dirs

    def _base_path(self, revision: str) -> Path:
        for root in self._search_dirs():
            for entry in _walk(root):
                parts = entry.name.split("-")
                if len(parts) == 2 and parts[0] == self.platform and parts[1] == revision:
                    return entry
        raise FetchError("Could not find an existing revision")

    def _chrome_path(self, revision: str) -> Path:
        path = self._base_path(revision) / archive_name(revision, self.platform)
        return path.joinpath(*_EXECUTABLE_PARTS[self.platform])

    def _download(self, revision: str) -> Path:
        url = download_url(revision, self.platform)
        logger.info("Chrome download url: %s", url)
        total = get_size(url)
        logger.info("Total size of download: %s MiB", total)

        folder = f"{self.platform}-{revision}"
        if self.options.install_dir is not None:
            path = self.options.install_dir / folder
        elif self.options.allow_standard_dirs:
            path = default_data_dir() / folder
        else:
            raise FetchError("No allowed installation directory")
        path = path.with_name(path.name + ".zip")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FetchError(f"Could not create directory at {path.parent}") from exc

        logger.info("Creating file for download: %s", path)
        response = _get(url, stream=True)
        with response, path.open("wb") as out:
            for chunk in response.iter_content(chunk_size=1 << 16):
                out.write(chunk)
        return path

    def _extract(self, zip_path: Path, extract_path: Path) -> None:
        if self.platform in ("mac", "mac_arm"):
            # The system tool keeps the symlinks inside the app bundle intact.
            try:
                out = subprocess.run(
                    ["unzip", str(zip_path)],
                    cwd=extract_path,
                    capture_output=True,
                    check=False,
                )
            except OSError as exc:
                raise FetchError(f"Could not run unzip: {exc}") from exc
            if out.returncode != 0:
                logger.error(
                    "Unable to extract zip using unzip command: \n---- stdout:\n%s\n---- stderr:\n%s",
                    out.stdout.decode(errors="replace"),
                    out.stderr.decode(errors="replace"),
                )
            return

        with zipfile.ZipFile(zip_path) as archive:
            for info in archive.infolist():
                if info.comment:
                    logger.debug("File %s comment: %s", info.filename, info.comment)
                target = archive.extract(info, extract_path)
                logger.debug("File %s extracted to %s", info.filename, target)
                mode = info.external_attr >> 16
                if mode and os.name == "posix":
                    os.chmod(target, mode & 0o7777)

    def _unzip(self, zip_path: Path) -> Path:
        extract_path = zip_path.parent / zip_path.stem
        extract_path.mkdir(parents=True, exist_ok=True)
        logger.info("Extracting (this can take a while): %s", extract_path)
        self._extract(zip_path, extract_path)

        logger.info("Cleaning up")
        try:
            zip_path.unlink()
        except OSError:
            logger.info("Failed to delete zip")
        return extract_path