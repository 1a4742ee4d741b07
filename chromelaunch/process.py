"""Launch a Chrome process and discover its DevTools WebSocket URL."""

from __future__ import annotations

import logging
import os
import queue
import random
import re
import socket
import subprocess
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .fetcher import Fetcher, FetcherOptions
from .locate import default_executable

logger = logging.getLogger(__name__)

DEFAULT_ARGS = (
    "--disable-background-networking",
    "--enable-features=NetworkService,NetworkServiceInProcess",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    # BlinkGenPropertyTrees disabled due to crbug.com/937609
    "--disable-features=TranslateUI,BlinkGenPropertyTrees",
    "--disable-hang-monitor",
    "--disable-ipc-flooding-protection",
    "--disable-popup-blocking",
    "--disable-prompt-on-repost",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--force-color-profile=srgb",
    "--metrics-recording-only",
    "--no-first-run",
    "--enable-automation",
    "--password-store=basic",
    "--use-mock-keychain",
)

PORT_RANGE = range(8000, 9000)
MAX_LAUNCH_ATTEMPTS = 10
_WS_URL_TIMEOUT = 30.0
_PROFILE_PREFIX = "headless-chrome-profile"

_PORT_TAKEN_RE = re.compile(r"ERROR.*bind\(\)")
_WS_URL_RE = re.compile(r"listening on (.*/devtools/browser/.*)$")


class ChromeLaunchError(Exception):
    """Base class for failures while starting Chrome."""

    default_message = "Chrome failed to launch"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class PortOpenTimeout(ChromeLaunchError):
    default_message = (
        "Chrome launched, but didn't give us a WebSocket URL before we timed out"
    )


class NoAvailablePorts(ChromeLaunchError):
    default_message = "There are no available ports between 8000 and 9000 for debugging"


class DebugPortInUse(ChromeLaunchError):
    default_message = "The chosen debugging port is already in use"


@dataclass
class LaunchOptions:
    """How Chrome is started.

    When ``path`` is None, the browser is downloaded through ``fetcher_options``
    if those are given, and otherwise searched for on the system.
    """

    headless: bool = True
    sandbox: bool = True
    enable_logging: bool = False
    window_size: tuple[int, int] | None = None
    port: int | None = None
    ignore_certificate_errors: bool = True
    path: Path | None = None
    user_data_dir: Path | None = None
    extensions: list = field(default_factory=list)
    args: list = field(default_factory=list)
    disable_default_args: bool = False
    fetcher_options: FetcherOptions | None = None
    idle_browser_timeout: float = 30.0
    process_envs: dict[str, str] | None = None
    proxy_server: str | None = None

    def __post_init__(self) -> None:
        if self.path is not None:
            self.path = Path(self.path)
        if self.user_data_dir is not None:
            self.user_data_dir = Path(self.user_data_dir)


def build_args(options, port, user_data_dir) -> list[str]:
    """Return the command-line arguments Chrome is started with."""
    args = [
        f"--remote-debugging-port={port}",
        "--disable-gpu",
        "--verbose",
        "--log-level=0",
        "--no-first-run",
        "--disable-audio-output",
        f"--user-data-dir={os.fspath(user_data_dir)}",
    ]
    if not options.disable_default_args:
        args.extend(DEFAULT_ARGS)
    args.extend(os.fspath(arg) for arg in options.args)
    if options.window_size is not None:
        width, height = options.window_size
        args.append(f"--window-size={width},{height}")
    if options.headless:
        args.append("--headless")
    if options.ignore_certificate_errors:
        args.append("--ignore-certificate-errors")
    if options.enable_logging:
        args.append("--enable-logging")
    if options.proxy_server:
        args.append(f"--proxy-server={options.proxy_server}")
    if not options.sandbox:
        args.extend(["--no-sandbox", "--disable-setuid-sandbox"])
    args.extend(f"--load-extension={os.fspath(ext)}" for ext in options.extensions)
    return args


def ws_url_from_lines(lines: Iterable[str]) -> str | None:
    """Scan Chrome's stderr lines for the DevTools URL.

    Returns None if the lines run out first; raises DebugPortInUse if Chrome
    reports that it could not bind its debugging port.
    """
    for line in lines:
        line = line.rstrip("\r\n")
        logger.debug("Chrome output: %s", line)
        if _PORT_TAKEN_RE.search(line):
            raise DebugPortInUse()
        match = _WS_URL_RE.search(line)
        if match:
            return match.group(1)
    return None


def port_is_available(port) -> bool:
    """Return True if ``port`` can be bound on 127.0.0.1."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


def get_available_port() -> int | None:
    """Return a random free port in 8000..8999, or None if none is free."""
    ports = list(PORT_RANGE)
    random.shuffle(ports)
    return next((port for port in ports if port_is_available(port)), None)


class _ChildProcess:
    """A running Chrome with its stderr reader and optional temporary profile."""

    def __init__(self, popen: subprocess.Popen, tempdir, user_data_dir: Path):
        self.popen = popen
        self.tempdir = tempdir
        self.user_data_dir = user_data_dir
        self._results: queue.Queue = queue.Queue()
        self._reader = threading.Thread(target=self._pump, daemon=True)
        self._reader.start()

    def _pump(self) -> None:
        lines = iter(self.popen.stderr)
        try:
            self._results.put((ws_url_from_lines(lines), None))
        except ChromeLaunchError as exc:
            self._results.put((None, exc))
        except (OSError, ValueError):
            self._results.put((None, None))
            return
        # Keep draining so Chrome never blocks on a full pipe.
        try:
            for _ in lines:
                pass
        except (OSError, ValueError):
            pass

    def wait_for_ws_url(self) -> str:
        try:
            url, error = self._results.get(timeout=_WS_URL_TIMEOUT)
        except queue.Empty:
            raise PortOpenTimeout() from None
        if error is not None:
            raise error
        if url is None:
            raise PortOpenTimeout()
        return url

    def kill(self) -> None:
        logger.info("Killing Chrome. PID: %s", self.popen.pid)
        try:
            self.popen.kill()
        except OSError:
            pass
        self.popen.wait()
        self._reader.join(timeout=1.0)
        if self.popen.stderr is not None:
            try:
                self.popen.stderr.close()
            except OSError:
                pass
        if self.tempdir is not None:
            try:
                self.tempdir.cleanup()
            except OSError as exc:
                logger.warning("Failed to close temporary directory: %s", exc)
            self.tempdir = None


def _start_process(options: LaunchOptions, path: Path) -> _ChildProcess:
    if options.port is not None:
        port = options.port
    else:
        port = get_available_port()
        if port is None:
            raise NoAvailablePorts()

    tempdir = None
    if options.user_data_dir is not None:
        user_data_dir = options.user_data_dir
    else:
        # A fresh profile makes Chrome start a new instance instead of reusing one.
        tempdir = tempfile.TemporaryDirectory(
            prefix=_PROFILE_PREFIX, ignore_cleanup_errors=True
        )
        user_data_dir = Path(tempdir.name)
    logger.debug("Chrome will have profile: %s", user_data_dir)

    args = build_args(options, port, user_data_dir)
    logger.info("Launching Chrome binary at %s", path)
    logger.debug("with CLI arguments: %s", args)

    env = None
    if options.process_envs is not None:
        env = {**os.environ, **options.process_envs}

    try:
        popen = subprocess.Popen(
            [os.fspath(path), *args],
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            env=env,
        )
    except OSError:
        if tempdir is not None:
            tempdir.cleanup()
        raise
    return _ChildProcess(popen, tempdir, user_data_dir)


def _resolve_path(options: LaunchOptions) -> Path:
    if options.path is not None:
        return options.path
    if options.fetcher_options is not None:
        return Fetcher(options.fetcher_options).fetch()
    return default_executable()


class ChromeProcess:
    """A Chrome process started with a DevTools debugging port.

    The process is killed, and any temporary profile removed, on ``close``.
    """

    def __init__(self, options=None):
        options = options if options is not None else LaunchOptions()
        self.options = options
        path = _resolve_path(options)

        child = _start_process(options, path)
        logger.info("Started Chrome. PID: %s", child.popen.pid)

        attempts = 0
        while True:
            if attempts > MAX_LAUNCH_ATTEMPTS:
                child.kill()
                raise NoAvailablePorts()
            try:
                url = child.wait_for_ws_url()
                logger.debug("Found debugging WS URL: %s", url)
                break
            except ChromeLaunchError as exc:
                logger.debug("Problem getting WebSocket URL from Chrome: %s", exc)
                child.kill()
                if options.port is not None:
                    raise
                child = _start_process(options, path)
            attempts += 1
            logger.debug(
                "Trying again to find available debugging port. Attempts: %s", attempts
            )

        self._child: _ChildProcess | None = child
        self.debug_ws_url: str = url
        self.user_data_dir: Path = child.user_data_dir
        self._pid = child.popen.pid

    @property
    def pid(self) -> int:
        """The operating-system id of the Chrome process."""
        return self._pid

    def close(self) -> None:
        """Kill Chrome and remove its temporary profile, if any."""
        child, self._child = self._child, None
        if child is not None:
            child.kill()

    def __enter__(self) -> ChromeProcess:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_child", None) is not None:
            try:
                self.close()
            except Exception:
                pass