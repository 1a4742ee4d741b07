# chromelaunch

Find, download and launch Chrome or Chromium with its remote debugging
port open, and get back the DevTools WebSocket URL to drive it with.

## Installation

    pip install chromelaunch

## Finding a browser

`chromelaunch.locate.default_executable()` returns the path of an installed
browser. It uses the `CHROME` environment variable first, when it names a
file that exists, then searches your `PATH` for the usual Chrome, Chromium
and Edge program names. On macOS it then checks the standard
`/Applications` bundles, and on Windows the registry entry for
`chrome.exe`. It raises `ExecutableNotFound` when nothing turns up.

```python
from chromelaunch.locate import default_executable

print(default_executable())
```

## Downloading a Chromium snapshot

`chromelaunch.fetcher.Fetcher` looks for an installed Chromium snapshot of a
given revision, first in `install_dir` and then in the per-user data
directory (`default_data_dir()`), and downloads and unpacks it when it is
missing and downloads are allowed. `fetch()` returns the path of the
executable.

```python
from chromelaunch.fetcher import Fetcher, FetcherOptions, Revision

options = FetcherOptions(revision=Revision.latest(), install_dir="./chromium")
chrome_path = Fetcher(options).fetch()
```

`FetcherOptions` fields:

- `revision`: `Revision.specific("...")` or `Revision.latest()`; defaults to
  the built-in revision `CUR_REV`.
- `install_dir`: preferred directory to search and install into.
- `allow_download`: download when no install is found (default `True`).
- `allow_standard_dirs`: also use the per-user data directory (default `True`).
- `platform`: one of `linux`, `mac`, `mac_arm`, `win`; defaults to
  `current_platform()`.

The helpers `archive_name`, `download_url`, `latest_revision` and `get_size`
are available on their own. Problems are reported as `FetchError`.

## Launching

`chromelaunch.process.ChromeProcess` starts the browser, by default with a
temporary profile and a random free debugging port in 8000–8999, and waits
up to 30 seconds for the browser to announce its WebSocket URL. If no port
was given and the launch fails, it retries on another port. Use it as a
context manager so the browser is killed and its temporary profile removed
when you are done.

```python
from chromelaunch.process import ChromeProcess, LaunchOptions

options = LaunchOptions(headless=True, window_size=(1280, 800))
with ChromeProcess(options) as chrome:
    print(chrome.pid, chrome.debug_ws_url, chrome.user_data_dir)
```

When `LaunchOptions.path` is not set, the browser is fetched through
`fetcher_options` if given, and otherwise found with `default_executable()`.
Other options include `sandbox`, `enable_logging`, `port`,
`ignore_certificate_errors`, `user_data_dir`, `extensions`, `args`,
`disable_default_args`, `process_envs` and `proxy_server`.

Launch failures raise a subclass of `ChromeLaunchError`: `PortOpenTimeout`,
`NoAvailablePorts` or `DebugPortInUse`.

`build_args(options, port, user_data_dir)` returns the exact command-line
arguments that would be used, `ws_url_from_lines(lines)` extracts the
WebSocket URL from browser output, and `get_available_port()` and
`port_is_available(port)` check local ports.

## What this package does not do

It only finds, installs and starts the browser and reports its DevTools
WebSocket URL. It does not connect to that URL or speak the DevTools
protocol: there are no tabs, navigation, element lookup, screenshots, PDFs
or event listeners here. Use a separate DevTools client with the URL it
returns.

## Running the tests

    pip install -e ".[test]"
    pytest