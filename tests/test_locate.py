from pathlib import Path

import pytest

from chromelaunch import locate
from chromelaunch.locate import ExecutableNotFound, default_executable


def _fake_which(mapping):
    def which(name, *args, **kwargs):
        return mapping.get(name)

    return which


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("CHROME", raising=False)
    monkeypatch.setattr(locate.shutil, "which", _fake_which({}))
    return monkeypatch


def test_env_var_pointing_to_existing_file_wins(clean_env, tmp_path):
    exe = tmp_path / "my-chrome"
    exe.write_text("")
    clean_env.setenv("CHROME", str(exe))
    clean_env.setattr(locate.shutil, "which", _fake_which({"chromium": "/usr/bin/chromium"}))
    assert default_executable() == exe


def test_env_var_to_missing_file_is_ignored(clean_env, tmp_path):
    clean_env.setenv("CHROME", str(tmp_path / "missing"))
    clean_env.setattr(locate.shutil, "which", _fake_which({"chromium": "/opt/bin/chromium"}))
    assert default_executable() == Path("/opt/bin/chromium")


def test_names_are_tried_in_order(clean_env):
    clean_env.setattr(
        locate.shutil,
        "which",
        _fake_which(
            {
                "chrome": "/b/chrome",
                "chromium": "/a/chromium",
                "google-chrome-stable": "/c/google-chrome-stable",
            }
        ),
    )
    assert default_executable() == Path("/c/google-chrome-stable")


def test_chromium_preferred_over_edge(clean_env):
    clean_env.setattr(
        locate.shutil,
        "which",
        _fake_which({"msedge": "/x/msedge", "chromium-browser": "/x/chromium-browser"}),
    )
    assert default_executable() == Path("/x/chromium-browser")


def test_edge_stable_preferred_over_generic_chrome(clean_env):
    clean_env.setattr(
        locate.shutil,
        "which",
        _fake_which({"chrome": "/y/chrome", "microsoft-edge-stable": "/y/edge"}),
    )
    assert default_executable() == Path("/y/edge")


def test_plain_microsoft_edge_name_is_found(clean_env):
    clean_env.setattr(locate.sys, "platform", "linux")
    clean_env.setattr(
        locate.shutil, "which", _fake_which({"microsoft-edge": "/z/microsoft-edge"})
    )
    assert default_executable() == Path("/z/microsoft-edge")


def test_not_found_raises_with_message(clean_env):
    clean_env.setattr(locate.sys, "platform", "linux")
    with pytest.raises(ExecutableNotFound, match="Could not auto detect a chrome executable"):
        default_executable()


def test_macos_application_paths(clean_env):
    clean_env.setattr(locate.sys, "platform", "darwin")
    target = "/Applications/Chromium.app/Contents/MacOS/Chromium"
    clean_env.setattr(locate.os.path, "exists", lambda p: str(p) == target)
    assert default_executable() == Path(target)


def test_macos_stable_chrome_preferred(clean_env):
    clean_env.setattr(locate.sys, "platform", "darwin")
    clean_env.setattr(locate.os.path, "exists", lambda p: str(p).startswith("/Applications/"))
    assert default_executable() == Path(
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    )


def test_macos_paths_not_used_on_linux(clean_env):
    clean_env.setattr(locate.sys, "platform", "linux")
    clean_env.setattr(locate.os.path, "exists", lambda p: True)
    with pytest.raises(ExecutableNotFound):
        default_executable()


def test_windows_without_registry_entry_raises(clean_env):
    clean_env.setattr(locate.sys, "platform", "win32")
    clean_env.setattr(locate.os.path, "exists", lambda p: False)
    with pytest.raises(ExecutableNotFound):
        default_executable()