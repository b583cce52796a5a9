"""Tests for launcher child discovery."""

import psutil
import pytest

from playtime_tracker import discovery
from playtime_tracker.discovery import LauncherObserver, parse_app_id


@pytest.mark.parametrize(
    "cmdline, expected",
    [
        (["/bin/reaper", "SteamLaunch", "AppId=1245620", "--", "game.exe"], 1245620),
        (["reaper SteamLaunch AppId=730 -- csgo"], 730),
        (["/usr/bin/python3", "script.py"], None),
        (["AppId=notanumber"], None),
        (["AppId="], None),
        ([], None),
    ],
)
def test_parse_app_id(cmdline, expected):
    assert parse_app_id(cmdline) == expected


class FakeProcess:
    def __init__(self, pid, name="", cmdline=(), children=(), error=None):
        self.pid = pid
        self.info = {"name": name}
        self._cmdline = list(cmdline)
        self._children = list(children)
        self._error = error
        self.alive = True

    def cmdline(self):
        if self._error is not None:
            raise self._error
        return self._cmdline

    def children(self):
        if not self.alive:
            raise psutil.NoSuchProcess(self.pid)
        return self._children

    def is_running(self):
        return self.alive


def _install(monkeypatch, processes):
    monkeypatch.setattr(discovery.psutil, "process_iter", lambda attrs=None: iter(processes))


def test_running_apps_lists_launcher_children(monkeypatch):
    launcher = FakeProcess(
        100,
        name="steam",
        children=[
            FakeProcess(101, cmdline=["reaper", "AppId=730"]),
            FakeProcess(102, cmdline=["reaper", "AppId=730"]),
            FakeProcess(103, cmdline=["reaper", "AppId=570"]),
            FakeProcess(104, cmdline=["steamwebhelper"]),
            FakeProcess(105, error=psutil.AccessDenied(105)),
        ],
    )
    _install(monkeypatch, [FakeProcess(1, name="init"), launcher])

    assert LauncherObserver("steam").running_apps() == {730, 570}


def test_missing_launcher_reports_nothing(monkeypatch):
    _install(monkeypatch, [FakeProcess(1, name="init")])
    assert LauncherObserver("steam").running_apps() == set()


def test_launcher_exit_resets_cached_process(monkeypatch):
    launcher = FakeProcess(100, name="steam", children=[FakeProcess(101, cmdline=["AppId=1"])])
    _install(monkeypatch, [launcher])
    observer = LauncherObserver("steam")
    assert observer.running_apps() == {1}

    launcher.alive = False
    _install(monkeypatch, [])
    assert observer.running_apps() == set()

    replacement = FakeProcess(200, name="steam", children=[FakeProcess(201, cmdline=["AppId=2"])])
    _install(monkeypatch, [replacement])
    assert observer.running_apps() == {2}
