"""Pytest fixtures for playtime tracker tests."""

from pathlib import Path

import pytest

# 2023-11-14 22:00:00 UTC, the start of hour bucket 472222.
HOUR_START = 1_699_999_200


class FakeObserver:
    """Observer whose running apps are set directly by the test."""

    def __init__(self, apps=()):
        self.apps = set(apps)

    def running_apps(self):
        return set(self.apps)


class ManualClock:
    """Clock that only moves when the test says so."""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def db_path(tmp_path) -> Path:
    """Path to a fresh SQLite database inside pytest's temporary directory."""
    return tmp_path / "playtime.sqlite3"


@pytest.fixture
def hour_start() -> int:
    return HOUR_START


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()


@pytest.fixture
def clock(hour_start) -> ManualClock:
    return ManualClock(hour_start + 600)
