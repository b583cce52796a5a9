"""Discovery of applications launched by the launcher process."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import psutil

logger = logging.getLogger(__name__)

APP_ID_MARKER = "AppId="


def parse_app_id(cmdline: Iterable[str]) -> Optional[int]:
    """Extract the integer following ``AppId=`` from a process command line."""
    for arg in cmdline:
        pos = arg.find(APP_ID_MARKER)
        if pos < 0:
            continue
        value = arg[pos + len(APP_ID_MARKER):].split(maxsplit=1)
        try:
            return int(value[0]) if value else None
        except ValueError:
            return None
    return None


class LauncherObserver:
    """Lists app ids of the launcher's child processes using psutil."""

    def __init__(self, launcher_name: str = "steam") -> None:
        self.launcher_name = launcher_name
        self._launcher: Optional[psutil.Process] = None

    def running_apps(self) -> set[int]:
        launcher = self._find_launcher()
        if launcher is None:
            return set()
        try:
            children = launcher.children()
        except psutil.NoSuchProcess:
            logger.info("%s pid not found", self.launcher_name)
            self._launcher = None
            return set()

        apps: set[int] = set()
        for child in children:
            try:
                app_id = parse_app_id(child.cmdline())
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
            if app_id is not None:
                apps.add(app_id)
        return apps

    def _find_launcher(self) -> Optional[psutil.Process]:
        if self._launcher is not None and self._launcher.is_running():
            return self._launcher
        self._launcher = None
        for proc in psutil.process_iter(["name"]):
            if proc.info.get("name") == self.launcher_name:
                self._launcher = proc
                logger.info("%s pid = %s", self.launcher_name, proc.pid)
                break
        return self._launcher
