"""Playtime tracker: drives sampling and persistence from aligned timers."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from .config import TrackerSettings
from .ledger import PlaytimeLedger
from .models import EventKind
from .schedule import AlignedScheduler
from .suspend import SuspendDetector

logger = logging.getLogger(__name__)


class AppObserver(Protocol):
    def running_apps(self) -> set[int]: ...


class PlaytimeTracker:
    """Owns the ledger and dispatches scheduler ticks to it.

    Timers fire in registration order: commit, then sample, then the suspend
    check. A commit therefore only ever sees updates from earlier ticks.
    """

    def __init__(
        self,
        db_path: Path,
        settings: TrackerSettings,
        observer: Optional[AppObserver] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings
        if observer is None:
            from .discovery import LauncherObserver

            observer = LauncherObserver(settings.launcher_name)
        self._observer = observer
        self._clock = clock
        self._suspend = SuspendDetector(settings.suspend_threshold)
        now = clock()
        self.ledger = PlaytimeLedger.open(self.db_path, now)
        self.scheduler = AlignedScheduler.build(
            [
                (settings.commit_interval.total_seconds(), self.commit),
                (settings.update_interval.total_seconds(), self.sample),
                (settings.update_interval.total_seconds(), self.check_suspend),
            ],
            now,
        )
        self._stopped = False
        self._sampled_running: frozenset[int] = frozenset()

    def commit(self, now: float) -> None:
        self.ledger.commit(now)

    def sample(self, now: float) -> None:
        observed = self._observer.running_apps()
        running = self.ledger.running_apps()
        # Apps that were running up to this sample; a suspend found later in
        # the same tick happened while exactly these were open.
        self._sampled_running = running
        for app_id in sorted(observed - running):
            self.ledger.event(now, app_id, EventKind.STARTED)
        for app_id in sorted(running - observed):
            self.ledger.event(now, app_id, EventKind.STOPPED)
        for app_id in observed:
            self.ledger.update(app_id, self.settings.update_seconds)
        if observed:
            logger.debug("Sampled running apps: %s", sorted(observed))

    def check_suspend(self, now: float) -> None:
        gap = self._suspend.observe(now)
        if gap is None:
            return
        self.ledger.event(
            gap.suspended_at,
            None,
            EventKind.SUSPENDED,
            observed_at=now,
            apps=self._sampled_running,
        )
        self.ledger.event(gap.resumed_at, None, EventKind.RESUMED)

    def tick(self, now: float) -> None:
        self.scheduler.tick(now)

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Tracker interrupted; flushing ledger.")
        finally:
            self.shutdown()

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the tracker until the provided event is set."""
        try:
            self._run_loop(stop_event)
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Flush the ledger and close the store. Safe to call more than once."""
        if self._stopped:
            return
        self._stopped = True
        try:
            self.ledger.flush(self._clock())
        finally:
            self.ledger.close()
            logger.info("Tracker stopped.")

    def _run_loop(self, stop_event: threading.Event) -> None:
        logger.info("Starting tracker; writing to %s", self.db_path)
        while not stop_event.is_set():
            now = self._sleep_until(self.scheduler.next_deadline(), stop_event)
            if stop_event.is_set():
                break
            self.tick(now)

    def _sleep_until(self, deadline: float, stop_event: threading.Event) -> float:
        poll = self.settings.poll_interval.total_seconds()
        while True:
            now = self._clock()
            if now >= deadline or stop_event.is_set():
                return now
            # Sleep in bounded slices so cancellation is noticed promptly.
            stop_event.wait(min(deadline - now, poll))
