"""Write-back playtime ledger over the SQLite store."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from . import db
from .models import EventKind, bucket_of

logger = logging.getLogger(__name__)


class LedgerError(RuntimeError):
    """Raised when the ledger is used after it has been flushed or closed."""


class PlaytimeLedger:
    """Accumulates per-app active time and journals lifecycle events.

    Active time is buffered in memory for the current hour bucket and written
    back on every :meth:`commit`. The running set tracks which apps are
    between ``STARTED`` and ``STOPPED`` and is the source of truth for the
    ``RUNNING`` heartbeat rows. Every journal write is preceded by a clock
    check: if time moved backwards, events newer than the incoming timestamp
    are moved into a backup group so the live journal never runs ahead of
    the clock.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._cache: dict[int, int] = {}
        self._cache_bucket: Optional[int] = None
        self._object_ids: dict[int, int] = {}
        self._running: set[int] = set()
        self._last_seen: Optional[int] = None
        self._flushed = False
        self._closed = False

    @classmethod
    def open(cls, path: Path | str, now: float) -> "PlaytimeLedger":
        """Open the store, recover from an unclean shutdown and load the cache."""
        conn = db.open_database(path)
        ledger = cls(conn)
        try:
            ledger._recover()
            ledger.commit(now)
        except BaseException:
            conn.close()
            ledger._closed = True
            raise
        logger.info("Opened playtime ledger at %s", path)
        return ledger

    @property
    def last_seen(self) -> Optional[int]:
        return self._last_seen

    @property
    def cache_bucket(self) -> Optional[int]:
        return self._cache_bucket

    def running_apps(self) -> frozenset[int]:
        return frozenset(self._running)

    def update(self, app_id: int, delta: int) -> None:
        """Add ``delta`` seconds of activity for ``app_id`` to the current bucket."""
        if self._flushed:
            logger.warning("Ignoring update for app %s after flush.", app_id)
            return
        logger.debug("update app_id=%s delta=%s", app_id, delta)
        self._cache[app_id] = self._cache.get(app_id, 0) + delta

    def event(
        self,
        timestamp: float,
        app_id: Optional[int],
        kind: EventKind,
        *,
        observed_at: Optional[float] = None,
        apps: Optional[Iterable[int]] = None,
    ) -> None:
        """Record a lifecycle event.

        ``app_id`` is ignored for broadcast kinds, which apply to every running
        app, or to ``apps`` when the caller knows the set that was running at
        ``timestamp``. ``observed_at`` is the wall-clock time of the call when
        it differs from ``timestamp`` (a marker dated in the past).
        """
        self._ensure_open()
        ts = int(timestamp)
        with self._transaction():
            self._validate_timestamp(ts if observed_at is None else int(observed_at))
            if kind.is_heartbeat:
                self._heartbeat(ts)
            elif kind.is_broadcast:
                self._broadcast(ts, kind, apps)
            elif kind is EventKind.STARTED:
                self._start(ts, self._require_app_id(app_id, kind))
            else:
                self._stop(ts, self._require_app_id(app_id, kind))

    def commit(self, timestamp: float) -> None:
        """Persist the cache and refresh the heartbeat.

        When ``timestamp`` falls in a new hour bucket the cache is reloaded
        from storage for that bucket, so a restart mid-hour resumes from the
        last committed value.
        """
        self._ensure_open()
        ts = int(timestamp)
        bucket = bucket_of(ts)
        logger.debug("commit timestamp=%s bucket=%s", ts, bucket)
        with self._transaction():
            self._validate_timestamp(ts)
            self._heartbeat(ts)
            self._write_back()
            if self._cache_bucket != bucket:
                logger.info("Reloading cache for bucket %s", bucket)
                self._cache = db.fetch_bucket_values(self._conn, bucket)
                self._cache_bucket = bucket

    def flush(self, timestamp: float) -> None:
        """Write back the cache and close out every running app.

        Must run exactly once during a graceful shutdown.
        """
        if self._flushed:
            logger.warning("Ledger already flushed; ignoring second flush.")
            return
        self._ensure_open()
        ts = int(timestamp)
        with self._transaction():
            self._validate_timestamp(ts)
            self._write_back()
            db.insert_events(
                self._conn,
                ts,
                [self._object_id(app_id) for app_id in sorted(self._running)],
                EventKind.STOPPED,
            )
            db.delete_events_of_kind(self._conn, EventKind.RUNNING)
        if self._running:
            logger.info("Stopped %d running app(s) on flush.", len(self._running))
        self._running.clear()
        self._flushed = True

    def close(self) -> None:
        if self._closed:
            return
        self._report_unflushed()
        self._conn.close()
        self._closed = True

    def __enter__(self) -> "PlaytimeLedger":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            self._report_unflushed()

    def _report_unflushed(self) -> None:
        if self._running and not self._flushed:
            logger.error(
                "Ledger closed without flush; %d app(s) left running: %s",
                len(self._running),
                sorted(self._running),
            )

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        # Object ids created inside a rolled-back transaction no longer exist.
        try:
            with db.transaction(self._conn):
                yield
        except BaseException:
            self._object_ids.clear()
            raise

    def _ensure_open(self) -> None:
        if self._closed:
            raise LedgerError("Ledger is closed.")
        if self._flushed:
            raise LedgerError("Ledger has been flushed.")

    @staticmethod
    def _require_app_id(app_id: Optional[int], kind: EventKind) -> int:
        if app_id is None:
            raise ValueError(f"{kind.name} events require an app id")
        return app_id

    def _recover(self) -> None:
        with self._transaction():
            converted = db.rewrite_events_kind(
                self._conn, EventKind.RUNNING, EventKind.STOPPED
            )
            self._last_seen = db.latest_event_timestamp(self._conn)
        if converted:
            logger.warning(
                "Previous session ended without flush; closed %d running app(s).",
                converted,
            )

    def _validate_timestamp(self, ts: int) -> None:
        last = self._last_seen
        if last is not None and ts < last:
            backup_id, moved = db.quarantine_events_after(self._conn, ts, last)
            logger.warning(
                "Clock moved backwards from %s to %s; moved %d event(s) to backup %s.",
                last,
                ts,
                moved,
                backup_id,
            )
        self._last_seen = ts

    def _object_id(self, app_id: int) -> int:
        object_id = self._object_ids.get(app_id)
        if object_id is None:
            object_id = db.get_or_create_object(self._conn, app_id)
            self._object_ids[app_id] = object_id
        return object_id

    def _start(self, ts: int, app_id: int) -> None:
        db.insert_events(self._conn, ts, [self._object_id(app_id)], EventKind.STARTED)
        if app_id in self._running:
            logger.warning("App %s started while already running.", app_id)
            return
        self._running.add(app_id)
        logger.info("App %s started.", app_id)

    def _stop(self, ts: int, app_id: int) -> None:
        db.insert_events(self._conn, ts, [self._object_id(app_id)], EventKind.STOPPED)
        if app_id not in self._running:
            logger.warning("App %s stopped while not running.", app_id)
            return
        self._running.discard(app_id)
        logger.info("App %s stopped.", app_id)

    def _heartbeat(self, ts: int) -> None:
        db.delete_events_of_kind(self._conn, EventKind.RUNNING)
        self._broadcast(ts, EventKind.RUNNING)
        written = db.count_events_of_kind(self._conn, EventKind.RUNNING)
        if written != len(self._running):
            logger.warning(
                "Heartbeat wrote %d row(s) for %d running app(s).",
                written,
                len(self._running),
            )

    def _broadcast(
        self, ts: int, kind: EventKind, apps: Optional[Iterable[int]] = None
    ) -> None:
        targets = self._running if apps is None else set(apps)
        db.insert_events(
            self._conn,
            ts,
            [self._object_id(app_id) for app_id in sorted(targets)],
            kind,
        )

    def _write_back(self) -> None:
        if self._cache_bucket is None or not self._cache:
            return
        db.upsert_bucket_values(
            self._conn,
            self._cache_bucket,
            {self._object_id(app_id): value for app_id, value in self._cache.items()},
        )
