"""FastAPI application that exposes a local API for recorded playtime."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .config import TrackerSettings
from .db import (
    database_connection,
    fetch_backup_events,
    fetch_backup_groups,
    fetch_events,
    fetch_running,
    fetch_totals,
    set_alias,
)
from .models import EventRecord
from .paths import get_db_path
from .reporting import app_label, day_bounds
from .tracker import PlaytimeTracker

logger = logging.getLogger(__name__)


class TrackerRunner:
    """Manage the playtime tracker in a background thread."""

    def __init__(self, db_path: Path, settings: TrackerSettings) -> None:
        self._db_path = Path(db_path)
        self._settings = settings
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_tracker,
                args=(self._db_path, self._settings, stop_event),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Tracker background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Tracker background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    @staticmethod
    def _run_tracker(
        db_path: Path, settings: TrackerSettings, stop_event: threading.Event
    ) -> None:
        # The ledger's connection must be created on the thread that uses it.
        tracker = PlaytimeTracker(db_path=db_path, settings=settings)
        tracker.run_until_stopped(stop_event)


class AliasPayload(BaseModel):
    alias: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    run_tracker: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or TrackerSettings()
    runner = TrackerRunner(resolved_db_path, resolved_settings)

    app = FastAPI(title="Playtime Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.tracker_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        if run_tracker:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "tracker_running": request.app.state.tracker_runner.is_running(),
            "database_path": str(request.app.state.db_path),
            "update_seconds": resolved_settings.update_interval.total_seconds(),
            "commit_seconds": resolved_settings.commit_interval.total_seconds(),
            "launcher": resolved_settings.launcher_name,
        }

    @app.get("/api/summary")
    def summary(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        start, end = day_bounds(_parse_date(date))
        with database_connection(request.app.state.db_path) as conn:
            rows = fetch_totals(conn, start.timestamp(), end.timestamp())
        return {
            "date": start.strftime("%Y-%m-%d"),
            "total_seconds": sum(int(row["seconds"]) for row in rows),
            "entries": [
                {
                    "app_id": row["app_id"],
                    "alias": row["alias"],
                    "label": app_label(row["app_id"], row["alias"]),
                    "seconds": int(row["seconds"]),
                }
                for row in rows
            ],
        }

    @app.get("/api/events")
    def events(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        start, end = day_bounds(_parse_date(date))
        with database_connection(request.app.state.db_path) as conn:
            records = fetch_events(conn, start.timestamp(), end.timestamp())
        return {
            "date": start.strftime("%Y-%m-%d"),
            "events": [_event_payload(record) for record in records],
        }

    @app.get("/api/running")
    def running(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            records = fetch_running(conn)
        return {"running": [_event_payload(record) for record in records]}

    @app.get("/api/backups")
    def backups(request: Request) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            groups = fetch_backup_groups(conn)
            payload = [
                {
                    "backup_id": group.backup_id,
                    "start": datetime.fromtimestamp(group.start_ts).isoformat(),
                    "end": datetime.fromtimestamp(group.end_ts).isoformat(),
                    "events": [
                        _event_payload(record)
                        for record in fetch_backup_events(conn, group.backup_id)
                    ],
                }
                for group in groups
            ]
        return {"backups": payload}

    @app.put("/api/apps/{app_id}/alias")
    def update_alias(
        app_id: int, payload: AliasPayload, request: Request
    ) -> Dict[str, Any]:
        alias = payload.alias.strip() if payload.alias else None
        with database_connection(request.app.state.db_path) as conn:
            try:
                set_alias(conn, app_id, alias or None)
            except ValueError as exc:
                raise HTTPException(status_code=404, detail="App not found") from exc
        return {"app_id": app_id, "alias": alias or None}

    return app


def _parse_date(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _event_payload(record: EventRecord) -> Dict[str, Any]:
    return {
        "timestamp": datetime.fromtimestamp(record.timestamp).isoformat(),
        "app_id": record.app_id,
        "alias": record.alias,
        "kind": record.kind.value,
    }
