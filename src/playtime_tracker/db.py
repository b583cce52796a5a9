"""SQLite database layer for playtime buckets and lifecycle events."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

from .models import BackupGroup, EventKind, EventRecord, bucket_of


def open_database(path: Path | str, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path | str, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements atomically.

    Joins the surrounding transaction when one is already open.
    """
    if conn.in_transaction:
        yield conn
        return
    conn.execute("BEGIN")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        # A failed COMMIT can leave the transaction open.
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS objects (
            object_id INTEGER PRIMARY KEY,
            app_id INTEGER UNIQUE NOT NULL,
            alias TEXT
        );

        CREATE TABLE IF NOT EXISTS timeline (
            bucket INTEGER NOT NULL,
            object_id INTEGER NOT NULL,
            value INTEGER NOT NULL,
            PRIMARY KEY (bucket, object_id),
            FOREIGN KEY (object_id) REFERENCES objects (object_id)
        );

        CREATE TABLE IF NOT EXISTS events (
            timestamp INTEGER NOT NULL,
            object_id INTEGER NOT NULL,
            event_kind INTEGER NOT NULL,
            FOREIGN KEY (object_id) REFERENCES objects (object_id)
        );

        CREATE TABLE IF NOT EXISTS backup_groups (
            backup_id INTEGER PRIMARY KEY,
            start_ts INTEGER NOT NULL,
            end_ts INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS backup_events (
            backup_id INTEGER NOT NULL,
            timestamp INTEGER NOT NULL,
            object_id INTEGER NOT NULL,
            event_kind INTEGER NOT NULL,
            FOREIGN KEY (backup_id) REFERENCES backup_groups (backup_id),
            FOREIGN KEY (object_id) REFERENCES objects (object_id)
        );

        CREATE INDEX IF NOT EXISTS idx_events_timestamp
            ON events(timestamp);
        CREATE INDEX IF NOT EXISTS idx_events_kind
            ON events(event_kind);
        """
    )


def get_or_create_object(conn: sqlite3.Connection, app_id: int) -> int:
    """Return the object id for ``app_id``, inserting a new object if needed."""
    row = conn.execute(
        "SELECT object_id FROM objects WHERE app_id = ?", (app_id,)
    ).fetchone()
    if row is not None:
        return int(row["object_id"])
    cur = conn.execute("INSERT INTO objects (app_id) VALUES (?)", (app_id,))
    return int(cur.lastrowid)


def set_alias(conn: sqlite3.Connection, app_id: int, alias: Optional[str]) -> None:
    cur = conn.execute(
        "UPDATE objects SET alias = ? WHERE app_id = ?", (alias, app_id)
    )
    if cur.rowcount == 0:
        raise ValueError(f"No app found for app_id={app_id}")


def upsert_bucket_values(
    conn: sqlite3.Connection, bucket: int, values: Mapping[int, int]
) -> None:
    """Replace stored values for ``bucket`` keyed by object id."""
    conn.executemany(
        "INSERT OR REPLACE INTO timeline (bucket, object_id, value) VALUES (?, ?, ?)",
        [(bucket, object_id, value) for object_id, value in values.items()],
    )


def fetch_bucket_values(conn: sqlite3.Connection, bucket: int) -> dict[int, int]:
    """Return ``app_id -> value`` for every object stored in ``bucket``."""
    rows = conn.execute(
        """
        SELECT objects.app_id, timeline.value
        FROM timeline
        JOIN objects ON objects.object_id = timeline.object_id
        WHERE timeline.bucket = ?
        """,
        (bucket,),
    )
    return {int(row["app_id"]): int(row["value"]) for row in rows}


def insert_events(
    conn: sqlite3.Connection,
    timestamp: int,
    object_ids: Iterable[int],
    kind: EventKind,
) -> None:
    conn.executemany(
        "INSERT INTO events (timestamp, object_id, event_kind) VALUES (?, ?, ?)",
        [(timestamp, object_id, kind.code) for object_id in object_ids],
    )


def delete_events_of_kind(conn: sqlite3.Connection, kind: EventKind) -> int:
    cur = conn.execute("DELETE FROM events WHERE event_kind = ?", (kind.code,))
    return cur.rowcount


def count_events_of_kind(conn: sqlite3.Connection, kind: EventKind) -> int:
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM events WHERE event_kind = ?", (kind.code,)
    ).fetchone()
    return int(row["n"])


def rewrite_events_kind(
    conn: sqlite3.Connection, old: EventKind, new: EventKind
) -> int:
    """Rewrite every live ``old`` row to ``new`` in place."""
    cur = conn.execute(
        "UPDATE events SET event_kind = ? WHERE event_kind = ?", (new.code, old.code)
    )
    return cur.rowcount


def latest_event_timestamp(conn: sqlite3.Connection) -> Optional[int]:
    row = conn.execute("SELECT MAX(timestamp) AS ts FROM events").fetchone()
    return None if row["ts"] is None else int(row["ts"])


def quarantine_events_after(
    conn: sqlite3.Connection, start_ts: int, end_ts: int
) -> tuple[int, int]:
    """Move live events newer than ``start_ts`` into a new backup group.

    Returns ``(backup_id, moved_count)``. Row order is preserved.
    """
    cur = conn.execute(
        "INSERT INTO backup_groups (start_ts, end_ts) VALUES (?, ?)",
        (start_ts, end_ts),
    )
    backup_id = int(cur.lastrowid)
    conn.execute(
        """
        INSERT INTO backup_events (backup_id, timestamp, object_id, event_kind)
        SELECT ?, timestamp, object_id, event_kind
        FROM events
        WHERE timestamp > ?
        ORDER BY rowid
        """,
        (backup_id, start_ts),
    )
    cur = conn.execute("DELETE FROM events WHERE timestamp > ?", (start_ts,))
    return backup_id, cur.rowcount


def fetch_totals(
    conn: sqlite3.Connection, start_ts: float, end_ts: float
) -> list[sqlite3.Row]:
    """Return total seconds per app for buckets overlapping ``[start_ts, end_ts)``."""
    return list(
        conn.execute(
            """
            SELECT
                objects.app_id,
                objects.alias,
                SUM(timeline.value) AS seconds
            FROM timeline
            JOIN objects ON objects.object_id = timeline.object_id
            WHERE timeline.bucket >= ? AND timeline.bucket < ?
            GROUP BY objects.app_id, objects.alias
            ORDER BY seconds DESC;
            """,
            (bucket_of(start_ts), bucket_of(end_ts)),
        )
    )


def _row_to_event(row: sqlite3.Row) -> EventRecord:
    return EventRecord(
        timestamp=int(row["timestamp"]),
        app_id=int(row["app_id"]),
        kind=EventKind.from_code(int(row["event_kind"])),
        alias=row["alias"],
    )


def fetch_events(
    conn: sqlite3.Connection,
    start_ts: Optional[float] = None,
    end_ts: Optional[float] = None,
) -> list[EventRecord]:
    """Fetch live journal rows, optionally limited to ``[start_ts, end_ts)``."""
    clauses: list[str] = []
    params: list[object] = []
    if start_ts is not None:
        clauses.append("events.timestamp >= ?")
        params.append(int(start_ts))
    if end_ts is not None:
        clauses.append("events.timestamp < ?")
        params.append(int(end_ts))
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"""
        SELECT events.timestamp, events.event_kind, objects.app_id, objects.alias
        FROM events
        JOIN objects ON objects.object_id = events.object_id
        {where}
        ORDER BY events.timestamp, events.rowid
        """,
        params,
    )
    return [_row_to_event(row) for row in rows]


def fetch_running(conn: sqlite3.Connection) -> list[EventRecord]:
    """Return the live heartbeat snapshot."""
    rows = conn.execute(
        """
        SELECT events.timestamp, events.event_kind, objects.app_id, objects.alias
        FROM events
        JOIN objects ON objects.object_id = events.object_id
        WHERE events.event_kind = ?
        ORDER BY objects.app_id
        """,
        (EventKind.RUNNING.code,),
    )
    return [_row_to_event(row) for row in rows]


def fetch_backup_groups(conn: sqlite3.Connection) -> list[BackupGroup]:
    rows = conn.execute(
        """
        SELECT
            backup_groups.backup_id,
            backup_groups.start_ts,
            backup_groups.end_ts,
            COUNT(backup_events.rowid) AS event_count
        FROM backup_groups
        LEFT JOIN backup_events ON backup_events.backup_id = backup_groups.backup_id
        GROUP BY backup_groups.backup_id
        ORDER BY backup_groups.backup_id
        """
    )
    return [
        BackupGroup(
            backup_id=int(row["backup_id"]),
            start_ts=int(row["start_ts"]),
            end_ts=int(row["end_ts"]),
            event_count=int(row["event_count"]),
        )
        for row in rows
    ]


def fetch_backup_events(conn: sqlite3.Connection, backup_id: int) -> list[EventRecord]:
    rows = conn.execute(
        """
        SELECT
            backup_events.timestamp,
            backup_events.event_kind,
            objects.app_id,
            objects.alias
        FROM backup_events
        JOIN objects ON objects.object_id = backup_events.object_id
        WHERE backup_events.backup_id = ?
        ORDER BY backup_events.rowid
        """,
        (backup_id,),
    )
    return [_row_to_event(row) for row in rows]
