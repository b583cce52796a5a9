"""Tests for the SQLite helpers."""

import sqlite3

import pytest

from playtime_tracker import db
from playtime_tracker.models import EventKind


def test_transaction_rolls_back_when_commit_fails(db_path):
    with db.database_connection(db_path) as conn:
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction(conn):
                # Foreign keys are then only checked at COMMIT.
                conn.execute("PRAGMA defer_foreign_keys = ON")
                db.insert_events(conn, 100, [999], EventKind.STARTED)

        assert not conn.in_transaction
        assert db.fetch_events(conn) == []
        assert conn.execute("SELECT COUNT(*) FROM events").fetchone()[0] == 0


def test_transaction_joins_an_open_transaction(db_path):
    with db.database_connection(db_path) as conn:
        conn.execute("BEGIN")
        with db.transaction(conn):
            db.get_or_create_object(conn, 730)
        assert conn.in_transaction
        conn.execute("ROLLBACK")

        assert conn.execute("SELECT COUNT(*) FROM objects").fetchone()[0] == 0
