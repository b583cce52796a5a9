from datetime import datetime

from playtime_tracker.db import database_connection, set_alias
from playtime_tracker.ledger import PlaytimeLedger
from playtime_tracker.models import EventKind
from playtime_tracker.reporting import SummaryPrinter, app_label, format_duration


def test_format_duration():
    assert format_duration(0) == "00:00:00"
    assert format_duration(3725) == "01:02:05"
    assert format_duration(59.6) == "00:01:00"


def test_app_label_prefers_alias():
    assert app_label(730, None) == "730"
    assert app_label(730, "Counter-Strike") == "Counter-Strike (730)"


def test_daily_summary_lists_apps(db_path, hour_start, capsys):
    t = hour_start + 600
    with PlaytimeLedger.open(db_path, t) as ledger:
        ledger.event(t, 730, EventKind.STARTED)
        ledger.update(730, 120)
        ledger.update(570, 30)
        ledger.flush(t + 120)
    with database_connection(db_path) as conn:
        set_alias(conn, 730, "Counter-Strike")

    SummaryPrinter(db_path).print_daily_summary(datetime.fromtimestamp(t))

    out = capsys.readouterr().out
    assert "Total playtime: 00:02:30" in out
    assert "Counter-Strike (730)" in out
    assert out.index("Counter-Strike (730)") < out.index("570")
    assert "Lifecycle events: 2" in out


def test_daily_summary_without_data(db_path, capsys):
    SummaryPrinter(db_path).print_daily_summary(datetime(2020, 1, 1))
    assert "No playtime recorded" in capsys.readouterr().out
