from datetime import timedelta

import pytest
from typer.testing import CliRunner

from playtime_tracker.cli import app
from playtime_tracker.config import TrackerSettings
from playtime_tracker.ledger import PlaytimeLedger
from playtime_tracker.models import EventKind

runner = CliRunner()


def test_summary_on_empty_database(db_path):
    result = runner.invoke(app, ["summary", "--db", str(db_path), "--date", "2020-01-01"])
    assert result.exit_code == 0
    assert "No playtime recorded" in result.output


def test_alias_requires_known_app(db_path):
    result = runner.invoke(app, ["alias", "730", "Counter-Strike", "--db", str(db_path)])
    assert result.exit_code == 1


def test_alias_sets_name(db_path, hour_start):
    with PlaytimeLedger.open(db_path, hour_start) as ledger:
        ledger.event(hour_start + 1, 730, EventKind.STARTED)
        ledger.flush(hour_start + 2)

    result = runner.invoke(app, ["alias", "730", "Counter-Strike", "--db", str(db_path)])

    assert result.exit_code == 0
    assert "730 -> Counter-Strike" in result.output


def test_collect_exits_when_database_cannot_be_opened(tmp_path):
    bad_path = tmp_path / "missing" / "playtime.sqlite3"
    result = runner.invoke(app, ["collect", "--db", str(bad_path)])
    assert result.exit_code == 1


def test_settings_from_intervals():
    settings = TrackerSettings.from_intervals(update_seconds=2, commit_seconds=300)
    assert settings.update_interval == timedelta(seconds=2)
    assert settings.commit_interval == timedelta(minutes=5)
    assert settings.suspend_threshold == timedelta(minutes=5)
    assert settings.poll_interval == timedelta(seconds=2)
    assert settings.update_seconds == 2


def test_settings_reject_non_positive_intervals():
    with pytest.raises(ValueError):
        TrackerSettings(update_interval=timedelta(0))


def test_settings_reject_fractional_update_interval():
    with pytest.raises(ValueError):
        TrackerSettings.from_intervals(update_seconds=1.5, commit_seconds=60)


def test_collect_rejects_fractional_update_interval(db_path):
    result = runner.invoke(app, ["collect", "--db", str(db_path), "--update-interval", "1.5"])
    assert result.exit_code != 0
    assert not db_path.exists()


def test_web_serves_api_with_given_settings(db_path, monkeypatch):
    import uvicorn

    served = {}

    def fake_run(api, **kwargs):
        served["api"] = api
        served.update(kwargs)

    monkeypatch.setattr(uvicorn, "run", fake_run)
    result = runner.invoke(
        app,
        ["web", "--db", str(db_path), "--port", "9000", "--update-interval", "2"],
    )

    assert result.exit_code == 0
    assert served["host"] == "127.0.0.1"
    assert served["port"] == 9000
    assert served["api"].state.db_path == db_path
