"""Tests for CLI module."""

import csv
import gzip
import io
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from audit_pipeline import __version__
from audit_pipeline.cli import app
from audit_pipeline.events.models import ActivityEvent, ActivitySeverity
from audit_pipeline.store.sqlite import SQLiteEventStore

runner = CliRunner()


@pytest.fixture
def db_path(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Database path with archive and export directories routed to temp_dir."""
    monkeypatch.setenv("AUDIT_ARCHIVE_DIR", str(temp_dir / "archives"))
    monkeypatch.setenv("AUDIT_EXPORT_TEMP_DIR", str(temp_dir / "exports"))
    monkeypatch.delenv("AUDIT_DB_PATH", raising=False)
    return temp_dir / "cli.db"


def seed(db_path: Path, ages_in_days: list[float], **fields) -> list[int]:
    """Insert one event per age, measured back from the current time."""
    now = datetime.now(timezone.utc)
    with SQLiteEventStore(db_path) as store:
        return store.insert_many(
            ActivityEvent(action="record_created", created_at=now - timedelta(days=age), **fields)
            for age in ages_in_days
        )


class TestVersionCommand:
    """Tests for the version command."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestAnalyticsCommands:
    """Tests for stats, dashboard and anomaly."""

    def test_stats_by_day(self, db_path: Path) -> None:
        seed(db_path, [0, 0])
        result = runner.invoke(app, ["stats", "--period", "day", "--db", str(db_path)])
        assert result.exit_code == 0
        assert datetime.now(timezone.utc).strftime("%Y-%m-%d") in result.stdout

    def test_dashboard(self, db_path: Path) -> None:
        seed(db_path, [0, 1, 2])
        result = runner.invoke(app, ["dashboard", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "Total events: 3" in result.stdout
        assert "Success rate: 100.0%" in result.stdout

    def test_anomaly_normal_on_empty_store(self, db_path: Path) -> None:
        result = runner.invoke(app, ["anomaly", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "normal" in result.stdout

    def test_anomaly_exits_nonzero_when_anomalous(self, db_path: Path) -> None:
        seed(db_path, [6])
        seed(db_path, [0] * 5)
        result = runner.invoke(app, ["anomaly", "--db", str(db_path)])
        assert result.exit_code == 1
        assert "ANOMALOUS" in result.stdout

    def test_invalid_configuration(self, db_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AUDIT_REAL_TIME_BUFFER_SIZE", "lots")
        result = runner.invoke(app, ["dashboard", "--db", str(db_path)])
        assert result.exit_code == 2
        assert "Configuration error" in result.stdout


class TestLogsCommand:
    """Tests for the logs command."""

    def test_lists_newest_first(self, db_path: Path) -> None:
        seed(db_path, [2, 1, 0])
        result = runner.invoke(app, ["logs", "--limit", "2", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "page 1 of 2" in result.stdout
        assert "3 matching events" in result.stdout

    def test_user_history(self, db_path: Path) -> None:
        seed(db_path, [0, 0], user_id=4)
        seed(db_path, [0], user_id=5)
        result = runner.invoke(app, ["logs", "--user", "4", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "2 matching events" in result.stdout

    def test_search(self, db_path: Path) -> None:
        seed(db_path, [0], description="quarterly payroll")
        seed(db_path, [0], description="other")
        result = runner.invoke(app, ["logs", "--search", "PAYROLL", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "1 matching events" in result.stdout

    def test_blank_search_fails(self, db_path: Path) -> None:
        result = runner.invoke(app, ["logs", "--search", " ", "--db", str(db_path)])
        assert result.exit_code == 1
        assert "Search term is required" in result.stdout


class TestExportCommand:
    """Tests for the export command."""

    def test_export_csv(self, db_path: Path, temp_dir: Path) -> None:
        ids = seed(db_path, [0, 0, 0])
        output = temp_dir / "out" / "logs.csv"

        result = runner.invoke(app, ["export", str(output), "--batch-size", "2", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Exported 3 rows" in result.stdout
        rows = list(csv.DictReader(io.StringIO(output.read_text(encoding="utf-8"))))
        assert [int(row["id"]) for row in rows] == ids

    def test_export_json_with_filter(self, db_path: Path, temp_dir: Path) -> None:
        seed(db_path, [0], severity=ActivitySeverity.HIGH)
        seed(db_path, [0, 0], severity=ActivitySeverity.LOW)
        output = temp_dir / "high.ndjson"

        result = runner.invoke(
            app, ["export", str(output), "--format", "json", "--severity", "high", "--db", str(db_path)]
        )

        assert result.exit_code == 0
        lines = output.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["severity"] == "high"


class TestVerifyCommand:
    """Tests for the verify command."""

    def test_verify_passes(self, db_path: Path) -> None:
        seed(db_path, [2, 1, 0])
        result = runner.invoke(app, ["verify", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "passed" in result.stdout

    def test_verify_fails_on_missing_timestamp(self, db_path: Path) -> None:
        ids = seed(db_path, [1, 0])
        with SQLiteEventStore(db_path) as store:
            with store._transaction() as cur:
                cur.execute("UPDATE activity_logs SET created_at = NULL WHERE id = ?", (ids[0],))

        result = runner.invoke(app, ["verify", "--db", str(db_path)])
        assert result.exit_code == 1
        assert "failed" in result.stdout


class TestRetentionCommands:
    """Tests for the retention sub-commands."""

    def test_archive(self, db_path: Path, temp_dir: Path) -> None:
        seed(db_path, [120, 100, 5])

        result = runner.invoke(app, ["retention", "archive", "--db", str(db_path)])

        assert result.exit_code == 0
        [archive] = list((temp_dir / "archives").glob("*.json.gz"))
        with gzip.open(archive, "rt", encoding="utf-8") as f:
            assert len(json.load(f)) == 2

    def test_archive_nothing_eligible(self, db_path: Path) -> None:
        seed(db_path, [1])
        result = runner.invoke(app, ["retention", "archive", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "No events eligible" in result.stdout

    def test_purge_requires_confirmation(self, db_path: Path) -> None:
        seed(db_path, [400])
        result = runner.invoke(app, ["retention", "purge", "--db", str(db_path)], input="n\n")
        assert result.exit_code == 1
        with SQLiteEventStore(db_path) as store:
            assert store.count() == 1

    def test_purge_with_yes(self, db_path: Path) -> None:
        seed(db_path, [400, 400, 1])
        result = runner.invoke(app, ["retention", "purge", "--yes", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "Deleted 2 events" in result.stdout

    def test_compress_with_override(self, db_path: Path) -> None:
        seed(db_path, [10, 3])
        result = runner.invoke(app, ["retention", "compress", "--age-days", "7", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "Marked 1 events" in result.stdout

    def test_run_cycle(self, db_path: Path) -> None:
        seed(db_path, [400, 100, 40, 1])
        result = runner.invoke(app, ["retention", "run", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "Retention cycle" in result.stdout
        with SQLiteEventStore(db_path) as store:
            assert store.count() == 3
