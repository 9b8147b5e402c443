"""CLI smoke tests against a file-backed SQLite database."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from cinecrm.cli import app
from cinecrm.config import reset_config

pytestmark = pytest.mark.integration

runner = CliRunner()


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    reset_config()
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output


def test_import_then_stats(cli_db, data_dir, write_workbook):
    write_workbook("sites.xlsx", [{"siteName": "Demo Cinema"}, {"siteName": "PVR Surat"}])
    write_workbook("projectors.xlsx", [{"serialNumber": "SN-1", "modelNo": "M1"}])

    result = runner.invoke(app, ["import-all", "--data-dir", str(data_dir)])
    assert result.exit_code == 0, result.output
    assert "Import Summary" in result.output

    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0, result.output
    assert "Statistics" in result.output
    assert "Placeholder Audis" in result.output


def test_dry_run_cleanup_reports_mode(cli_db, data_dir):
    result = runner.invoke(app, ["cleanup-orphans", "--dry-run", "--data-dir", str(data_dir)])

    assert result.exit_code == 0, result.output
    assert "DRY RUN MODE" in result.output


def test_fatal_error_exits_nonzero(tmp_path, monkeypatch):
    # Tables never created
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    reset_config()

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 1
    assert "Fatal error" in result.output


def test_missing_database_url_is_reported(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    reset_config()

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 1
    assert "Fatal error" in result.output
    assert "DATABASE_URL" in result.output
    assert not isinstance(result.exception, KeyError)
