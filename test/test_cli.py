import json
from pathlib import Path

from openpyxl import load_workbook

from paintledger.main import main


def test_init_dashboard_and_export(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    db = str(tmp_path / "cli.db")

    assert main(["--db", db, "init"]) == 0
    assert "schema v3" in capsys.readouterr().out

    assert main(["--db", db, "dashboard"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert stats["unpaid_count"] == 0
    assert stats["inventory"]["total_stock_value"] == "0.00"

    assert main(["--db", db, "unpaid"]) == 0

    out = tmp_path / "report.xlsx"
    assert main(["--db", db, "export-sales", str(out), "--start", "2024-01-01", "--end", "2024-01-31"]) == 0
    assert load_workbook(out).sheetnames == ["Summary", "Sales Detail", "Payments"]


def test_explicit_db_keeps_files_next_to_it(tmp_path: Path, monkeypatch):
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    db = tmp_path / "shop" / "ledger.db"
    db.parent.mkdir()

    assert main(["--db", str(db), "init"]) == 0
    assert (db.parent / "logs").is_dir()
    assert not (home / ".paintledger").exists()


def test_bad_settings_report_an_error_instead_of_crashing(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    db = str(tmp_path / "cli.db")

    monkeypatch.setenv("PAINTLEDGER_RETURN_EDIT_WINDOW_HOURS", "twelve")
    assert main(["--db", db, "init"]) == 1
    assert "PAINTLEDGER_RETURN_EDIT_WINDOW_HOURS" in capsys.readouterr().err

    monkeypatch.delenv("PAINTLEDGER_RETURN_EDIT_WINDOW_HOURS")
    monkeypatch.setenv("PAINTLEDGER_ALLOW_OVERPAYMENT", "maybe")
    assert main(["--db", db, "init"]) == 1

    monkeypatch.delenv("PAINTLEDGER_ALLOW_OVERPAYMENT")
    assert main(["--db", db, "export-sales", str(tmp_path / "r.xlsx"), "--start", "01-01-2024"]) == 1
