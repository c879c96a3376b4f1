"""Tests for CLI entrypoints."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

from dosemate import cli
from dosemate.crypto import SECRET_KEY_ENV
from dosemate.model import MomentKey
from dosemate.storage import SQLiteStore


class _FixedDatetime(datetime):
    @classmethod
    def now(cls, tz: Any | None = None) -> _FixedDatetime:
        return cls(2025, 3, 10, 8, 0, 0, tzinfo=tz)


@pytest.fixture
def db(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.delenv(SECRET_KEY_ENV, raising=False)
    monkeypatch.setattr(cli, "configure_logging", lambda: None)
    monkeypatch.setattr(cli, "datetime", _FixedDatetime)
    return tmp_path / "dosemate.sqlite3"


def _run(db: Path, *args: str) -> int:
    return cli.main(["--db", str(db), *args])


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_parse_args_calc_values() -> None:
    ns = cli.parse_args(
        ["calc", "--glycemia", "120", "--food", "36:250", "--food", "12:80", "--extra"]
    )
    assert ns.command == "calc"
    assert ns.glycemia == "120"
    assert ns.food == ["36:250", "12:80"]
    assert ns.extra is True
    assert ns.carb_ratio is None
    assert ns.save is False


def test_parse_food() -> None:
    item = cli.parse_food(" 36 : 250 ")
    assert item.carbs_per_100 == "36"
    assert item.weight == "250"
    assert item.carbs() == pytest.approx(90.0)
    assert cli.parse_food("36").weight == ""


def test_calc_prints_dose(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(db, "calc", "--glycemia", "101", "--food", "36:250")
    out = capsys.readouterr().out
    assert code == 0
    assert "Moment: Matin" in out
    assert "Dose: 9u base + 9u repas = 18u (admin.) [caution]" in out
    assert "ALERTE" not in out
    assert SQLiteStore(db).list_entries() == []


def test_calc_alert_and_note(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(db, "calc", "--glycemia", "400", "--food", "100:210")
    out = capsys.readouterr().out
    assert code == 0
    assert "ALERTE: Hyperglycémie (> 351 mg/dL)" in out
    assert "22u (admin.) (réelle 25u)" in out
    assert "NOTE: Dose calculée exacte : 25 U" in out


def test_calc_extra_and_ratio_override(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(db, "calc", "--glycemia", "120", "--food", "100:30", "--carb-ratio", "15",
                "--extra")
    out = capsys.readouterr().out
    assert code == 0
    assert "Moment: Extra" in out
    assert "1u base + 2u repas = 3u (admin.)" in out


def test_calc_save_appends_entry(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(db, "calc", "--glycemia", "101", "--food", "36:250", "--save")
    out = capsys.readouterr().out
    assert code == 0
    entries = SQLiteStore(db).list_entries()
    assert len(entries) == 1
    assert f"OK: enregistré {entries[0].id}" in out
    assert entries[0].glycemia == 101
    assert entries[0].total_administered == 18
    assert entries[0].moment is MomentKey.MORNING
    assert entries[0].date_iso.startswith("2025-03-10T08:00:00")


def test_calc_save_refuses_invalid_input(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(db, "calc", "--glycemia", "700", "--save")
    out = capsys.readouterr().out
    assert code == 1
    assert "ATTENTION: La glycémie doit être inférieure à 600 mg/dL" in out
    assert SQLiteStore(db).list_entries() == []


def test_history_delete_and_clear(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _run(db, "calc", "--glycemia", "101", "--save")
    _run(db, "calc", "--glycemia", "160", "--save")
    capsys.readouterr()

    assert _run(db, "history") == 0
    out = capsys.readouterr().out
    assert "Entradas: 2" in out
    assert "Dosis media: 9.5U" in out
    assert "Glucemia media: 130.5" in out
    assert "Últimos 7 días: 2 entradas" in out

    first_id = SQLiteStore(db).list_entries()[0].id
    assert _run(db, "delete", first_id) == 0
    assert len(SQLiteStore(db).list_entries()) == 1
    assert _run(db, "clear") == 0
    assert SQLiteStore(db).list_entries() == []


@pytest.mark.parametrize("fmt", ["csv", "xlsx", "json"])
def test_export_writes_file(
    db: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str], fmt: str
) -> None:
    _run(db, "calc", "--glycemia", "101", "--save")
    out_dir = tmp_path / "out"
    assert _run(db, "export", "--format", fmt, "--out-dir", str(out_dir)) == 0
    out = capsys.readouterr().out
    expected = out_dir / f"dosemate_history_2025-03-10_08-00-00.{fmt}"
    assert expected.exists()
    assert f"OK: Output: {expected}" in out


def test_export_uses_configured_dir(db: Path, tmp_path: Path) -> None:
    export_dir = tmp_path / "configured"
    assert _run(db, "config", "--export-dir", str(export_dir)) == 0
    assert _run(db, "export", "--format", "json") == 0
    assert (export_dir / "dosemate_history_2025-03-10_08-00-00.json").exists()


def test_config_updates(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(db, "config", "--carb-ratio", "12", "--language", "en") == 0
    out = capsys.readouterr().out
    assert "carb_ratio: 12.0" in out
    assert "language: en" in out
    config = SQLiteStore(db).load_config()
    assert config.carb_ratio == 12.0
    assert config.language == "en"

    _run(db, "calc", "--food", "100:60")
    out = capsys.readouterr().out
    assert "Moment: Morning" in out
    assert "5u meal = 5u (admin.)" in out


def test_config_rejects_non_positive_ratio(db: Path) -> None:
    assert _run(db, "config", "--carb-ratio", "0") == 1
    assert SQLiteStore(db).load_config().carb_ratio == 10.0


def test_table_custom_dose_is_used(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(db, "table", "--set", "2", "morning", "11", "--use-custom") == 0
    out = capsys.readouterr().out
    assert "Tabla activa: personalizada" in out
    assert "2  100 - 150" in out
    assert "morning=11" in out

    _run(db, "calc", "--glycemia", "120")
    assert "Dose: 11u base = 11u (admin.)" in capsys.readouterr().out

    assert _run(db, "table", "--use-default") == 0
    assert "Tabla activa: por defecto" in capsys.readouterr().out
    _run(db, "calc", "--glycemia", "120")
    assert "Dose: 9u base = 9u (admin.)" in capsys.readouterr().out


def test_table_reset(db: Path) -> None:
    _run(db, "table", "--set", "0", "noon", "1", "--use-custom")
    _run(db, "table", "--reset")
    config = SQLiteStore(db).load_config()
    assert config.use_custom_table is True
    assert config.custom_table[0].dose_for(MomentKey.NOON) == 3


@pytest.mark.parametrize(
    ("row", "moment", "message"),
    [
        ("0", "brunch", "unknown moment 'brunch'"),
        ("two", "morning", "row must be an integer, got 'two'"),
        ("8", "morning", "Row 8 out of range"),
    ],
)
def test_table_set_reports_bad_arguments(
    db: Path, capsys: pytest.CaptureFixture[str], row: str, moment: str, message: str
) -> None:
    assert _run(db, "table", "--set", row, moment, "1") == 1
    out = capsys.readouterr().out
    assert out.startswith(f"ERROR: --set {row} {moment} 1: ")
    assert message in out
    assert len(out.splitlines()) == 1
    assert SQLiteStore(db).load_config().custom_table == []


def test_calc_output_follows_language(db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _run(db, "config", "--language", "en")
    capsys.readouterr()
    assert _run(db, "calc", "--glycemia", "50", "--food", "100:220") == 0
    out = capsys.readouterr().out
    assert "Moment: Morning" in out
    assert "ALERT: Hypoglycemia (< 70 mg/dL): take sugar before any injection." in out
    assert "NOTE: Exact calculated dose: 25 U" in out
    for french in ("Matin", "ALERTE", "Hypoglycémie", "repas", "réelle"):
        assert french not in out
