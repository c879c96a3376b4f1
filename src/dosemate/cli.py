"""CLI de DoseMate: calcular dosis, ver/exportar historial y editar la tabla."""

from __future__ import annotations

import argparse
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from dateutil import tz

from dosemate.calculator import (
    alert_lines,
    build_history_entry,
    compute,
    dose_level,
    format_display,
    moment_label,
)
from dosemate.dose_table import active_table, format_range, reset_table, set_dose
from dosemate.export import write_history
from dosemate.logging_setup import configure_logging
from dosemate.model import FoodItem, MomentKey
from dosemate.storage import SQLiteStore
from dosemate.summary import history_stats, seven_day_summary
from dosemate.validation import can_calculate_dose

_LOCAL_TZ = tz.tzlocal()

_CALC_LABELS: dict[str, dict[str, str]] = {
    "fr": {
        "moment": "Moment",
        "dose": "Dose",
        "alert": "ALERTE",
        "note": "NOTE",
        "warning": "ATTENTION",
        "not_saved": "Non enregistré : entrées invalides.",
        "saved": "enregistré",
    },
    "en": {
        "moment": "Moment",
        "dose": "Dose",
        "alert": "ALERT",
        "note": "NOTE",
        "warning": "WARNING",
        "not_saved": "Not saved: invalid inputs.",
        "saved": "saved",
    },
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="DoseMate: dosis de insulina por glucemia y carbohidratos."
    )
    parser.add_argument(
        "--db",
        default=str(Path.home() / ".dosemate" / "dosemate.sqlite3"),
        help="Base SQLite (default: ~/.dosemate/dosemate.sqlite3).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    calc = sub.add_parser("calc", help="Calcular una dosis.")
    calc.add_argument("--glycemia", default="", help="Glucemia en mg/dL.")
    calc.add_argument(
        "--food",
        action="append",
        default=[],
        metavar="CARBS_PER_100:WEIGHT",
        help="Alimento, p. ej. 36:250 (repetible).",
    )
    calc.add_argument(
        "--carb-ratio",
        type=float,
        default=None,
        help="Gramos de carbohidratos por unidad (default: configuración).",
    )
    calc.add_argument("--extra", action="store_true", help="Forzar momento extra.")
    calc.add_argument("--save", action="store_true", help="Guardar en el historial.")

    sub.add_parser("history", help="Mostrar historial y estadísticas.")

    export = sub.add_parser("export", help="Exportar historial.")
    export.add_argument("--format", choices=["csv", "xlsx", "json"], default="xlsx")
    export.add_argument("--out-dir", default=None, help="Directorio de salida.")

    sub.add_parser("clear", help="Borrar todo el historial.")

    delete = sub.add_parser("delete", help="Borrar una entrada del historial.")
    delete.add_argument("entry_id")

    config = sub.add_parser("config", help="Ver o cambiar la configuración.")
    config.add_argument("--carb-ratio", type=float, default=None)
    config.add_argument("--language", choices=["fr", "en"], default=None)
    config.add_argument("--export-dir", default=None)

    table = sub.add_parser("table", help="Ver o editar la tabla de dosis.")
    toggle = table.add_mutually_exclusive_group()
    toggle.add_argument("--use-custom", action="store_true")
    toggle.add_argument("--use-default", action="store_true")
    table.add_argument("--reset", action="store_true", help="Copiar la tabla por defecto.")
    table.add_argument(
        "--set",
        nargs=3,
        metavar=("ROW", "MOMENT", "DOSE"),
        default=None,
        help="Cambiar una dosis de la tabla personalizada.",
    )
    return parser.parse_args(argv)


def parse_food(raw: str) -> FoodItem:
    """``"36:250"`` -> FoodItem(carbs_per_100="36", weight="250")."""
    carbs, _, weight = raw.partition(":")
    return FoodItem(carbs_per_100=carbs.strip(), weight=weight.strip())


def main(argv: list[str] | None = None) -> int:
    """Run the DoseMate CLI.

    Returns:
        Exit code (0 on success).
    """
    ns = parse_args(argv)
    configure_logging()
    store = SQLiteStore(Path(ns.db).expanduser())

    if ns.command == "calc":
        return _run_calc(ns, store)
    if ns.command == "history":
        return _run_history(store)
    if ns.command == "export":
        return _run_export(ns, store)
    if ns.command == "clear":
        store.clear()
        print("OK: historial borrado")
        return 0
    if ns.command == "delete":
        store.delete(ns.entry_id)
        print(f"OK: entrada {ns.entry_id} borrada")
        return 0
    if ns.command == "config":
        return _run_config(ns, store)
    return _run_table(ns, store)


def _run_calc(ns: argparse.Namespace, store: SQLiteStore) -> int:
    config = store.load_config()
    foods = [parse_food(item) for item in ns.food]
    ratio = ns.carb_ratio if ns.carb_ratio is not None else config.carb_ratio
    lang = config.language
    labels = _CALC_LABELS.get(lang, _CALC_LABELS["fr"])

    report = can_calculate_dose(ns.glycemia, foods, ratio, lang)
    for error in report.errors:
        print(f"{labels['warning']}: {error}")

    now = datetime.now(tz=_LOCAL_TZ)
    table = active_table(config.use_custom_table, config.custom_table)
    result = compute(ns.glycemia, foods, ratio, table, ns.extra, now, language=lang)

    level = dose_level(result.total_administered)
    print(f"{labels['moment']}: {moment_label(result.moment, lang)}")
    print(f"{labels['dose']}: {format_display(result, lang)} [{level}]")
    for line in alert_lines(result, lang):
        print(f"{labels['alert']}: {line}")
    if result.note:
        print(f"{labels['note']}: {result.note}")

    if ns.save:
        if not report.valid:
            print(labels["not_saved"])
            return 1
        entry = build_history_entry(result, ns.glycemia, now, language=lang)
        store.append(entry)
        print(f"OK: {labels['saved']} {entry.id}")
    return 0


def _run_history(store: SQLiteStore) -> int:
    entries = store.list_entries()
    lang = store.load_config().language
    stats = history_stats(entries)
    week = seven_day_summary(entries, datetime.now(tz=_LOCAL_TZ))
    print(f"Entradas: {stats.total}")
    if stats.avg_dose is not None:
        print(f"Dosis media: {stats.avg_dose}U")
    if stats.avg_glycemia is not None:
        print(f"Glucemia media: {stats.avg_glycemia}")
    print(f"Últimos 7 días: {week.count} entradas")
    for entry in entries:
        label = moment_label(entry.moment, lang)
        print(f"{entry.date_iso}  {label:<8} {entry.display}  [{entry.id}]")
    return 0


def _run_export(ns: argparse.Namespace, store: SQLiteStore) -> int:
    config = store.load_config()
    if ns.out_dir:
        out_dir = Path(ns.out_dir).expanduser()
    elif config.export_dir:
        out_dir = Path(config.export_dir).expanduser()
    else:
        out_dir = Path.cwd() / "salidas"
    stamp = datetime.now(tz=_LOCAL_TZ).strftime("%Y-%m-%d_%H-%M-%S")
    entries = store.list_entries()
    out_path = write_history(entries, out_dir, ns.format, stamp)
    print(f"OK: {len(entries)} entradas")
    print(f"OK: Output: {out_path}")
    return 0


def _run_config(ns: argparse.Namespace, store: SQLiteStore) -> int:
    config = store.load_config()
    changes: dict[str, object] = {}
    if ns.carb_ratio is not None:
        if ns.carb_ratio <= 0:
            print("El ratio debe ser mayor que 0.")
            return 1
        changes["carb_ratio"] = ns.carb_ratio
    if ns.language is not None:
        changes["language"] = ns.language
    if ns.export_dir is not None:
        changes["export_dir"] = ns.export_dir
    if changes:
        config = replace(config, **changes)
        store.save_config(config)
    print(f"carb_ratio: {config.carb_ratio}")
    print(f"language: {config.language}")
    print(f"export_dir: {config.export_dir}")
    print(f"use_custom_table: {config.use_custom_table}")
    return 0


def _run_table(ns: argparse.Namespace, store: SQLiteStore) -> int:
    config = store.load_config()
    custom = config.custom_table
    if ns.reset or (not custom and (ns.set or ns.use_custom)):
        custom = reset_table()
    if ns.set:
        row, moment, dose = ns.set
        try:
            custom = set_dose(custom, int(row), MomentKey(moment), dose)
        except (IndexError, ValueError) as exc:
            print(f"ERROR: --set {row} {moment} {dose}: {_set_error(exc, row, moment)}")
            return 1
    use_custom = config.use_custom_table
    if ns.use_custom:
        use_custom = True
    elif ns.use_default:
        use_custom = False

    updated = replace(config, custom_table=custom, use_custom_table=use_custom)
    if updated != config:
        store.save_config(updated)

    table = active_table(updated.use_custom_table, updated.custom_table)
    origin = "personalizada" if table is updated.custom_table else "por defecto"
    print(f"Tabla activa: {origin}")
    for idx, row in enumerate(table):
        doses = "  ".join(f"{m.value}={row.dose_for(m):g}" for m in MomentKey)
        print(f"{idx}  {format_range(row):<14} {doses}")
    return 0


def _set_error(exc: Exception, row: str, moment: str) -> str:
    if isinstance(exc, IndexError):
        return str(exc)
    if moment not in {m.value for m in MomentKey}:
        choices = ", ".join(m.value for m in MomentKey)
        return f"unknown moment {moment!r} (choose from {choices})"
    return f"row must be an integer, got {row!r}"
