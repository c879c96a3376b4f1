"""Exportación del historial de dosis a CSV, Excel y JSON."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, Side

from dosemate.model import HistoryEntry

EXPORT_HEADERS: tuple[str, ...] = (
    "DateISO",
    "Moment",
    "Glycémie",
    "Base",
    "Repas",
    "DoseTotaleAdmin",
    "DoseTotaleCalculée",
    "Détail",
)

MISSING = "-"

EXPORT_BASENAME = "dosemate_history"


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the history sheet."""

    sheet_name: str = "Historique"


def history_export_frame(entries: Sequence[HistoryEntry]) -> pd.DataFrame:
    """One row per entry with the export headers; missing values as "-"."""
    rows = [
        [
            e.date_iso,
            e.moment.value,
            _or_missing(e.glycemia),
            _or_missing(e.base),
            _or_missing(e.meal),
            e.total_administered,
            e.total_calculated,
            e.display,
        ]
        for e in entries
    ]
    return pd.DataFrame(rows, columns=list(EXPORT_HEADERS))


def write_history_csv(entries: Sequence[HistoryEntry], out_path: Path) -> None:
    """Write the history as UTF-8 CSV (quoted where needed)."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    history_export_frame(entries).to_csv(out_path, index=False, encoding="utf-8")


def write_history_json(entries: Sequence[HistoryEntry], out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [e.to_dict() for e in entries]
    out_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
    )


def write_history_xlsx(
    entries: Sequence[HistoryEntry], out_path: Path, layout: ExcelLayout
) -> None:
    """Write a formatted Excel file of the history.

    Args:
        entries: History entries (written in the given order).
        out_path: Output path for the XLSX file.
        layout: Excel layout parameters.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    export_df = history_export_frame(entries)
    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name=layout.sheet_name)
        ws = writer.book[layout.sheet_name]
        _format_sheet(ws)


def write_history(
    entries: Sequence[HistoryEntry], out_dir: Path, fmt: str, stamp: str
) -> Path:
    """Export in ``fmt`` ("csv", "xlsx" or "json") and return the file path.

    Raises:
        ValueError: If the format is unknown.
    """
    out_path = out_dir / f"{EXPORT_BASENAME}_{stamp}.{fmt}"
    if fmt == "csv":
        write_history_csv(entries, out_path)
    elif fmt == "xlsx":
        write_history_xlsx(entries, out_path, ExcelLayout())
    elif fmt == "json":
        write_history_json(entries, out_path)
    else:
        raise ValueError(f"Unknown export format: {fmt}")
    return out_path


def _or_missing(value: float | None) -> object:
    return MISSING if value is None else value


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center")
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border


def _apply_column_widths(ws: Any) -> None:
    """Anchos por cabecera; la columna Détail va más ancha."""
    widths = {
        "DateISO": 26,
        "Moment": 10,
        "Glycémie": 10,
        "Base": 8,
        "Repas": 8,
        "DoseTotaleAdmin": 16,
        "DoseTotaleCalculée": 18,
        "Détail": 44,
    }
    for cell in ws[1]:
        width = widths.get(str(cell.value))
        if width is not None:
            ws.column_dimensions[cell.column_letter].width = width


def _format_sheet(ws: Any) -> None:
    """Apply header style, borders and widths to a worksheet.

    Args:
        ws: openpyxl worksheet.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    _apply_column_widths(ws)
