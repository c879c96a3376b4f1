"""Estadísticas del historial de dosis (totales y últimos 7 días)."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

import pandas as pd

from dosemate.calculator import round_one_decimal
from dosemate.model import HistoryEntry

FRAME_COLUMNS = [
    "id",
    "datetime",
    "moment",
    "glycemia",
    "base",
    "meal",
    "total_administered",
    "total_calculated",
    "display",
]


@dataclass(frozen=True)
class HistoryStats:
    """Header figures of the history screen."""

    total: int
    avg_dose: float | None
    avg_glycemia: float | None


@dataclass(frozen=True)
class WeeklySummary:
    """Averages over the last seven days."""

    count: int
    avg_glycemia: float | None
    avg_dose_calculated: float | None
    avg_dose_administered: float | None


def history_to_frame(entries: Sequence[HistoryEntry]) -> pd.DataFrame:
    """Convert entries to a DataFrame sorted by datetime (oldest first)."""
    rows = [
        {
            "id": e.id,
            "datetime": e.date_iso,
            "moment": e.moment.value,
            "glycemia": e.glycemia,
            "base": e.base,
            "meal": e.meal,
            "total_administered": e.total_administered,
            "total_calculated": e.total_calculated,
            "display": e.display,
        }
        for e in entries
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    if df.empty:
        return df
    df["datetime"] = pd.to_datetime(
        df["datetime"], errors="coerce", utc=True, format="ISO8601"
    )
    for col in ("glycemia", "base", "meal", "total_administered", "total_calculated"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df.sort_values("datetime").reset_index(drop=True)


def history_stats(entries: Sequence[HistoryEntry]) -> HistoryStats:
    """Count, mean administered dose and mean glycemia (1 decimal)."""
    df = history_to_frame(entries)
    if df.empty:
        return HistoryStats(total=0, avg_dose=None, avg_glycemia=None)
    return HistoryStats(
        total=len(df),
        avg_dose=_mean_1(df["total_administered"]),
        avg_glycemia=_mean_1(df["glycemia"]),
    )


def seven_day_summary(entries: Sequence[HistoryEntry], now: datetime) -> WeeklySummary:
    """Averages over entries saved in the seven days before ``now``.

    Args:
        entries: History entries.
        now: Reference time (naive values are read as UTC).

    Returns:
        Weekly summary; averages are None when there is nothing to average.
    """
    df = history_to_frame(entries)
    if df.empty:
        return WeeklySummary(0, None, None, None)
    since = pd.Timestamp(now - timedelta(days=7))
    since = since.tz_localize("UTC") if since.tzinfo is None else since.tz_convert("UTC")
    last7 = df[df["datetime"] >= since]
    if last7.empty:
        return WeeklySummary(0, None, None, None)
    return WeeklySummary(
        count=len(last7),
        avg_glycemia=_mean_1(last7["glycemia"]),
        avg_dose_calculated=_mean_1(last7["total_calculated"]),
        avg_dose_administered=_mean_1(last7["total_administered"]),
    )


def _mean_1(series: pd.Series) -> float | None:
    value = series.dropna().mean()
    if pd.isna(value):
        return None
    return round_one_decimal(float(value))
