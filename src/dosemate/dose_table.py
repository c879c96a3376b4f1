"""Tabla de dosis por defecto y utilidades para tablas personalizadas."""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from typing import Any

from dosemate.model import DoseRange, MomentKey
from dosemate.parsing import parse_number_input

_M = MomentKey


def _row(low: float, high: float, morning: float, noon: float, evening: float,
         extra: float) -> DoseRange:
    return DoseRange(
        min=low,
        max=high,
        doses={_M.MORNING: morning, _M.NOON: noon, _M.EVENING: evening, _M.EXTRA: extra},
    )


# Rows share their endpoints; lookup takes the first match, so 100 falls
# in the 70-100 row and 100.5 in the 100-150 one.
DEFAULT_INSULIN_TABLE: tuple[DoseRange, ...] = (
    _row(-math.inf, 70, 4, 3, 3, 0),
    _row(70, 100, 7, 5, 5, 0),
    _row(100, 150, 9, 7, 7, 1),
    _row(150, 200, 10, 8, 8, 2),
    _row(200, 250, 11, 9, 9, 3),
    _row(250, 300, 12, 10, 10, 4),
    _row(300, 350, 13, 11, 11, 5),
    _row(350, math.inf, 14, 12, 12, 6),
)


def reset_table() -> list[DoseRange]:
    """Devuelve una copia editable de la tabla por defecto."""
    return [_copy_row(r) for r in DEFAULT_INSULIN_TABLE]


def active_table(
    use_custom: bool, custom_table: Sequence[DoseRange] | None
) -> Sequence[DoseRange]:
    """Pick the table used for lookups.

    Args:
        use_custom: Toggle maintained by the user settings.
        custom_table: User-edited table, possibly empty.

    Returns:
        The custom table when toggled on and non-empty, else the default one.
    """
    if use_custom and custom_table:
        return custom_table
    return DEFAULT_INSULIN_TABLE


def set_dose(
    table: Sequence[DoseRange], index: int, moment: MomentKey, value: object
) -> list[DoseRange]:
    """Return a new table with one dose replaced.

    Non-numeric or negative values are stored as 0.

    Raises:
        IndexError: If ``index`` is outside the table.
    """
    if not 0 <= index < len(table):
        raise IndexError(f"Row {index} out of range (table has {len(table)} rows)")
    parsed = parse_number_input(value if isinstance(value, str) else _as_text(value))
    dose = parsed if parsed is not None and parsed > 0 else 0.0
    out = [_copy_row(r) for r in table]
    target = out[index]
    doses = dict(target.doses)
    doses[moment] = dose
    out[index] = DoseRange(min=target.min, max=target.max, doses=doses)
    return out


def format_range(row: DoseRange) -> str:
    """Row bounds as text: ``≤ 70``, ``100 - 150`` or ``≥ 350``."""
    if row.min == -math.inf:
        return f"≤ {row.max:g}"
    if row.max == math.inf:
        return f"≥ {row.min:g}"
    return f"{row.min:g} - {row.max:g}"


def find_gaps(table: Sequence[DoseRange]) -> list[tuple[float, float]]:
    """List (upper, next_lower) holes between consecutive rows."""
    gaps: list[tuple[float, float]] = []
    for prev, nxt in zip(table, table[1:]):
        if nxt.min > prev.max:
            gaps.append((prev.max, nxt.min))
    return gaps


def table_to_json(table: Sequence[DoseRange]) -> str:
    """Serialize a table; infinite bounds are written as null."""
    payload = [
        {
            "min": _bound_out(r.min),
            "max": _bound_out(r.max),
            "doses": {m.value: r.dose_for(m) for m in MomentKey},
        }
        for r in table
    ]
    return json.dumps(payload)


def table_from_json(raw: str) -> list[DoseRange]:
    """Parse a table written by :func:`table_to_json`.

    Raises:
        ValueError: If the JSON shape is invalid.
    """
    try:
        parsed: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid dose table JSON: {exc}") from exc
    if not isinstance(parsed, list):
        raise ValueError("Dose table JSON must be a list")
    return [_row_from_dict(item) for item in parsed]


def _row_from_dict(item: Any) -> DoseRange:
    if not isinstance(item, dict):
        raise ValueError("Dose table rows must be objects")
    raw_doses = item.get("doses") or {}
    if not isinstance(raw_doses, dict):
        raise ValueError("Row doses must be an object")
    doses: dict[MomentKey, float] = {}
    for key, value in raw_doses.items():
        try:
            moment = MomentKey(key)
        except ValueError as exc:
            raise ValueError(f"Unknown moment {key!r}") from exc
        doses[moment] = float(value or 0)
    return DoseRange(
        min=_bound_in(item.get("min"), -math.inf),
        max=_bound_in(item.get("max"), math.inf),
        doses=doses,
    )


def _copy_row(row: DoseRange) -> DoseRange:
    return DoseRange(min=row.min, max=row.max, doses=dict(row.doses))


def _bound_out(value: float) -> float | None:
    return None if math.isinf(value) else value


def _bound_in(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid range bound {value!r}") from exc


def _as_text(value: object) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value)
