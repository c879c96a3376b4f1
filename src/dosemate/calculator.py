"""Cálculo de la dosis de insulina (tabla por glucemia + ratio de carbohidratos).

El cálculo es una función pura: recibe una foto de las entradas (glucemia,
alimentos, ratio, tabla activa, hora) y devuelve siempre un resultado, sin
lanzar excepciones por entradas mal formadas.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from dosemate.model import DoseRange, DoseResult, FoodItem, HistoryEntry, MomentKey
from dosemate.parsing import parse_number_input

logger = logging.getLogger(__name__)

DISPLAY_MAX = 22
MAX_CALCULATED = 25
HYPO_THRESHOLD = 70
HYPER_THRESHOLD = 351
DEFAULT_CARB_RATIO = 10.0

SAFE_MAX = 15
CAUTION_MAX = 18

_MOMENT_LABELS: dict[str, dict[MomentKey, str]] = {
    "fr": {
        MomentKey.MORNING: "Matin",
        MomentKey.NOON: "Midi",
        MomentKey.EVENING: "Soir",
        MomentKey.EXTRA: "Extra",
    },
    "en": {
        MomentKey.MORNING: "Morning",
        MomentKey.NOON: "Noon",
        MomentKey.EVENING: "Evening",
        MomentKey.EXTRA: "Extra",
    },
}

_DISPLAY_WORDS: dict[str, dict[str, str]] = {
    "fr": {"base": "base", "meal": "repas", "actual": "réelle"},
    "en": {"base": "base", "meal": "meal", "actual": "actual"},
}

_NOTE_TEMPLATES: dict[str, str] = {
    "fr": "Dose calculée exacte : {value} U (dose administrée plafonnée à {cap} U).",
    "en": "Exact calculated dose: {value} U (administered dose capped at {cap} U).",
}

_ALERT_TEXTS: dict[str, dict[str, str]] = {
    "fr": {
        "hypo": "Hypoglycémie (< 70 mg/dL) : resucrez-vous avant toute injection.",
        "hyper": "Hyperglycémie (> 351 mg/dL) : contrôlez les cétones.",
    },
    "en": {
        "hypo": "Hypoglycemia (< 70 mg/dL): take sugar before any injection.",
        "hyper": "Hyperglycemia (> 351 mg/dL): check for ketones.",
    },
}


def moment_of_day(now: datetime) -> MomentKey:
    """Bucket the wall-clock hour: [5,11) morning, [11,16) noon, [16,22) evening."""
    hour = now.hour
    if 5 <= hour < 11:
        return MomentKey.MORNING
    if 11 <= hour < 16:
        return MomentKey.NOON
    if 16 <= hour < 22:
        return MomentKey.EVENING
    return MomentKey.EXTRA


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (2.5 -> 3, 3.5 -> 4)."""
    floor = math.floor(value)
    return floor + 1 if value - floor >= 0.5 else floor


def round_one_decimal(value: float) -> float:
    """Round to one decimal, halves going up as written (22.25 -> 22.3)."""
    exact = Decimal(repr(float(value)))
    return float(exact.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def find_range(table: Sequence[DoseRange], glycemia: float) -> DoseRange | None:
    """First row containing the value; the last row for values above 351."""
    for row in table:
        if row.contains(glycemia):
            return row
    if glycemia > HYPER_THRESHOLD and table:
        return table[-1]
    return None


def total_carbs(food_items: Sequence[FoodItem]) -> float:
    return sum((item.carbs() for item in food_items), 0.0)


def compute(
    glycemia_raw: str,
    food_items: Sequence[FoodItem],
    carb_ratio: float,
    active_table: Sequence[DoseRange],
    force_extra: bool,
    now: datetime,
    *,
    language: str = "fr",
) -> DoseResult:
    """Compute the dose breakdown for one snapshot of the inputs.

    Args:
        glycemia_raw: Glucose reading in mg/dL as typed (may be empty).
        food_items: Meal ingredients.
        carb_ratio: Grams of carbohydrate covered by one unit.
        active_table: Dose table in effect (default or custom).
        force_extra: Pin the moment to ``extra`` whatever the time.
        now: Local time used to pick the moment of day.
        language: Language of the ``note`` text ("fr" or "en").

    Returns:
        The dose result. Never raises for malformed inputs.
    """
    moment = MomentKey.EXTRA if force_extra else moment_of_day(now)
    total = 0.0
    base: float | None = None
    meal: int | None = None
    hypo = False
    hyper = False

    glycemia = parse_number_input(glycemia_raw)
    if glycemia is not None:
        hypo = glycemia < HYPO_THRESHOLD
        hyper = glycemia > HYPER_THRESHOLD
        row = find_range(active_table, glycemia)
        if row is not None:
            base = row.dose_for(moment)
            total += base
        elif active_table:
            logger.warning(
                "No dose range covers glycemia %s; base dose left empty", glycemia
            )

    carbs = total_carbs(food_items)
    if carbs > 0:
        ratio = _positive_ratio(carb_ratio)
        meal_dose = carbs / ratio if ratio is not None else math.nan
        if math.isfinite(meal_dose):
            meal = round_half_up(meal_dose)
            total += meal_dose
        else:
            # Carbs entered but not convertible: explicit 0, not None.
            if ratio is not None:
                logger.warning("Meal dose overflowed for %s g of carbohydrate", carbs)
            meal = 0

    if total > MAX_CALCULATED:
        total = float(MAX_CALCULATED)

    administered = max(0, round_half_up(min(total, DISPLAY_MAX)))

    alert_max = total > DISPLAY_MAX
    note = None
    if alert_max:
        template = _NOTE_TEMPLATES.get(language, _NOTE_TEMPLATES["fr"])
        note = template.format(value=_one_decimal(total), cap=DISPLAY_MAX)

    return DoseResult(
        moment=moment,
        base=base,
        meal=meal,
        total_calculated=total,
        total_administered=administered,
        hypo=hypo,
        hyper=hyper,
        alert_max=alert_max,
        note=note,
    )


def moment_label(moment: MomentKey, language: str = "fr") -> str:
    labels = _MOMENT_LABELS.get(language, _MOMENT_LABELS["fr"])
    return labels[moment]


def format_display(result: DoseResult, language: str = "fr") -> str:
    """Texto resumen, p. ej. ``"9u base + 3u repas = 12u (admin.)"``."""
    words = _DISPLAY_WORDS.get(language, _DISPLAY_WORDS["fr"])
    parts: list[str] = []
    if result.base is not None:
        parts.append(f"{_compact(result.base)}u {words['base']}")
    if result.meal is not None:
        parts.append(f"{result.meal}u {words['meal']}")
    display = " + ".join(parts) + " = " if parts else ""
    display += f"{result.total_administered}u (admin.)"
    if result.alert_max:
        display += f" ({words['actual']} {_one_decimal(result.total_calculated)}u)"
    return display


def alert_lines(result: DoseResult, language: str = "fr") -> list[str]:
    """Hypo/hyper warnings for the result, in the user language."""
    texts = _ALERT_TEXTS.get(language, _ALERT_TEXTS["fr"])
    lines: list[str] = []
    if result.hypo:
        lines.append(texts["hypo"])
    if result.hyper:
        lines.append(texts["hyper"])
    return lines


def dose_level(total_administered: float) -> str:
    """Classify a dose as "safe" (<= 15), "caution" (<= 18) or "danger"."""
    if total_administered <= SAFE_MAX:
        return "safe"
    if total_administered <= CAUTION_MAX:
        return "caution"
    return "danger"


def build_history_entry(
    result: DoseResult,
    glycemia_raw: str,
    now: datetime,
    entry_id: str | None = None,
    language: str = "fr",
) -> HistoryEntry:
    """Derive the record saved when the user explicitly stores a calculation."""
    return HistoryEntry(
        id=entry_id or uuid.uuid4().hex,
        date_iso=now.isoformat(),
        display=format_display(result, language),
        glycemia=parse_number_input(glycemia_raw),
        base=result.base,
        meal=result.meal,
        total_administered=result.total_administered,
        total_calculated=result.total_calculated,
        moment=result.moment,
    )


def _positive_ratio(carb_ratio: float) -> float | None:
    try:
        ratio = float(carb_ratio)
    except (TypeError, ValueError):
        return None
    if math.isfinite(ratio) and ratio > 0:
        return ratio
    return None


def _one_decimal(value: float) -> str:
    return _compact(round_one_decimal(value))


def _compact(value: float) -> str:
    """12.0 -> "12", 12.5 -> "12.5"."""
    if float(value).is_integer():
        return str(int(value))
    return format(value, "f").rstrip("0").rstrip(".")
