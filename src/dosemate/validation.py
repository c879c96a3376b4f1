"""Validación de los campos del formulario de cálculo (mensajes fr/en)."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from dosemate.model import FoodItem
from dosemate.parsing import parse_number_input

GLYCEMIA_MAX = 600
CARB_RATIO_MAX = 100
CARBS_PER_100_MAX = 100
WEIGHT_MAX = 2000

_MESSAGES: dict[str, dict[str, str]] = {
    "fr": {
        "must_be_number": "Doit être un nombre valide",
        "glycemia_min": "La glycémie doit être supérieure à 0",
        "glycemia_max": "La glycémie doit être inférieure à 600 mg/dL",
        "carb_ratio_min": "Le ratio doit être supérieur à 0",
        "carb_ratio_max": "Le ratio doit être inférieur à 100",
        "carbs_per_100_min": "Les glucides doivent être ≥ 0",
        "carbs_per_100_max": "Les glucides ne peuvent pas dépasser 100g/100g",
        "weight_min": "Le poids doit être ≥ 0",
        "weight_max": "Le poids ne peut pas dépasser 2000g",
        "nothing_to_calculate": "Entrez une glycémie ou des glucides pour calculer",
    },
    "en": {
        "must_be_number": "Must be a valid number",
        "glycemia_min": "Blood sugar must be greater than 0",
        "glycemia_max": "Blood sugar must be less than 600 mg/dL",
        "carb_ratio_min": "Ratio must be greater than 0",
        "carb_ratio_max": "Ratio must be less than 100",
        "carbs_per_100_min": "Carbs must be ≥ 0",
        "carbs_per_100_max": "Carbs cannot exceed 100g/100g",
        "weight_min": "Weight must be ≥ 0",
        "weight_max": "Weight cannot exceed 2000g",
        "nothing_to_calculate": "Enter blood sugar or carbs to calculate",
    },
}


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of :func:`can_calculate_dose`."""

    valid: bool
    errors: list[str] = field(default_factory=list)


def messages(lang: str) -> dict[str, str]:
    """Mensajes del idioma pedido (francés si no se conoce)."""
    return _MESSAGES.get(lang, _MESSAGES["fr"])


def validate_glycemia(value: str, lang: str = "fr") -> str | None:
    """Return an error message, or None when the value is empty or valid."""
    msg = messages(lang)
    if value.strip() == "":
        return None
    num = parse_number_input(value)
    if num is None:
        return msg["must_be_number"]
    if num <= 0:
        return msg["glycemia_min"]
    if num > GLYCEMIA_MAX:
        return msg["glycemia_max"]
    return None


def validate_carb_ratio(value: float, lang: str = "fr") -> str | None:
    msg = messages(lang)
    try:
        ratio = float(value)
    except (TypeError, ValueError):
        return msg["must_be_number"]
    if not math.isfinite(ratio):
        return msg["must_be_number"]
    if ratio <= 0:
        return msg["carb_ratio_min"]
    if ratio > CARB_RATIO_MAX:
        return msg["carb_ratio_max"]
    return None


def validate_food_item_field(field_name: str, value: str, lang: str = "fr") -> str | None:
    """Validate ``carbs_per_100`` (0-100) or ``weight`` (0-2000).

    Raises:
        ValueError: If ``field_name`` is not a food item field.
    """
    if field_name not in ("carbs_per_100", "weight"):
        raise ValueError(f"Unknown food item field: {field_name}")
    msg = messages(lang)
    if value.strip() == "":
        return None
    num = parse_number_input(value)
    if num is None:
        return msg["must_be_number"]
    if field_name == "carbs_per_100":
        if num < 0:
            return msg["carbs_per_100_min"]
        if num > CARBS_PER_100_MAX:
            return msg["carbs_per_100_max"]
    else:
        if num < 0:
            return msg["weight_min"]
        if num > WEIGHT_MAX:
            return msg["weight_max"]
    return None


def can_calculate_dose(
    glycemia: str,
    food_items: Sequence[FoodItem],
    carb_ratio: float,
    lang: str = "fr",
) -> ValidationReport:
    """Check that there is something to compute and that it is in range.

    A glycemia or at least one food item with both fields filled is required.
    The ratio is only checked when carbohydrates were entered.
    """
    errors: list[str] = []
    has_glycemia = glycemia.strip() != ""
    has_carbs = any(
        item.carbs_per_100.strip() != "" and item.weight.strip() != ""
        for item in food_items
    )
    if not has_glycemia and not has_carbs:
        return ValidationReport(valid=False, errors=[messages(lang)["nothing_to_calculate"]])

    if has_glycemia:
        glycemia_error = validate_glycemia(glycemia, lang)
        if glycemia_error:
            errors.append(glycemia_error)
    if has_carbs:
        ratio_error = validate_carb_ratio(carb_ratio, lang)
        if ratio_error:
            errors.append(ratio_error)
    return ValidationReport(valid=not errors, errors=errors)
