"""Modelos tipados para tablas de dosis, comidas e historial."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dosemate.parsing import parse_number_input


class MomentKey(str, Enum):
    """Moment of the day used to pick a dose column."""

    MORNING = "morning"
    NOON = "noon"
    EVENING = "evening"
    EXTRA = "extra"


@dataclass(frozen=True)
class DoseRange:
    """One row of a dose table: glucose interval [min, max] and doses per moment."""

    min: float
    max: float
    doses: Mapping[MomentKey, float] = field(default_factory=dict)

    def contains(self, glycemia: float) -> bool:
        return self.min <= glycemia <= self.max

    def dose_for(self, moment: MomentKey) -> float:
        """Dose for the moment, 0 when the row has none."""
        value = float(self.doses.get(moment, 0) or 0)
        return value if math.isfinite(value) else 0.0


@dataclass(frozen=True)
class FoodItem:
    """Ingrediente de la comida tal como lo escribe el usuario."""

    carbs_per_100: str = ""
    weight: str = ""
    id: str = ""

    def carbs(self) -> float:
        """Grams of carbohydrate in this item (unparseable fields count as 0)."""
        per_100 = parse_number_input(self.carbs_per_100) or 0.0
        grams = parse_number_input(self.weight) or 0.0
        return per_100 * grams / 100


@dataclass(frozen=True)
class DoseResult:
    """Resultado de un cálculo; se recalcula ante cada cambio de entrada."""

    moment: MomentKey
    base: float | None
    meal: int | None
    total_calculated: float
    total_administered: int
    hypo: bool = False
    hyper: bool = False
    alert_max: bool = False
    note: str | None = None


@dataclass(frozen=True)
class HistoryEntry:
    """One saved calculation."""

    id: str
    date_iso: str
    display: str
    total_administered: int
    total_calculated: float
    moment: MomentKey
    glycemia: float | None = None
    base: float | None = None
    meal: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serializable dict using the historical export field names."""
        return {
            "id": self.id,
            "dateISO": self.date_iso,
            "display": self.display,
            "glycemia": self.glycemia,
            "base": self.base,
            "meal": self.meal,
            "totalAdministered": self.total_administered,
            "totalCalculated": self.total_calculated,
            "moment": self.moment.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoryEntry:
        """Build an entry from :meth:`to_dict` output.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the moment is unknown.
        """
        return cls(
            id=str(data["id"]),
            date_iso=str(data["dateISO"]),
            display=str(data.get("display", "")),
            glycemia=_optional_float(data.get("glycemia")),
            base=_optional_float(data.get("base")),
            meal=_optional_int(data.get("meal")),
            total_administered=int(data["totalAdministered"]),
            total_calculated=float(data["totalCalculated"]),
            moment=MomentKey(data["moment"]),
        )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)
