"""Lectura tolerante de números escritos por el usuario."""

from __future__ import annotations

import math


def parse_number_input(raw: str | float | None) -> float | None:
    """Parse a decimal typed by the user ("12,5" or "12.5").

    Args:
        raw: Text from an input field, or a number.

    Returns:
        The finite float value, or None when empty, non-numeric or non-finite.
    """
    if raw is None:
        return None
    text = str(raw).strip().replace(",", ".", 1)
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value
