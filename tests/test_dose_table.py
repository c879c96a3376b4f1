from __future__ import annotations

import math

import pytest

from dosemate.dose_table import (
    DEFAULT_INSULIN_TABLE,
    active_table,
    find_gaps,
    format_range,
    reset_table,
    set_dose,
    table_from_json,
    table_to_json,
)
from dosemate.model import DoseRange, MomentKey


def test_default_table_shape() -> None:
    assert len(DEFAULT_INSULIN_TABLE) == 8
    uppers = [row.max for row in DEFAULT_INSULIN_TABLE[:-1]]
    assert uppers == [70, 100, 150, 200, 250, 300, 350]
    assert DEFAULT_INSULIN_TABLE[0].min == -math.inf
    assert DEFAULT_INSULIN_TABLE[-1].max == math.inf
    assert find_gaps(DEFAULT_INSULIN_TABLE) == []


def test_default_table_doses_grow_with_glycemia() -> None:
    for moment in MomentKey:
        doses = [row.dose_for(moment) for row in DEFAULT_INSULIN_TABLE]
        assert doses == sorted(doses)


def test_reset_table_is_an_independent_copy() -> None:
    table = reset_table()
    assert table == list(DEFAULT_INSULIN_TABLE)
    edited = set_dose(table, 0, MomentKey.MORNING, "9")
    assert edited[0].dose_for(MomentKey.MORNING) == 9
    assert table[0].dose_for(MomentKey.MORNING) == 4
    assert DEFAULT_INSULIN_TABLE[0].dose_for(MomentKey.MORNING) == 4


def test_active_table() -> None:
    custom = [DoseRange(min=0, max=math.inf, doses={MomentKey.NOON: 3})]
    assert active_table(True, custom) is custom
    assert active_table(False, custom) is DEFAULT_INSULIN_TABLE
    assert active_table(True, []) is DEFAULT_INSULIN_TABLE
    assert active_table(True, None) is DEFAULT_INSULIN_TABLE


@pytest.mark.parametrize(
    ("value", "expected"),
    [("12", 12.0), ("2,5", 2.5), (7, 7.0), ("abc", 0.0), ("-3", 0.0), ("", 0.0),
     (None, 0.0)],
)
def test_set_dose_values(value: object, expected: float) -> None:
    table = set_dose(DEFAULT_INSULIN_TABLE, 3, MomentKey.EVENING, value)
    assert table[3].dose_for(MomentKey.EVENING) == expected
    assert table[3].dose_for(MomentKey.MORNING) == 10
    assert table[3].min == 150
    assert table[3].max == 200


def test_set_dose_out_of_range() -> None:
    with pytest.raises(IndexError):
        set_dose(DEFAULT_INSULIN_TABLE, 8, MomentKey.MORNING, "1")
    with pytest.raises(IndexError):
        set_dose(DEFAULT_INSULIN_TABLE, -1, MomentKey.MORNING, "1")


def test_find_gaps() -> None:
    table = [
        DoseRange(min=0, max=100),
        DoseRange(min=101, max=150),
        DoseRange(min=150, max=200),
    ]
    assert find_gaps(table) == [(100, 101)]


def test_table_json_round_trip_keeps_infinite_bounds() -> None:
    raw = table_to_json(DEFAULT_INSULIN_TABLE)
    assert raw.startswith('[{"min": null, "max": 70')
    assert list(DEFAULT_INSULIN_TABLE) == table_from_json(raw)


def test_table_from_json_fills_missing_doses() -> None:
    table = table_from_json('[{"min": 0, "max": 100, "doses": {"morning": 2}}]')
    assert table[0].dose_for(MomentKey.MORNING) == 2
    assert table[0].dose_for(MomentKey.EXTRA) == 0


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"min": 0}',
        "[1, 2]",
        '[{"min": 0, "max": 10, "doses": {"brunch": 1}}]',
        '[{"min": "low", "max": 10}]',
        '[{"min": 0, "max": 10, "doses": [1, 2]}]',
    ],
)
def test_table_from_json_rejects_malformed(raw: str) -> None:
    with pytest.raises(ValueError):
        table_from_json(raw)


def test_format_range() -> None:
    assert format_range(DEFAULT_INSULIN_TABLE[0]) == "≤ 70"
    assert format_range(DEFAULT_INSULIN_TABLE[2]) == "100 - 150"
    assert format_range(DEFAULT_INSULIN_TABLE[-1]) == "≥ 350"
