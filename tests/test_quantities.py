import os
import sys
from decimal import Decimal

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from buildledger.errors import InvalidQuantity  # noqa: E402
from buildledger.utils.quantities import MAX_QUANTITY, coerce_quantity  # noqa: E402


@pytest.mark.parametrize(
    "value, expected",
    [
        (5, 5),
        (-3, -3),
        ("12", 12),
        (" -4 ", -4),
        ("3.0", 3),
        (7.0, 7),
        (Decimal("9"), 9),
    ],
)
def test_accepts_integral_values(value, expected):
    assert coerce_quantity(value) == expected


@pytest.mark.parametrize(
    "value",
    [None, True, "", "abc", "1.5", 2.25, float("nan"), float("inf"), "Infinity", [1]],
)
def test_rejects_malformed_values(value):
    with pytest.raises(InvalidQuantity):
        coerce_quantity(value)


def test_minimum_is_enforced():
    assert coerce_quantity(0, minimum=0) == 0
    with pytest.raises(InvalidQuantity):
        coerce_quantity(-1, minimum=0)


def test_values_outside_the_ledger_column_are_rejected():
    assert coerce_quantity(MAX_QUANTITY) == MAX_QUANTITY
    assert coerce_quantity(-MAX_QUANTITY) == -MAX_QUANTITY
    for value in (MAX_QUANTITY + 1, -(MAX_QUANTITY + 1), 10**20, "1e30", 1e20):
        with pytest.raises(InvalidQuantity):
            coerce_quantity(value)
