"""Pruebas de la normalización de montos."""

from decimal import Decimal

import pytest

from errors import ValidationError
from utils.money import cents, to_money

D = Decimal


@pytest.mark.parametrize("value, expected", [
    ("100", D("100.00")),
    ("0.1", D("0.10")),
    (D("999999999999.99"), D("999999999999.99")),
    (7, D("7.00")),
])
def test_valid_amounts(value, expected):
    amount = to_money(value, "amount")

    assert amount == expected
    assert str(amount) == str(expected)


@pytest.mark.parametrize("value", [
    "1e30",
    "1E+100",
    D("1e12"),
    "1000000000000",
    "NaN",
    "Infinity",
    0.1,
    True,
])
def test_rejected_amounts_are_validation_errors(value):
    with pytest.raises(ValidationError) as excinfo:
        to_money(value, "opening_amount")

    assert excinfo.value.field == "opening_amount"


def test_negative_allowed_keeps_the_cap():
    assert to_money("-5.50", "difference", allow_negative=True) == D("-5.50")
    with pytest.raises(ValidationError):
        to_money("-1e12", "difference", allow_negative=True)


def test_cents_folds_negative_zero():
    assert str(cents(D("-0.00"))) == "0.00"
    assert cents(None) == D("0.00")
