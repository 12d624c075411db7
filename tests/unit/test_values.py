"""Tests for quantity parsing, rounding and the Quantity value object."""

from decimal import Decimal

import pytest

from rollstock_kernel.domain.values import (
    Quantity,
    parse_quantity,
    quantize,
    quantize_down,
    within_tolerance,
)
from rollstock_kernel.exceptions import ValidationError


class TestParseQuantity:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("12.5", Decimal("12.5")),
            (" 7 ", Decimal("7")),
            (3, Decimal("3")),
            (0.1, Decimal("0.1")),
            (Decimal("1.250"), Decimal("1.250")),
        ],
    )
    def test_accepts_numbers(self, raw, expected):
        assert parse_quantity(raw) == expected

    def test_float_goes_through_str(self):
        assert parse_quantity(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("raw", ["abc", "", "NaN", "Infinity", True, None, [1]])
    def test_rejects_non_numbers(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_quantity(raw, "received_quantity")
        assert exc_info.value.field == "received_quantity"


class TestRounding:
    def test_quantize_half_up(self):
        assert quantize(Decimal("1.0005")) == Decimal("1.001")

    def test_quantize_down_truncates(self):
        assert quantize_down(Decimal("333.3339")) == Decimal("333.333")

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("300.01"), Decimal("300"))
        assert not within_tolerance(Decimal("300.011"), Decimal("300"))


class TestQuantity:
    def test_addition_same_unit(self):
        total = Quantity("2.5", "Kg") + Quantity("1.5", "Kg")
        assert total == Quantity(Decimal("4.0"), "Kg")

    def test_addition_rejects_mixed_units(self):
        with pytest.raises(ValueError):
            Quantity("1", "Kg") + Quantity("1", "Mtr")

    def test_value_parsed_from_input(self):
        assert Quantity(0.1, "Kg").value == Decimal("0.1")

    def test_unit_is_stripped(self):
        assert Quantity("1", " Kg ").unit == "Kg"

    def test_unit_required(self):
        with pytest.raises(ValueError):
            Quantity("1", "  ")

    def test_zero(self):
        assert Quantity.zero("Kg") + Quantity("3", "Kg") == Quantity(Decimal("3"), "Kg")

    def test_str(self):
        assert str(Quantity("12.5", "Kg")) == "12.5 Kg"
