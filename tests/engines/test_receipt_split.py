"""Tests for rollstock_engines.receipt_split."""

from decimal import Decimal

import pytest

from rollstock_engines.receipt_split import split_measures, split_quantity
from rollstock_kernel.exceptions import ValidationError


class TestSplitQuantity:
    def test_single_unit_keeps_total(self):
        assert split_quantity(Decimal("612.45"), 1) == (Decimal("612.45"),)

    def test_even_split(self):
        assert split_quantity(Decimal("1000"), 2) == (Decimal("500.000"), Decimal("500.000"))

    def test_thirds_sum_exactly(self):
        parts = split_quantity(Decimal("1000"), 3)
        assert parts == (Decimal("333.333"), Decimal("333.333"), Decimal("333.334"))
        assert sum(parts) == Decimal("1000")

    def test_last_unit_absorbs_remainder(self):
        parts = split_quantity(Decimal("10"), 7)
        assert parts[:-1] == (Decimal("1.428"),) * 6
        assert parts[-1] == Decimal("1.432")
        assert sum(parts) == Decimal("10")

    def test_respects_places(self):
        parts = split_quantity(Decimal("100"), 3, places=0)
        assert parts == (Decimal("33"), Decimal("33"), Decimal("34"))

    @pytest.mark.parametrize("count", [0, -1])
    def test_rejects_unit_count_below_one(self, count):
        with pytest.raises(ValidationError) as exc_info:
            split_quantity(Decimal("10"), count)
        assert exc_info.value.field == "unit_count"

    def test_rejects_non_integer_unit_count(self):
        with pytest.raises(ValidationError):
            split_quantity(Decimal("10"), 2.5)

    @pytest.mark.parametrize("total", [Decimal("0"), Decimal("-5")])
    def test_rejects_non_positive_total(self, total):
        with pytest.raises(ValidationError):
            split_quantity(total, 2)

    def test_rejects_split_that_rounds_to_zero(self):
        with pytest.raises(ValidationError):
            split_quantity(Decimal("0.002"), 5)


class TestSplitMeasures:
    def test_split_running_metres(self):
        per_unit = split_measures({"running_metres": Decimal("6000")}, 3)
        assert [u["running_metres"] for u in per_unit] == [Decimal("2000")] * 3

    def test_zero_measure_stays_zero(self):
        per_unit = split_measures({"square_metres": Decimal("0")}, 2)
        assert per_unit == [{"square_metres": Decimal("0")}, {"square_metres": Decimal("0")}]

    def test_negative_measure_rejected(self):
        with pytest.raises(ValidationError):
            split_measures({"running_metres": Decimal("-1")}, 2)

    def test_no_measures(self):
        assert split_measures({}, 2) == [{}, {}]
