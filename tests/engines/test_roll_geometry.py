"""Tests for roll weight, length and area conversions."""

from decimal import Decimal

import pytest

from rollstock_engines.roll_geometry import (
    ItemType,
    RollSpec,
    kg_from_metres,
    metres_from_kg,
    square_metres,
    wastage_from_kg,
    wastage_from_running_metres,
    wastage_from_square_metres,
)
from rollstock_kernel.exceptions import ValidationError


@pytest.fixture
def paper():
    return RollSpec(width_mm=Decimal("1000"), gsm=Decimal("60"), item_type=ItemType.PAPER.value)


@pytest.fixture
def film():
    return RollSpec(
        width_mm=Decimal("1000"),
        item_type=ItemType.FILM.value,
        thickness_micron=Decimal("20"),
        density=Decimal("0.91"),
    )


class TestRollSpec:
    def test_paper_area_weight_from_gsm(self, paper):
        assert paper.kg_per_square_metre == Decimal("0.06")
        assert not paper.uses_density

    def test_film_area_weight_from_density(self, film):
        assert film.uses_density
        assert film.kg_per_square_metre == Decimal("0.0182")

    def test_film_without_density_falls_back_to_gsm(self):
        spec = RollSpec(width_mm=Decimal("500"), gsm=Decimal("18"), item_type="Film")
        assert not spec.uses_density
        assert spec.kg_per_square_metre == Decimal("0.018")

    def test_unknown_area_weight_rejected(self):
        spec = RollSpec(width_mm=Decimal("500"))
        with pytest.raises(ValidationError):
            spec.kg_per_square_metre

    def test_non_positive_width_rejected(self):
        with pytest.raises(ValidationError):
            RollSpec(width_mm=Decimal("0"))

    def test_with_width_keeps_material(self, film):
        narrow = film.with_width(Decimal("250"))
        assert narrow.width_mm == Decimal("250")
        assert narrow.kg_per_square_metre == film.kg_per_square_metre

    def test_from_attributes(self):
        spec = RollSpec.from_attributes(
            {"width_mm": "800", "gsm": "70", "item_type": "Paper", "item_name": "Kraft"}
        )
        assert spec.width_mm == Decimal("800")
        assert spec.gsm == Decimal("70")
        assert spec.thickness_micron == Decimal("0")

    def test_from_attributes_requires_width(self):
        with pytest.raises(ValidationError):
            RollSpec.from_attributes({"gsm": "70"})


class TestConversions:
    def test_square_metres(self):
        assert square_metres(Decimal("500"), Decimal("250")) == Decimal("125.000")

    def test_kg_from_metres_paper(self, paper):
        assert kg_from_metres(Decimal("10000"), paper) == Decimal("600.000")

    def test_kg_from_metres_film(self, film):
        assert kg_from_metres(Decimal("1000"), film) == Decimal("18.200")

    def test_metres_from_kg_inverts_kg_from_metres(self, paper):
        assert metres_from_kg(Decimal("600"), paper) == Decimal("10000.000")

    def test_narrow_roll_weighs_proportionally(self, paper):
        narrow = paper.with_width(Decimal("250"))
        assert kg_from_metres(Decimal("10000"), narrow) == Decimal("150.000")


class TestWastage:
    def test_from_kg(self, paper):
        measure = wastage_from_kg(Decimal("6"), paper)
        assert measure.kg == Decimal("6.000")
        assert measure.square_metres == Decimal("100.000")
        assert measure.running_metres == Decimal("100.000")

    def test_from_running_metres(self, paper):
        measure = wastage_from_running_metres(Decimal("100"), paper)
        assert measure.kg == Decimal("6.000")
        assert measure.square_metres == Decimal("100.000")

    def test_from_square_metres(self, paper):
        measure = wastage_from_square_metres(Decimal("50"), paper)
        assert measure.kg == Decimal("3.000")
        assert measure.running_metres == Decimal("50.000")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-2")])
    def test_no_wastage_is_all_zero(self, paper, amount):
        measure = wastage_from_kg(amount, paper)
        assert (measure.kg, measure.running_metres, measure.square_metres) == (0, 0, 0)
