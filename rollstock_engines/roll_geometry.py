"""
Module: rollstock_engines.roll_geometry
Responsibility:
    Convert between the three ways a roll of paper or film is measured:
    weight (kg), running metres (length) and square metres (area).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Formulas:
    square metres          sqm = metres * width_mm / 1000
    paper/sticker (GSM)    kg  = sqm * gsm / 1000
    film with density      kg  = metres * (thickness_um / 1e6)
                                 * (width_mm / 1000) * (density * 1000)
    Both reduce to ``kg = sqm * kg_per_square_metre`` where the area weight
    is ``gsm / 1000`` or ``thickness_um * density / 1000``.

Invariants enforced:
    - Decimal-only arithmetic; results are quantized to ``places``.
    - Film uses the density formula only when both thickness and density
      are positive; otherwise GSM applies.

Failure modes:
    - ValidationError when width is not positive or the roll has neither a
      GSM nor film thickness and density.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from rollstock_engines.tracer import traced_engine
from rollstock_kernel.domain.values import DEFAULT_DECIMAL_PLACES, parse_quantity, quantize
from rollstock_kernel.exceptions import ValidationError

_THOUSAND = Decimal("1000")


class ItemType(str, Enum):
    PAPER = "Paper"
    STICKER = "Sticker"
    FILM = "Film"


@dataclass(frozen=True)
class RollSpec:
    """
    Physical description of a roll.

    Contract:
        ``width_mm`` is required.  ``gsm`` is grams per square metre;
        ``thickness_micron`` and ``density`` (g/cm3) describe film.
    """

    width_mm: Decimal
    gsm: Decimal = Decimal("0")
    item_type: str | None = None
    thickness_micron: Decimal = Decimal("0")
    density: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.width_mm <= 0:
            raise ValidationError("width_mm", f"must be positive, got {self.width_mm}")

    @property
    def uses_density(self) -> bool:
        return (
            self.item_type == ItemType.FILM.value
            and self.thickness_micron > 0
            and self.density > 0
        )

    @property
    def kg_per_square_metre(self) -> Decimal:
        if self.uses_density:
            return self.thickness_micron * self.density / _THOUSAND
        if self.gsm > 0:
            return self.gsm / _THOUSAND
        raise ValidationError(
            "gsm", "roll needs a GSM, or film thickness and density, to convert weight"
        )

    def with_width(self, width_mm: Decimal) -> RollSpec:
        return RollSpec(
            width_mm=width_mm,
            gsm=self.gsm,
            item_type=self.item_type,
            thickness_micron=self.thickness_micron,
            density=self.density,
        )

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, Any]) -> RollSpec:
        """Build a RollSpec from a batch attribute snapshot."""
        if attributes.get("width_mm") in (None, ""):
            raise ValidationError("width_mm", "batch has no width attribute")

        def number(name: str) -> Decimal:
            raw = attributes.get(name)
            return parse_quantity(raw, name) if raw not in (None, "") else Decimal("0")

        return cls(
            width_mm=number("width_mm"),
            gsm=number("gsm"),
            item_type=attributes.get("item_type"),
            thickness_micron=number("thickness_micron"),
            density=number("density"),
        )


@dataclass(frozen=True)
class WastageMeasure:
    """One wastage amount expressed in all three measures."""

    kg: Decimal
    running_metres: Decimal
    square_metres: Decimal


def square_metres(
    metres: Decimal,
    width_mm: Decimal,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> Decimal:
    return quantize(metres * width_mm / _THOUSAND, places)


@traced_engine("roll_geometry", "1.0", fingerprint_fields=("metres", "spec"))
def kg_from_metres(
    metres: Decimal,
    spec: RollSpec,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> Decimal:
    """Weight of ``metres`` of roll at the roll's width."""
    area = metres * spec.width_mm / _THOUSAND
    return quantize(area * spec.kg_per_square_metre, places)


@traced_engine("roll_geometry", "1.0", fingerprint_fields=("kg", "spec"))
def metres_from_kg(
    kg: Decimal,
    spec: RollSpec,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> Decimal:
    """Running length that weighs ``kg`` at the roll's width."""
    area = kg / spec.kg_per_square_metre
    return quantize(area * _THOUSAND / spec.width_mm, places)


def wastage_from_kg(
    kg: Decimal,
    spec: RollSpec,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> WastageMeasure:
    if kg <= 0:
        return WastageMeasure(Decimal("0"), Decimal("0"), Decimal("0"))
    area = kg / spec.kg_per_square_metre
    return WastageMeasure(
        kg=quantize(kg, places),
        running_metres=quantize(area * _THOUSAND / spec.width_mm, places),
        square_metres=quantize(area, places),
    )


def wastage_from_running_metres(
    running_metres: Decimal,
    spec: RollSpec,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> WastageMeasure:
    if running_metres <= 0:
        return WastageMeasure(Decimal("0"), Decimal("0"), Decimal("0"))
    area = running_metres * spec.width_mm / _THOUSAND
    return WastageMeasure(
        kg=quantize(area * spec.kg_per_square_metre, places),
        running_metres=quantize(running_metres, places),
        square_metres=quantize(area, places),
    )


def wastage_from_square_metres(
    area: Decimal,
    spec: RollSpec,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> WastageMeasure:
    if area <= 0:
        return WastageMeasure(Decimal("0"), Decimal("0"), Decimal("0"))
    return WastageMeasure(
        kg=quantize(area * spec.kg_per_square_metre, places),
        running_metres=quantize(area * _THOUSAND / spec.width_mm, places),
        square_metres=quantize(area, places),
    )
