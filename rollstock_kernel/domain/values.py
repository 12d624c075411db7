"""
Values -- Immutable, self-validating quantity value objects.

Responsibility:
    Provides ``Quantity`` (a Decimal paired with its unit of measure) and the
    helpers every ledger component uses to turn caller input into Decimal:
    ``parse_quantity``, ``quantize`` and ``within_tolerance``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic.  Floats are converted through ``str()`` so a
      caller passing ``0.1`` gets ``Decimal("0.1")``, not its binary
      approximation.
    - Arithmetic across different units is rejected.

Failure modes:
    - ValidationError from ``parse_quantity`` on non-numeric, NaN, infinite
      or boolean input.
    - ValueError when Quantity arithmetic mixes units.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from rollstock_kernel.exceptions import ValidationError

QuantityInput = Decimal | int | float | str

DEFAULT_DECIMAL_PLACES = 3
DEFAULT_TOLERANCE = Decimal("0.01")


def parse_quantity(value: QuantityInput, field: str = "quantity") -> Decimal:
    """
    Convert caller input into a finite Decimal.

    Raises:
        ValidationError: if the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValidationError(field, "boolean is not a quantity")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(field, f"not a number: {value!r}") from None
    else:
        raise ValidationError(field, f"unsupported type {type(value).__name__}")
    if not result.is_finite():
        raise ValidationError(field, f"not a finite number: {value!r}")
    return result


def quantize(
    value: Decimal,
    places: int = DEFAULT_DECIMAL_PLACES,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """Round ``value`` to ``places`` decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=rounding)


def quantize_down(value: Decimal, places: int = DEFAULT_DECIMAL_PLACES) -> Decimal:
    """Truncate ``value`` toward zero at ``places`` decimal places."""
    return quantize(value, places, ROUND_DOWN)


def within_tolerance(
    left: Decimal,
    right: Decimal,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> bool:
    """True when ``|left - right| <= tolerance``."""
    return abs(left - right) <= tolerance


@dataclass(frozen=True, slots=True)
class Quantity:
    """
    Numeric quantity with unit value object.

    Contract:
        Pairs a Decimal value with its unit of measure (``Kg``, ``Mtr``,
        ``Sheets``...).  Used for read-side projections of batch balances.

    Guarantees:
        - Immutable and hashable
        - value is always Decimal (never float)
        - unit is always a non-empty, stripped string
        - Addition enforces the same-unit constraint

    Non-goals:
        - Does NOT perform unit conversion (see rollstock_engines.roll_geometry
          for kg <-> running metre conversion of rolls)
    """

    value: Decimal
    unit: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", parse_quantity(self.value))
        if not self.unit or not self.unit.strip():
            raise ValueError("Quantity unit is required")
        object.__setattr__(self, "unit", self.unit.strip())

    @classmethod
    def zero(cls, unit: str) -> Quantity:
        return cls(value=Decimal("0"), unit=unit)

    def __add__(self, other: Quantity) -> Quantity:
        if not isinstance(other, Quantity):
            return NotImplemented
        if self.unit != other.unit:
            raise ValueError(
                f"Cannot add Quantity with different units: {self.unit} and {other.unit}"
            )
        return Quantity(value=self.value + other.value, unit=self.unit)

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"
