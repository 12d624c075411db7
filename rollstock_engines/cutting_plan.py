"""
Module: rollstock_engines.cutting_plan
Responsibility:
    Check a slitting cutting plan (widths x counts) against the mother roll
    width and describe the result the way the slitting screen shows it:
    ``(250×2) + (200×2) = 900mm``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A plan is rejected when ``sum(width * count)`` exceeds the input width.
    - Unused width above ``warn_unused_fraction`` (10 % by default) produces a
      warning, not a rejection.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from rollstock_engines.tracer import traced_engine
from rollstock_kernel.domain.values import QuantityInput, parse_quantity
from rollstock_kernel.exceptions import ValidationError

DEFAULT_WARN_UNUSED_FRACTION = Decimal("0.10")


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class CuttingPlan:
    """``count`` child rolls of ``width_mm`` each."""

    width_mm: Decimal
    count: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.width_mm, Decimal):
            object.__setattr__(self, "width_mm", parse_quantity(self.width_mm, "width_mm"))
        if self.width_mm <= 0:
            raise ValidationError("width_mm", f"must be positive, got {self.width_mm}")
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 1:
            raise ValidationError("count", f"must be a positive integer, got {self.count!r}")

    @classmethod
    def of(cls, width_mm: QuantityInput, count: int = 1) -> CuttingPlan:
        return cls(width_mm=parse_quantity(width_mm, "width_mm"), count=count)

    @property
    def total_width(self) -> Decimal:
        return self.width_mm * self.count

    @property
    def label(self) -> str:
        return f"({_fmt(self.width_mm)}×{self.count})"


@dataclass(frozen=True)
class CuttingPlanCheck:
    """Outcome of validating cutting plans against a mother roll."""

    is_valid: bool
    input_width: Decimal
    total_used_width: Decimal
    calculation: str
    message: str | None = None
    warning: str | None = None

    @property
    def unused_width(self) -> Decimal:
        return self.input_width - self.total_used_width

    @property
    def unused_percent(self) -> Decimal:
        return self.unused_width / self.input_width * 100


def expand_widths(plans: Sequence[CuttingPlan]) -> list[Decimal]:
    """One width per child roll, in plan order."""
    return [plan.width_mm for plan in plans for _ in range(plan.count)]


@traced_engine("cutting_plan", "1.0", fingerprint_fields=("input_width", "plans"))
def validate_cutting_plans(
    input_width: Decimal,
    plans: Sequence[CuttingPlan],
    warn_unused_fraction: Decimal = DEFAULT_WARN_UNUSED_FRACTION,
) -> CuttingPlanCheck:
    if input_width <= 0:
        raise ValidationError("input_width", f"must be positive, got {input_width}")
    if not plans:
        raise ValidationError("plans", "at least one cutting plan is required")

    used = sum((plan.total_width for plan in plans), Decimal("0"))
    calculation = " + ".join(plan.label for plan in plans) + f" = {_fmt(used)}mm"

    if used > input_width:
        return CuttingPlanCheck(
            is_valid=False,
            input_width=input_width,
            total_used_width=used,
            calculation=calculation,
            message=(
                f"Total width {_fmt(used)}mm exceeds mother roll width "
                f"{_fmt(input_width)}mm"
            ),
        )
    if used == input_width:
        return CuttingPlanCheck(
            is_valid=True,
            input_width=input_width,
            total_used_width=used,
            calculation=calculation,
            message="Perfect match! 100% width utilization",
        )

    unused = input_width - used
    warning = None
    if unused / input_width > warn_unused_fraction:
        percent = (unused / input_width * 100).quantize(Decimal("0.1"))
        warning = f"{_fmt(unused)}mm width unused ({percent}% wastage)"
    return CuttingPlanCheck(
        is_valid=True,
        input_width=input_width,
        total_used_width=used,
        calculation=calculation,
        warning=warning,
    )
