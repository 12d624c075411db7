"""
Module: rollstock_engines.receipt_split
Responsibility:
    Split one received line total into N per-unit batch quantities (one per
    roll, bag or drum) so that the parts add back to the total exactly.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - sum(parts) == total exactly (no tolerance).
    - Units 1..n-1 receive ``round_down(total / n, places)``; the last unit
      receives the remainder, so it is never smaller than the others.
    - Every part is strictly positive.

Failure modes:
    - ValidationError if ``unit_count < 1``, ``total <= 0`` or the total is
      too small to give every unit a positive quantity at ``places``.

Usage:
    split_quantity(Decimal("1000"), 3, 3)
    # (Decimal("333.333"), Decimal("333.333"), Decimal("333.334"))
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from rollstock_engines.tracer import traced_engine
from rollstock_kernel.domain.values import DEFAULT_DECIMAL_PLACES, quantize_down
from rollstock_kernel.exceptions import ValidationError


def _validate_count(unit_count: int) -> None:
    if isinstance(unit_count, bool) or not isinstance(unit_count, int):
        raise ValidationError("unit_count", f"must be an integer, got {unit_count!r}")
    if unit_count < 1:
        raise ValidationError("unit_count", f"must be at least 1, got {unit_count}")


def _split(total: Decimal, unit_count: int, places: int) -> tuple[Decimal, ...]:
    if unit_count == 1:
        return (total,)
    per_unit = quantize_down(total / unit_count, places)
    last = total - per_unit * (unit_count - 1)
    return (per_unit,) * (unit_count - 1) + (last,)


@traced_engine("receipt_split", "1.0", fingerprint_fields=("total", "unit_count", "places"))
def split_quantity(
    total: Decimal,
    unit_count: int,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> tuple[Decimal, ...]:
    """
    Per-unit quantities for ``unit_count`` batches.

    Raises:
        ValidationError: on a non-positive total or unit count, or when the
            per-unit share rounds down to zero.
    """
    _validate_count(unit_count)
    if total <= 0:
        raise ValidationError("total_received_quantity", f"must be positive, got {total}")
    parts = _split(total, unit_count, places)
    if parts[0] <= 0:
        raise ValidationError(
            "unit_count",
            f"{total} cannot be split into {unit_count} units at {places} decimal places",
        )
    return parts


def split_measures(
    measures: Mapping[str, Decimal],
    unit_count: int,
    places: int = DEFAULT_DECIMAL_PLACES,
) -> list[dict[str, Decimal]]:
    """
    Split divisible measures (running metres, square metres) across units.

    Returns one dict per unit.  Zero measures stay zero on every unit;
    negative measures are rejected.
    """
    _validate_count(unit_count)
    per_unit: list[dict[str, Decimal]] = [{} for _ in range(unit_count)]
    for name, value in measures.items():
        if value < 0:
            raise ValidationError(f"measures.{name}", f"must not be negative, got {value}")
        parts = _split(value, unit_count, places) if value > 0 else (value,) * unit_count
        for unit, part in zip(per_unit, parts):
            unit[name] = part
    return per_unit
