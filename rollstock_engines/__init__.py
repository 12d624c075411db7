"""
Module: rollstock_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the ledger services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rollstock_kernel.domain, rollstock_kernel.exceptions and
    logging.  MUST NOT import rollstock_services or rollstock_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps arrive as
      parameters (batch created_at for FIFO ordering).
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine``, emitting
    ROLLSTOCK_ENGINE_TRACE records with engine name, version, input
    fingerprint and duration.
"""

from rollstock_engines.cutting_plan import (
    CuttingPlan,
    CuttingPlanCheck,
    expand_widths,
    validate_cutting_plans,
)
from rollstock_engines.receipt_split import split_measures, split_quantity
from rollstock_engines.roll_geometry import (
    ItemType,
    RollSpec,
    WastageMeasure,
    kg_from_metres,
    metres_from_kg,
    square_metres,
    wastage_from_kg,
    wastage_from_running_metres,
    wastage_from_square_metres,
)
from rollstock_engines.selection import (
    DrawCandidate,
    DrawLine,
    DrawPlan,
    SelectionPolicy,
    plan_draw,
)

__all__ = [
    "CuttingPlan",
    "CuttingPlanCheck",
    "expand_widths",
    "validate_cutting_plans",
    "split_quantity",
    "split_measures",
    "ItemType",
    "RollSpec",
    "WastageMeasure",
    "kg_from_metres",
    "metres_from_kg",
    "square_metres",
    "wastage_from_kg",
    "wastage_from_running_metres",
    "wastage_from_square_metres",
    "DrawCandidate",
    "DrawLine",
    "DrawPlan",
    "SelectionPolicy",
    "plan_draw",
]
