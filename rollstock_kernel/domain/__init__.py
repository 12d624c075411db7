"""Pure domain types: batches, movement records, quantities and clocks."""

from rollstock_kernel.domain.batch import Batch, BatchLineage, BatchSpec, BatchStatus
from rollstock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rollstock_kernel.domain.records import (
    ConsumerKind,
    IssueLine,
    IssuePolicy,
    IssueRecord,
    QualityStatus,
    ReturnLine,
    ReturnRecord,
    TransformationOutput,
    TransformationRecord,
)
from rollstock_kernel.domain.values import (
    DEFAULT_DECIMAL_PLACES,
    DEFAULT_TOLERANCE,
    Quantity,
    QuantityInput,
    parse_quantity,
    quantize,
    quantize_down,
    within_tolerance,
)

__all__ = [
    "Batch",
    "BatchLineage",
    "BatchSpec",
    "BatchStatus",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ConsumerKind",
    "IssueLine",
    "IssuePolicy",
    "IssueRecord",
    "QualityStatus",
    "ReturnLine",
    "ReturnRecord",
    "TransformationOutput",
    "TransformationRecord",
    "DEFAULT_DECIMAL_PLACES",
    "DEFAULT_TOLERANCE",
    "Quantity",
    "QuantityInput",
    "parse_quantity",
    "quantize",
    "quantize_down",
    "within_tolerance",
]
