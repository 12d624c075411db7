"""Read-only selectors over batches and movement records."""

from rollstock_kernel.selectors.stock_selector import (
    BatchMovement,
    BatchReconciliation,
    ItemBalance,
    MovementKind,
    StockFlag,
    StockRegisterRow,
    StockSelector,
)
from rollstock_kernel.selectors.trace_selector import LineageTrace, TraceSelector

__all__ = [
    "StockSelector",
    "StockRegisterRow",
    "StockFlag",
    "ItemBalance",
    "BatchMovement",
    "MovementKind",
    "BatchReconciliation",
    "TraceSelector",
    "LineageTrace",
]
