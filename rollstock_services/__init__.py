"""
rollstock_services -- stateful orchestration over the ledger kernel.

Receipt processing, material issue, returns and reversals, slitting, and
the ``InventoryLedger`` facade that wires them to one backend.
"""

from rollstock_services.allocation_service import AllocationService, IssueLineRequest
from rollstock_services.ledger import InventoryLedger, build_backend
from rollstock_services.receipt_processor import (
    GoodsReceipt,
    ReceiptLine,
    ReceiptProcessor,
    ReceiptResult,
)
from rollstock_services.return_service import ReturnLineRequest, ReturnService
from rollstock_services.transformation_service import (
    SlitResult,
    TransformationOutputRequest,
    TransformationService,
)

__all__ = [
    "AllocationService",
    "IssueLineRequest",
    "InventoryLedger",
    "build_backend",
    "GoodsReceipt",
    "ReceiptLine",
    "ReceiptProcessor",
    "ReceiptResult",
    "ReturnLineRequest",
    "ReturnService",
    "SlitResult",
    "TransformationOutputRequest",
    "TransformationService",
]
