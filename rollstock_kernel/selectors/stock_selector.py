"""
Stock register, item balance, batch movement history and reconciliation.

DTOs are defined inline following the selector convention.

Stock flags follow the store's register screen: a batch whose expiry date
has passed is EXPIRED, one at or below the low-stock fraction of its
received quantity is LOW_STOCK, an exhausted batch is CONSUMED, anything
else is IN_STOCK.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from rollstock_kernel.domain.batch import Batch, BatchStatus
from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.domain.values import Quantity, parse_quantity
from rollstock_kernel.exceptions import ValidationError
from rollstock_kernel.logging_config import get_logger
from rollstock_kernel.selectors.base import BaseSelector
from rollstock_kernel.services.batch_store import BatchStore
from rollstock_kernel.services.record_store import RecordStore

logger = get_logger("selectors.stock")

ROLL_CATEGORY = "Roll"
MATERIAL_CATEGORY = "Material"


# ============================================================================
# DTOs
# ============================================================================


class StockFlag(str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    EXPIRED = "expired"
    CONSUMED = "consumed"


class MovementKind(str, Enum):
    RECEIPT = "receipt"
    SLIT_OUTPUT = "slit_output"
    ISSUE = "issue"
    RETURN = "return"
    REVERSAL = "reversal"
    SLIT_INPUT = "slit_input"


@dataclass(frozen=True)
class StockRegisterRow:
    """One batch line of the stock register."""

    batch_id: str
    batch_code: str
    item_code: str
    item_name: str | None
    category: str
    uom: str
    received_quantity: Decimal
    remaining_quantity: Decimal
    status: BatchStatus
    flag: StockFlag
    received_on: date
    aging_days: int
    expiry_date: date | None
    source_document_id: str


@dataclass(frozen=True)
class ItemBalance:
    """Remaining quantity of one item, totalled per unit of measure."""

    item_code: str
    totals: Mapping[str, Quantity]
    batch_count: int
    available_batch_count: int

    def total(self, uom: str) -> Decimal:
        quantity = self.totals.get(uom)
        return quantity.value if quantity is not None else Decimal("0")


@dataclass(frozen=True)
class BatchMovement:
    """A signed change to a batch's remaining quantity and the document behind it."""

    kind: MovementKind
    document_id: str
    quantity: Decimal
    occurred_at: datetime
    reference: str | None = None


@dataclass(frozen=True)
class BatchReconciliation:
    """
    Remaining quantity as stored versus as explained by records.

    ``expected_remaining = received - net_issued - transformed``.
    """

    batch_id: str
    received_quantity: Decimal
    remaining_quantity: Decimal
    net_issued: Decimal
    transformed: Decimal
    expected_remaining: Decimal

    @property
    def is_consistent(self) -> bool:
        return self.expected_remaining == self.remaining_quantity

    @property
    def discrepancy(self) -> Decimal:
        return self.remaining_quantity - self.expected_remaining


# ============================================================================
# Selector
# ============================================================================


class StockSelector(BaseSelector):
    """
    Read-side stock projections.

    Contract:
        Every figure comes from the batch snapshot (remaining quantity) or
        from stored records (movements).  Nothing is written.
    """

    def __init__(
        self,
        batches: BatchStore,
        records: RecordStore,
        clock: Clock | None = None,
        low_stock_fraction: Decimal = Decimal("0.10"),
    ):
        super().__init__(batches, records)
        self._clock = clock or SystemClock()
        self._low_stock_fraction = low_stock_fraction

    def stock_register(
        self,
        item_code: str | None = None,
        category: str | None = None,
        include_consumed: bool = False,
    ) -> list[StockRegisterRow]:
        """
        Stock register rows in FIFO order.

        Args:
            item_code: restrict to one item.
            category: restrict to ``Roll``, ``Material`` or a stored category.
            include_consumed: include batches with nothing remaining.
        """
        source = (
            self.batches.list_by_item_code(item_code)
            if item_code is not None
            else self.batches.list_all()
        )
        today = self._clock.now().date()
        rows = []
        for batch in source:
            if not include_consumed and not batch.is_available:
                continue
            row = self._register_row(batch, today)
            if category is not None and row.category != category:
                continue
            rows.append(row)
        logger.debug(
            "stock_register_built",
            extra={"item_code": item_code, "category": category, "row_count": len(rows)},
        )
        return rows

    def item_balance(self, item_code: str) -> ItemBalance:
        totals: dict[str, Quantity] = {}
        batches = self.batches.list_by_item_code(item_code)
        for batch in batches:
            totals[batch.uom] = totals.get(batch.uom, Quantity.zero(batch.uom)) + batch.remaining
        return ItemBalance(
            item_code=item_code,
            totals=MappingProxyType(totals),
            batch_count=len(batches),
            available_batch_count=sum(1 for b in batches if b.is_available),
        )

    def batch_movements(self, batch_id: str) -> list[BatchMovement]:
        """Chronological movements that explain the batch's remaining quantity."""
        batch = self.batches.get_by_id(batch_id)
        movements = [self._origin_movement(batch)]

        for issue in self.records.issues_for_batch(batch_id):
            issued = issue.issued_quantity(batch_id)
            movements.append(
                BatchMovement(
                    kind=MovementKind.ISSUE,
                    document_id=issue.id,
                    quantity=-issued,
                    occurred_at=issue.created_at,
                    reference=issue.consumer_ref,
                )
            )
            returned = Decimal("0")
            for ret in self.records.returns_for_issue(issue.id):
                qty = ret.returned_quantity(batch_id)
                if qty == 0:
                    continue
                returned += qty
                movements.append(
                    BatchMovement(
                        kind=MovementKind.RETURN,
                        document_id=ret.id,
                        quantity=qty,
                        occurred_at=ret.created_at,
                        reference=issue.id,
                    )
                )
            if issue.is_reversed and issued > returned:
                movements.append(
                    BatchMovement(
                        kind=MovementKind.REVERSAL,
                        document_id=issue.id,
                        quantity=issued - returned,
                        occurred_at=issue.reversed_at,
                        reference=issue.reversal_reason,
                    )
                )

        for consumed in self.records.transformations_consuming(batch_id):
            movements.append(
                BatchMovement(
                    kind=MovementKind.SLIT_INPUT,
                    document_id=consumed.id,
                    quantity=-consumed.input_quantity,
                    occurred_at=consumed.created_at,
                    reference=consumed.machine_no,
                )
            )
        return sorted(movements, key=lambda m: m.occurred_at)

    def reconcile_batch(self, batch_id: str) -> BatchReconciliation:
        """
        Check stored remaining quantity against the issue, return and slitting
        records for the batch.
        """
        batch = self.batches.get_by_id(batch_id)
        net_issued = Decimal("0")
        for issue in self.records.issues_for_batch(batch_id):
            if issue.is_reversed:
                continue
            net_issued += issue.issued_quantity(batch_id)
            net_issued -= self.records.returned_quantity(issue.id, batch_id)
        transformed = sum(
            (t.input_quantity for t in self.records.transformations_consuming(batch_id)),
            Decimal("0"),
        )
        result = BatchReconciliation(
            batch_id=batch_id,
            received_quantity=batch.received_quantity,
            remaining_quantity=batch.remaining_quantity,
            net_issued=net_issued,
            transformed=transformed,
            expected_remaining=batch.received_quantity - net_issued - transformed,
        )
        if not result.is_consistent:
            logger.error(
                "batch_reconciliation_mismatch",
                extra={
                    "batch_id": batch_id,
                    "remaining_quantity": str(result.remaining_quantity),
                    "expected_remaining": str(result.expected_remaining),
                },
            )
        return result

    # ------------------------------------------------------------------------
    # Row assembly
    # ------------------------------------------------------------------------

    def _register_row(self, batch: Batch, today: date) -> StockRegisterRow:
        expiry = _parse_expiry(batch)
        if not batch.is_available:
            flag = StockFlag.CONSUMED
        elif expiry is not None and expiry < today:
            flag = StockFlag.EXPIRED
        elif batch.remaining_quantity <= batch.received_quantity * self._low_stock_fraction:
            flag = StockFlag.LOW_STOCK
        else:
            flag = StockFlag.IN_STOCK
        received_on = batch.created_at.date()
        return StockRegisterRow(
            batch_id=batch.id,
            batch_code=batch.batch_code,
            item_code=batch.item_code,
            item_name=batch.attributes.get("item_name"),
            category=_category(batch),
            uom=batch.uom,
            received_quantity=batch.received_quantity,
            remaining_quantity=batch.remaining_quantity,
            status=batch.status,
            flag=flag,
            received_on=received_on,
            aging_days=max((today - received_on).days, 0),
            expiry_date=expiry,
            source_document_id=batch.source_document_id,
        )

    def _origin_movement(self, batch: Batch) -> BatchMovement:
        if batch.parent_batch_id is not None:
            return BatchMovement(
                kind=MovementKind.SLIT_OUTPUT,
                document_id=batch.source_document_id,
                quantity=batch.received_quantity,
                occurred_at=batch.created_at,
                reference=batch.parent_batch_id,
            )
        return BatchMovement(
            kind=MovementKind.RECEIPT,
            document_id=batch.source_document_id,
            quantity=batch.received_quantity,
            occurred_at=batch.created_at,
        )


def _category(batch: Batch) -> str:
    stored = batch.attributes.get("category")
    if stored:
        return str(stored)
    running = batch.attributes.get("running_metres")
    if running is not None:
        try:
            if parse_quantity(running, "running_metres") > 0:
                return ROLL_CATEGORY
        except ValidationError:
            logger.warning(
                "batch_attribute_unparseable",
                extra={"batch_id": batch.id, "attribute": "running_metres"},
            )
    return MATERIAL_CATEGORY


def _parse_expiry(batch: Batch) -> date | None:
    raw = batch.attributes.get("expiry_date")
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        logger.warning(
            "batch_attribute_unparseable",
            extra={"batch_id": batch.id, "attribute": "expiry_date"},
        )
        return None
