"""
ReceiptProcessor -- turns a goods receipt note (GRN) into stock batches.

Responsibility:
    Splits every received line into one batch per physical unit (roll, bag,
    drum), numbers the receipt when no document id is supplied, and creates
    the batches through the BatchStore.

Architecture position:
    Services -- stateful orchestration.  Uses rollstock_engines.receipt_split
    for the arithmetic and rollstock_kernel.services.BatchStore for writes.

Invariants enforced:
    - For every line, the created batches' received quantities sum exactly
      to the line's total received quantity.
    - Divisible measures (running metres, square metres) are split across
      the units with the same rule.
    - All-or-nothing: if any line fails, batches created by earlier lines of
      the same receipt are removed and a generated GRN number is released.

Failure modes:
    - ValidationError: no lines, non-positive total, unit count < 1, empty
      uom or item code.
    - DuplicateBatchCodeError: the receipt's document id was already used.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from rollstock_engines.receipt_split import split_measures, split_quantity
from rollstock_kernel.domain.batch import Batch, BatchSpec
from rollstock_kernel.domain.values import DEFAULT_DECIMAL_PLACES, QuantityInput, parse_quantity
from rollstock_kernel.exceptions import StockLedgerError, ValidationError
from rollstock_kernel.logging_config import LogContext, get_logger
from rollstock_kernel.services.batch_store import BatchStore
from rollstock_kernel.services.document_sequence import DocumentSequenceService

logger = get_logger("services.receipt")


@dataclass(frozen=True)
class ReceiptLine:
    """
    One received item on a GRN.

    ``measures`` holds divisible physical totals for the whole line (for
    example ``{"running_metres": "6000"}``); ``attributes`` holds per-unit
    descriptive values copied unchanged onto every batch.
    """

    item_code: str
    total_received_quantity: QuantityInput
    unit_count: int = 1
    uom: str = "Kg"
    attributes: Mapping[str, Any] | None = None
    measures: Mapping[str, QuantityInput] | None = None


@dataclass(frozen=True)
class GoodsReceipt:
    lines: Sequence[ReceiptLine]
    document_id: str | None = None
    supplier: str | None = None
    received_on: date | None = None


@dataclass(frozen=True)
class ReceiptResult:
    document_id: str
    batches: tuple[Batch, ...]

    def batches_for_line(self, line_index: int) -> list[Batch]:
        """Batches created from the 1-based ``line_index``."""
        return [b for b in self.batches if b.lineage.line_index == line_index]


@dataclass(frozen=True)
class _PreparedLine:
    line: ReceiptLine
    quantities: tuple[Decimal, ...]
    measures: list[dict[str, Decimal]]


class ReceiptProcessor:
    """
    Creates batches for goods receipts.

    Contract:
        ``receive`` validates every line before allocating a document number
        or creating any batch.

    Non-goals:
        - Does NOT check the item code against a catalog.
        - Does NOT track purchase-order balances.
    """

    def __init__(
        self,
        batches: BatchStore,
        sequences: DocumentSequenceService,
        decimal_places: int = DEFAULT_DECIMAL_PLACES,
        prefix: str = DocumentSequenceService.GOODS_RECEIPT,
    ):
        self._batches = batches
        self._sequences = sequences
        self._decimal_places = decimal_places
        self._prefix = prefix

    def receive(self, receipt: GoodsReceipt) -> ReceiptResult:
        """
        Create one batch per unit for every line of ``receipt``.

        Batch codes are ``{document_id}-{line}-{unit:02d}`` with 1-based
        line and unit indexes.
        """
        prepared = self._prepare(receipt)
        generated = not receipt.document_id
        document_id = receipt.document_id or self._sequences.next_number(self._prefix)

        with LogContext.bind(document_id=document_id):
            created: list[Batch] = []
            try:
                with self._batches.transaction([]) as mutation:
                    if generated:
                        mutation.on_rollback(
                            "document_number",
                            lambda: self._sequences.release(document_id),
                        )
                    for line_index, item in enumerate(prepared, start=1):
                        for unit_index, quantity in enumerate(item.quantities, start=1):
                            created.append(
                                mutation.create(
                                    self._unit_spec(
                                        receipt, document_id, item, line_index, unit_index, quantity
                                    )
                                )
                            )
            except StockLedgerError as exc:
                logger.warning(
                    "receipt_rejected",
                    extra={"error_code": exc.code, "batches_undone": len(created)},
                )
                raise

            logger.info(
                "receipt_processed",
                extra={
                    "line_count": len(prepared),
                    "batch_count": len(created),
                    "supplier": receipt.supplier,
                },
            )
        return ReceiptResult(document_id=document_id, batches=tuple(created))

    def _prepare(self, receipt: GoodsReceipt) -> list[_PreparedLine]:
        if not receipt.lines:
            raise ValidationError("lines", "a receipt needs at least one line")
        prepared = []
        for index, line in enumerate(receipt.lines, start=1):
            if not (line.uom or "").strip():
                raise ValidationError(f"lines[{index}].uom", "required")
            if not (line.item_code or "").strip():
                raise ValidationError(f"lines[{index}].item_code", "required")
            total = parse_quantity(
                line.total_received_quantity, f"lines[{index}].total_received_quantity"
            )
            quantities = split_quantity(total, line.unit_count, self._decimal_places)
            measures = {
                name: parse_quantity(value, f"lines[{index}].measures.{name}")
                for name, value in (line.measures or {}).items()
            }
            prepared.append(
                _PreparedLine(
                    line=line,
                    quantities=quantities,
                    measures=split_measures(measures, line.unit_count, self._decimal_places),
                )
            )
        return prepared

    def _unit_spec(
        self,
        receipt: GoodsReceipt,
        document_id: str,
        item: _PreparedLine,
        line_index: int,
        unit_index: int,
        quantity: Decimal,
    ) -> BatchSpec:
        attributes: dict[str, Any] = dict(item.line.attributes or {})
        attributes.update(item.measures[unit_index - 1])
        attributes["unit_index"] = unit_index
        attributes["unit_count"] = len(item.quantities)
        if receipt.supplier:
            attributes["supplier"] = receipt.supplier
        if receipt.received_on:
            attributes["received_on"] = receipt.received_on
        return BatchSpec(
            item_code=item.line.item_code.strip(),
            uom=item.line.uom.strip(),
            received_quantity=quantity,
            source_document_id=document_id,
            batch_code=f"{document_id}-{line_index}-{unit_index:02d}",
            line_index=line_index,
            attributes=attributes,
        )
