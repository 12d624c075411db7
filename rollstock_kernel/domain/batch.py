"""
Batch -- the unit of lot-tracked inventory.

Responsibility:
    Defines the immutable ``Batch`` value object, its derived ``BatchStatus``
    and ``BatchLineage``, and ``BatchSpec`` (the creation request accepted by
    ``BatchStore.create_batch``).

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - ``0 <= remaining_quantity <= received_quantity`` is checked by
      ``Batch.__post_init__`` so no Batch value outside the range can exist.
    - ``received_quantity``, ``uom``, ``lineage``, ``created_at`` and
      ``attributes`` never change; ``with_remaining`` and ``closed`` return
      copies that only touch remaining quantity, ``closed_by`` and ``version``.
    - Status is derived from the two quantities, never stored.

Failure modes:
    - ValueError from ``__post_init__`` if a constructed batch breaks the
      quantity range (programming error: the store validates first).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from rollstock_kernel.domain.codec import (
    decode_datetime,
    decode_decimal,
    encode_datetime,
    encode_decimal,
    normalize_attributes,
)
from rollstock_kernel.domain.values import Quantity, QuantityInput


class BatchStatus(str, Enum):
    """Status derived from received vs remaining quantity."""

    AVAILABLE = "available"
    PARTIALLY_ISSUED = "partially_issued"
    CONSUMED = "consumed"


@dataclass(frozen=True, slots=True)
class BatchLineage:
    """Where a batch came from: a receipt document or a parent batch."""

    source_document_id: str
    parent_batch_id: str | None = None
    line_index: int | None = None

    @property
    def is_derived(self) -> bool:
        return self.parent_batch_id is not None


@dataclass(frozen=True, slots=True)
class BatchSpec:
    """
    Request to create a batch.

    ``batch_code`` defaults to the generated batch id when omitted.
    """

    item_code: str
    uom: str
    received_quantity: QuantityInput
    source_document_id: str
    batch_code: str | None = None
    parent_batch_id: str | None = None
    line_index: int | None = None
    attributes: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class Batch:
    """
    Immutable snapshot of one stock batch.

    A new snapshot is produced by the BatchStore for every applied delta;
    ``version`` counts those deltas.
    """

    id: str
    batch_code: str
    item_code: str
    uom: str
    received_quantity: Decimal
    remaining_quantity: Decimal
    lineage: BatchLineage
    created_at: datetime
    sequence: int
    attributes: Mapping[str, Any]
    closed_by: str | None = None
    version: int = 0

    def __post_init__(self) -> None:
        if self.received_quantity <= 0:
            raise ValueError(
                f"Batch {self.id} received quantity must be positive, "
                f"got {self.received_quantity}"
            )
        if not (0 <= self.remaining_quantity <= self.received_quantity):
            raise ValueError(
                f"Batch {self.id} remaining {self.remaining_quantity} outside "
                f"[0, {self.received_quantity}]"
            )

    @property
    def status(self) -> BatchStatus:
        if self.remaining_quantity == self.received_quantity:
            return BatchStatus.AVAILABLE
        if self.remaining_quantity == 0:
            return BatchStatus.CONSUMED
        return BatchStatus.PARTIALLY_ISSUED

    @property
    def received(self) -> Quantity:
        return Quantity(value=self.received_quantity, unit=self.uom)

    @property
    def remaining(self) -> Quantity:
        return Quantity(value=self.remaining_quantity, unit=self.uom)

    @property
    def drawn_quantity(self) -> Decimal:
        """Quantity no longer in the batch (issued or slit)."""
        return self.received_quantity - self.remaining_quantity

    @property
    def is_available(self) -> bool:
        return self.remaining_quantity > 0

    @property
    def is_closed(self) -> bool:
        return self.closed_by is not None

    @property
    def parent_batch_id(self) -> str | None:
        return self.lineage.parent_batch_id

    @property
    def source_document_id(self) -> str:
        return self.lineage.source_document_id

    def with_remaining(self, remaining_quantity: Decimal) -> Batch:
        return replace(
            self,
            remaining_quantity=remaining_quantity,
            version=self.version + 1,
        )

    def closed(self, transformation_id: str | None) -> Batch:
        return replace(self, closed_by=transformation_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "batch_code": self.batch_code,
            "item_code": self.item_code,
            "uom": self.uom,
            "received_quantity": encode_decimal(self.received_quantity),
            "remaining_quantity": encode_decimal(self.remaining_quantity),
            "source_document_id": self.lineage.source_document_id,
            "parent_batch_id": self.lineage.parent_batch_id,
            "line_index": self.lineage.line_index,
            "created_at": encode_datetime(self.created_at),
            "sequence": self.sequence,
            "attributes": dict(self.attributes),
            "closed_by": self.closed_by,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Batch:
        return cls(
            id=data["id"],
            batch_code=data["batch_code"],
            item_code=data["item_code"],
            uom=data["uom"],
            received_quantity=decode_decimal(data["received_quantity"]),
            remaining_quantity=decode_decimal(data["remaining_quantity"]),
            lineage=BatchLineage(
                source_document_id=data["source_document_id"],
                parent_batch_id=data.get("parent_batch_id"),
                line_index=data.get("line_index"),
            ),
            created_at=decode_datetime(data["created_at"]),
            sequence=int(data["sequence"]),
            attributes=normalize_attributes(data.get("attributes")),
            closed_by=data.get("closed_by"),
            version=int(data.get("version", 0)),
        )
