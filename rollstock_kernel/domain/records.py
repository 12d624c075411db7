"""
Records -- immutable documents describing stock movements.

Responsibility:
    ``IssueRecord`` (material issue to a job or department), ``ReturnRecord``
    (partial reversal of an issue) and ``TransformationRecord`` (slitting of
    one roll into several).  Each carries explicit typed foreign keys
    (``issue_id``, ``batch_id``); nothing is re-derived from display strings.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every issue/return line quantity is strictly positive.
    - A transformation lists at least one output.
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
    decode_optional_datetime,
    encode_datetime,
    encode_decimal,
    encode_optional_datetime,
)


class ConsumerKind(str, Enum):
    """Who receives issued material."""

    JOB = "job"
    DEPARTMENT = "department"


class IssuePolicy(str, Enum):
    """How the batches on an issue were chosen."""

    EXPLICIT = "explicit"
    FIFO = "fifo"
    LIFO = "lifo"


class QualityStatus(str, Enum):
    """Condition of returned material."""

    OK = "ok"
    DAMAGED = "damaged"
    PENDING_INSPECTION = "pending_inspection"


# =============================================================================
# Issue
# =============================================================================


@dataclass(frozen=True, slots=True)
class IssueLine:
    batch_id: str
    batch_code: str
    item_code: str
    uom: str
    quantity: Decimal

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Issue line quantity must be positive, got {self.quantity}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_code": self.batch_code,
            "item_code": self.item_code,
            "uom": self.uom,
            "quantity": encode_decimal(self.quantity),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IssueLine:
        return cls(
            batch_id=data["batch_id"],
            batch_code=data["batch_code"],
            item_code=data["item_code"],
            uom=data["uom"],
            quantity=decode_decimal(data["quantity"]),
        )


@dataclass(frozen=True, slots=True)
class IssueRecord:
    """
    One allocation event debiting one or more batches for one consumer.

    ``reversed_at`` is set once the issue has been reversed; a reversed issue
    no longer counts toward issued quantities and accepts no returns.
    """

    id: str
    consumer_ref: str
    created_at: datetime
    lines: tuple[IssueLine, ...]
    policy: IssuePolicy = IssuePolicy.EXPLICIT
    consumer_kind: ConsumerKind | None = None
    issued_by: str | None = None
    remarks: str | None = None
    reversed_at: datetime | None = None
    reversal_reason: str | None = None

    @property
    def is_reversed(self) -> bool:
        return self.reversed_at is not None

    @property
    def batch_ids(self) -> frozenset[str]:
        return frozenset(line.batch_id for line in self.lines)

    def issued_quantity(self, batch_id: str) -> Decimal:
        """Total issued from ``batch_id`` on this record (lines may repeat a batch)."""
        return sum(
            (line.quantity for line in self.lines if line.batch_id == batch_id),
            Decimal("0"),
        )

    def reversed(self, at: datetime, reason: str | None) -> IssueRecord:
        return replace(self, reversed_at=at, reversal_reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "consumer_ref": self.consumer_ref,
            "created_at": encode_datetime(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
            "policy": self.policy.value,
            "consumer_kind": self.consumer_kind.value if self.consumer_kind else None,
            "issued_by": self.issued_by,
            "remarks": self.remarks,
            "reversed_at": encode_optional_datetime(self.reversed_at),
            "reversal_reason": self.reversal_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IssueRecord:
        kind = data.get("consumer_kind")
        return cls(
            id=data["id"],
            consumer_ref=data["consumer_ref"],
            created_at=decode_datetime(data["created_at"]),
            lines=tuple(IssueLine.from_dict(line) for line in data["lines"]),
            policy=IssuePolicy(data.get("policy", IssuePolicy.EXPLICIT.value)),
            consumer_kind=ConsumerKind(kind) if kind else None,
            issued_by=data.get("issued_by"),
            remarks=data.get("remarks"),
            reversed_at=decode_optional_datetime(data.get("reversed_at")),
            reversal_reason=data.get("reversal_reason"),
        )


# =============================================================================
# Return
# =============================================================================


@dataclass(frozen=True, slots=True)
class ReturnLine:
    batch_id: str
    quantity: Decimal
    reason: str | None = None
    quality_status: QualityStatus = QualityStatus.OK

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Return line quantity must be positive, got {self.quantity}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "quantity": encode_decimal(self.quantity),
            "reason": self.reason,
            "quality_status": self.quality_status.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReturnLine:
        return cls(
            batch_id=data["batch_id"],
            quantity=decode_decimal(data["quantity"]),
            reason=data.get("reason"),
            quality_status=QualityStatus(data.get("quality_status", QualityStatus.OK.value)),
        )


@dataclass(frozen=True, slots=True)
class ReturnRecord:
    """Partial reversal of a prior issue, crediting quantity back to batches."""

    id: str
    issue_id: str
    created_at: datetime
    lines: tuple[ReturnLine, ...]
    returned_by: str | None = None
    remarks: str | None = None

    def returned_quantity(self, batch_id: str) -> Decimal:
        return sum(
            (line.quantity for line in self.lines if line.batch_id == batch_id),
            Decimal("0"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "created_at": encode_datetime(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
            "returned_by": self.returned_by,
            "remarks": self.remarks,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReturnRecord:
        return cls(
            id=data["id"],
            issue_id=data["issue_id"],
            created_at=decode_datetime(data["created_at"]),
            lines=tuple(ReturnLine.from_dict(line) for line in data["lines"]),
            returned_by=data.get("returned_by"),
            remarks=data.get("remarks"),
        )


# =============================================================================
# Transformation (slitting)
# =============================================================================


@dataclass(frozen=True, slots=True)
class TransformationOutput:
    batch_id: str
    batch_code: str
    quantity: Decimal
    dimension: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "batch_code": self.batch_code,
            "quantity": encode_decimal(self.quantity),
            "dimension": self.dimension,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransformationOutput:
        return cls(
            batch_id=data["batch_id"],
            batch_code=data["batch_code"],
            quantity=decode_decimal(data["quantity"]),
            dimension=data.get("dimension"),
        )


@dataclass(frozen=True, slots=True)
class TransformationRecord:
    """
    One input batch converted into N output batches.

    ``output_total + wastage`` equals ``input_quantity`` within the ledger's
    conservation tolerance.
    """

    id: str
    input_batch_id: str
    input_quantity: Decimal
    created_at: datetime
    outputs: tuple[TransformationOutput, ...]
    wastage: Decimal
    operator_name: str | None = None
    machine_no: str | None = None
    remarks: str | None = None

    def __post_init__(self) -> None:
        if not self.outputs:
            raise ValueError("Transformation requires at least one output")

    @property
    def output_total(self) -> Decimal:
        return sum((o.quantity for o in self.outputs), Decimal("0"))

    @property
    def output_batch_ids(self) -> tuple[str, ...]:
        return tuple(o.batch_id for o in self.outputs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "input_batch_id": self.input_batch_id,
            "input_quantity": encode_decimal(self.input_quantity),
            "created_at": encode_datetime(self.created_at),
            "outputs": [o.to_dict() for o in self.outputs],
            "wastage": encode_decimal(self.wastage),
            "operator_name": self.operator_name,
            "machine_no": self.machine_no,
            "remarks": self.remarks,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransformationRecord:
        return cls(
            id=data["id"],
            input_batch_id=data["input_batch_id"],
            input_quantity=decode_decimal(data["input_quantity"]),
            created_at=decode_datetime(data["created_at"]),
            outputs=tuple(TransformationOutput.from_dict(o) for o in data["outputs"]),
            wastage=decode_decimal(data["wastage"]),
            operator_name=data.get("operator_name"),
            machine_no=data.get("machine_no"),
            remarks=data.get("remarks"),
        )
