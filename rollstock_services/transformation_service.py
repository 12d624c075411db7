"""
TransformationService -- slitting one roll into several child rolls.

Responsibility:
    Consumes an input batch and creates one child batch per output, with
    ``parent_batch_id`` pointing at the input, then persists the
    TransformationRecord.  Two entry points:

    ``transform``     operator states output quantities and wastage; the
                      input's whole remaining quantity is consumed.
    ``slit_by_plan``  operator states a cutting plan (widths x counts) and
                      optionally how many running metres were processed;
                      output weights follow from roll geometry and the
                      residual is recorded as wastage.

Architecture position:
    Services -- stateful orchestration.  Uses rollstock_engines.cutting_plan
    and rollstock_engines.roll_geometry for the arithmetic.

Invariants enforced:
    - Conservation: ``sum(outputs) + wastage == input_quantity`` within the
      configured tolerance (0.01 by default).
    - A fully consumed input is closed by the transformation and refuses
      later credits.
    - All-or-nothing: the input debit, the close, every child batch, the
      document number and the record are undone together on failure.

Failure modes:
    - BatchNotFoundError: unknown input batch.
    - InsufficientStockError: input already consumed, or the processed
      length weighs more than the input holds.
    - ConservationError: outputs and wastage do not account for the input.
    - ValidationError: empty outputs, non-positive quantities, negative
      wastage, or a cutting plan wider than the roll.

Audit relevance:
    ``transformation_recorded`` carries the input batch, input quantity,
    output total and wastage.  Rejections are logged at WARNING.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from rollstock_engines.cutting_plan import (
    DEFAULT_WARN_UNUSED_FRACTION,
    CuttingPlan,
    CuttingPlanCheck,
    expand_widths,
    validate_cutting_plans,
)
from rollstock_engines.roll_geometry import (
    RollSpec,
    WastageMeasure,
    kg_from_metres,
    metres_from_kg,
    square_metres,
    wastage_from_kg,
)
from rollstock_kernel.domain.batch import Batch, BatchSpec
from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.domain.records import TransformationOutput, TransformationRecord
from rollstock_kernel.domain.values import (
    DEFAULT_DECIMAL_PLACES,
    DEFAULT_TOLERANCE,
    QuantityInput,
    parse_quantity,
    quantize,
    within_tolerance,
)
from rollstock_kernel.exceptions import (
    ConservationError,
    InsufficientStockError,
    StockLedgerError,
    ValidationError,
)
from rollstock_kernel.logging_config import LogContext, get_logger
from rollstock_kernel.services.batch_store import BatchMutation, BatchStore
from rollstock_kernel.services.document_sequence import DocumentSequenceService
from rollstock_kernel.services.record_store import RecordStore

logger = get_logger("services.transformation")

# Attributes describing the length of the parent roll; they do not carry
# over to children whose length is not known.
_LENGTH_ATTRIBUTES = ("running_metres", "square_metres", "unit_index", "unit_count")
_WEIGHT_UOMS = frozenset({"kg", "kgs"})


@dataclass(frozen=True)
class TransformationOutputRequest:
    quantity: QuantityInput
    dimension: str | None = None
    attributes: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class SlitResult:
    """A plan-based slitting run: the record plus what the screen shows."""

    record: TransformationRecord
    check: CuttingPlanCheck
    processed_metres: Decimal
    wastage: WastageMeasure
    input_closed: bool


@dataclass(frozen=True)
class _ChildRoll:
    quantity: Decimal
    dimension: str | None
    attributes: dict[str, Any]


class TransformationService:
    """
    Slitting runs.

    Contract:
        Either the input is debited, every child is created and the record
        is stored, or nothing changes.

    Non-goals:
        - Does NOT plan slitting against job requirements.
        - Does NOT merge rolls (many-to-one).
    """

    def __init__(
        self,
        batches: BatchStore,
        records: RecordStore,
        sequences: DocumentSequenceService,
        clock: Clock | None = None,
        prefix: str = DocumentSequenceService.SLITTING,
        tolerance: Decimal = DEFAULT_TOLERANCE,
        decimal_places: int = DEFAULT_DECIMAL_PLACES,
        warn_unused_fraction: Decimal = DEFAULT_WARN_UNUSED_FRACTION,
    ):
        self._batches = batches
        self._records = records
        self._sequences = sequences
        self._clock = clock or SystemClock()
        self._prefix = prefix
        self._tolerance = tolerance
        self._decimal_places = decimal_places
        self._warn_unused_fraction = warn_unused_fraction

    # =========================================================================
    # Operator-stated outputs
    # =========================================================================

    def transform(
        self,
        input_batch_id: str,
        outputs: Sequence[TransformationOutputRequest],
        wastage: QuantityInput = Decimal("0"),
        *,
        operator_name: str | None = None,
        machine_no: str | None = None,
        remarks: str | None = None,
    ) -> TransformationRecord:
        """
        Consume all of ``input_batch_id`` into ``outputs`` plus ``wastage``.

        Raises:
            BatchNotFoundError, InsufficientStockError, ConservationError,
            ValidationError.
        """
        if not outputs:
            raise ValidationError("outputs", "a transformation needs at least one output")
        quantities = []
        for i, output in enumerate(outputs, start=1):
            quantity = parse_quantity(output.quantity, f"outputs[{i}].quantity")
            if quantity <= 0:
                raise ValidationError(
                    f"outputs[{i}].quantity", f"must be positive, got {quantity}"
                )
            quantities.append(quantity)
        waste = parse_quantity(wastage, "wastage")
        if waste < 0:
            raise ValidationError("wastage", f"must not be negative, got {waste}")

        with LogContext.bind(batch_id=input_batch_id):
            try:
                with self._batches.transaction([input_batch_id]) as mutation:
                    batch = mutation.get(input_batch_id)
                    output_total = sum(quantities, Decimal("0"))
                    self._require_stock(batch, output_total)
                    if not within_tolerance(
                        output_total + waste, batch.remaining_quantity, self._tolerance
                    ):
                        raise ConservationError(
                            batch_id=batch.id,
                            input_quantity=str(batch.remaining_quantity),
                            output_total=str(output_total),
                            wastage=str(waste),
                            tolerance=str(self._tolerance),
                        )
                    children = [
                        _ChildRoll(
                            quantity=quantity,
                            dimension=output.dimension,
                            attributes=self._child_attributes(
                                batch, output.dimension, output.attributes
                            ),
                        )
                        for quantity, output in zip(quantities, outputs)
                    ]
                    return self._commit(
                        mutation,
                        batch,
                        batch.remaining_quantity,
                        children,
                        waste,
                        operator_name=operator_name,
                        machine_no=machine_no,
                        remarks=remarks,
                    )
            except StockLedgerError as exc:
                self._log_rejection(exc)
                raise

    # =========================================================================
    # Cutting plan
    # =========================================================================

    def slit_by_plan(
        self,
        input_batch_id: str,
        plans: Sequence[CuttingPlan],
        process_metres: QuantityInput | None = None,
        *,
        operator_name: str | None = None,
        machine_no: str | None = None,
        remarks: str | None = None,
    ) -> SlitResult:
        """
        Slit ``process_metres`` of the roll (all of it when omitted) into the
        widths of ``plans``.

        Each child weighs ``input_quantity * child_width / roll_width``; the
        unused width becomes wastage.  The input stays open when only part of
        its length is processed.
        """
        metres_requested = None
        if process_metres is not None:
            metres_requested = parse_quantity(process_metres, "process_metres")
            if metres_requested <= 0:
                raise ValidationError(
                    "process_metres", f"must be positive, got {metres_requested}"
                )

        with LogContext.bind(batch_id=input_batch_id):
            try:
                with self._batches.transaction([input_batch_id]) as mutation:
                    batch = mutation.get(input_batch_id)
                    if batch.uom.lower() not in _WEIGHT_UOMS:
                        raise ValidationError(
                            "uom", f"slitting by plan needs a weight-tracked roll, got {batch.uom}"
                        )
                    spec = RollSpec.from_attributes(batch.attributes)
                    check = validate_cutting_plans(
                        spec.width_mm, plans, self._warn_unused_fraction
                    )
                    if not check.is_valid:
                        raise ValidationError("plans", check.message or "invalid cutting plan")
                    if check.warning:
                        logger.warning(
                            "cutting_plan_unused_width",
                            extra={"calculation": check.calculation, "warning": check.warning},
                        )

                    input_quantity, metres = self._processed(batch, spec, metres_requested)
                    children = []
                    for width in expand_widths(plans):
                        child_spec = spec.with_width(width)
                        children.append(
                            _ChildRoll(
                                quantity=quantize(
                                    input_quantity * width / spec.width_mm,
                                    self._decimal_places,
                                ),
                                dimension=f"{_fmt(width)}mm",
                                attributes=self._child_attributes(
                                    batch,
                                    f"{_fmt(width)}mm",
                                    {
                                        "width_mm": child_spec.width_mm,
                                        "running_metres": metres,
                                        "square_metres": square_metres(
                                            metres, width, self._decimal_places
                                        ),
                                    },
                                ),
                            )
                        )
                    output_total = sum((c.quantity for c in children), Decimal("0"))
                    residual = input_quantity - output_total
                    if residual < -self._tolerance:
                        raise ConservationError(
                            batch_id=batch.id,
                            input_quantity=str(input_quantity),
                            output_total=str(output_total),
                            wastage=str(residual),
                            tolerance=str(self._tolerance),
                        )
                    waste = max(residual, Decimal("0"))
                    closes = input_quantity == batch.remaining_quantity
                    record = self._commit(
                        mutation,
                        batch,
                        input_quantity,
                        children,
                        waste,
                        operator_name=operator_name,
                        machine_no=machine_no,
                        remarks=remarks,
                    )
            except StockLedgerError as exc:
                self._log_rejection(exc)
                raise

        return SlitResult(
            record=record,
            check=check,
            processed_metres=metres,
            wastage=wastage_from_kg(waste, spec, self._decimal_places),
            input_closed=closes,
        )

    def get_transformation(self, transformation_id: str) -> TransformationRecord:
        return self._records.get_transformation(transformation_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _processed(
        self,
        batch: Batch,
        spec: RollSpec,
        metres_requested: Decimal | None,
    ) -> tuple[Decimal, Decimal]:
        """Input kg and running metres consumed by this run."""
        remaining = batch.remaining_quantity
        if metres_requested is None:
            self._require_stock(batch, remaining)
            return remaining, metres_from_kg(remaining, spec, self._decimal_places)

        weight = kg_from_metres(metres_requested, spec, self._decimal_places)
        self._require_stock(batch, weight)
        if weight > remaining:
            if weight - remaining > self._tolerance:
                raise InsufficientStockError(
                    requested=str(weight),
                    available=str(remaining),
                    batch_id=batch.id,
                    item_code=batch.item_code,
                )
            weight = remaining
        if weight <= 0:
            raise ValidationError("process_metres", "processed length weighs nothing")
        return weight, metres_requested

    @staticmethod
    def _require_stock(batch: Batch, requested: Decimal) -> None:
        if not batch.is_available:
            raise InsufficientStockError(
                requested=str(requested),
                available=str(batch.remaining_quantity),
                batch_id=batch.id,
                item_code=batch.item_code,
            )

    def _commit(
        self,
        mutation: BatchMutation,
        batch: Batch,
        input_quantity: Decimal,
        children: Sequence[_ChildRoll],
        wastage: Decimal,
        *,
        operator_name: str | None,
        machine_no: str | None,
        remarks: str | None,
    ) -> TransformationRecord:
        transformation_id = self._sequences.next_number(self._prefix)
        mutation.on_rollback(
            "document_number", lambda: self._sequences.release(transformation_id)
        )

        after = mutation.apply(batch.id, -input_quantity)
        if after.remaining_quantity == 0:
            mutation.close(batch.id, transformation_id)

        first = self._batches.count_children(batch.id) + 1
        outputs = []
        for offset, child in enumerate(children):
            created = mutation.create(
                BatchSpec(
                    item_code=batch.item_code,
                    uom=batch.uom,
                    received_quantity=child.quantity,
                    source_document_id=transformation_id,
                    batch_code=f"{batch.batch_code}-SL{first + offset:02d}",
                    parent_batch_id=batch.id,
                    line_index=offset + 1,
                    attributes=child.attributes,
                )
            )
            outputs.append(
                TransformationOutput(
                    batch_id=created.id,
                    batch_code=created.batch_code,
                    quantity=created.received_quantity,
                    dimension=child.dimension,
                )
            )

        record = TransformationRecord(
            id=transformation_id,
            input_batch_id=batch.id,
            input_quantity=input_quantity,
            created_at=self._clock.now(),
            outputs=tuple(outputs),
            wastage=wastage,
            operator_name=operator_name,
            machine_no=machine_no,
            remarks=remarks,
        )
        self._records.save_transformation(record)
        mutation.on_rollback(
            "transformation_record",
            lambda: self._records.delete_transformation(transformation_id),
        )

        logger.info(
            "transformation_recorded",
            extra={
                "transformation_id": transformation_id,
                "input_quantity": str(input_quantity),
                "output_total": str(record.output_total),
                "wastage": str(wastage),
                "output_count": len(outputs),
                "input_closed": after.remaining_quantity == 0,
            },
        )
        return record

    @staticmethod
    def _child_attributes(
        parent: Batch,
        dimension: str | None,
        extra: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        attributes = {
            k: v for k, v in parent.attributes.items() if k not in _LENGTH_ATTRIBUTES
        }
        attributes["parent_batch_code"] = parent.batch_code
        if dimension:
            attributes["dimension"] = dimension
        attributes.update(extra or {})
        return attributes

    @staticmethod
    def _log_rejection(exc: StockLedgerError) -> None:
        logger.warning(
            "transformation_rejected",
            extra={"error_code": exc.code, "batch_id": getattr(exc, "batch_id", None)},
        )


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")
