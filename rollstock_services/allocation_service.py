"""
AllocationService -- material issue to jobs and departments.

Responsibility:
    Debits batches for a consumer (job card or department) and records the
    issue.  Two entry points: ``issue_explicit`` where the storekeeper
    picks batches, and ``issue_auto`` where FIFO or LIFO picks them.

Architecture position:
    Services -- stateful orchestration.  Uses rollstock_engines.selection
    for the draw plan and the BatchStore transaction for atomic debits.

Invariants enforced:
    - No over-issue: every batch is checked against its remaining quantity,
      cumulatively when a request repeats a batch, before any debit.
    - All-or-nothing: all affected batch locks are taken in sorted order
      first; a failure undoes every applied debit and removes the record.
    - The persisted IssueRecord lists exactly the applied lines.

Failure modes:
    - ValidationError: empty consumer reference, no lines, non-positive
      quantity.
    - BatchNotFoundError: unknown batch id.
    - InsufficientStockError: a batch (explicit) or the item (auto) does not
      hold enough.

Audit relevance:
    ``issue_recorded`` is logged with the issue id, consumer and totals;
    ``issue_rejected`` with the error code and offending batch or item.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from rollstock_engines.selection import DrawCandidate, SelectionPolicy, plan_draw
from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.domain.records import ConsumerKind, IssueLine, IssuePolicy, IssueRecord
from rollstock_kernel.domain.values import QuantityInput, parse_quantity
from rollstock_kernel.exceptions import InsufficientStockError, StockLedgerError, ValidationError
from rollstock_kernel.logging_config import LogContext, get_logger
from rollstock_kernel.services.batch_store import BatchMutation, BatchStore
from rollstock_kernel.services.document_sequence import DocumentSequenceService
from rollstock_kernel.services.record_store import RecordStore

logger = get_logger("services.allocation")


@dataclass(frozen=True)
class IssueLineRequest:
    batch_id: str
    quantity: QuantityInput


class AllocationService:
    """
    Issues stock from batches.

    Contract:
        Either every requested line is applied and one IssueRecord is
        persisted, or nothing changes.

    Non-goals:
        - Does NOT reserve stock ahead of an issue.
        - Does NOT validate the consumer reference against job cards.
    """

    def __init__(
        self,
        batches: BatchStore,
        records: RecordStore,
        sequences: DocumentSequenceService,
        clock: Clock | None = None,
        prefix: str = DocumentSequenceService.MATERIAL_ISSUE,
        default_policy: SelectionPolicy = SelectionPolicy.FIFO,
    ):
        self._batches = batches
        self._records = records
        self._sequences = sequences
        self._clock = clock or SystemClock()
        self._prefix = prefix
        self._default_policy = default_policy

    def issue_explicit(
        self,
        consumer_ref: str,
        lines: Sequence[IssueLineRequest],
        *,
        consumer_kind: ConsumerKind | None = None,
        issued_by: str | None = None,
        remarks: str | None = None,
    ) -> IssueRecord:
        """Issue the named quantities from the named batches."""
        self._require_consumer(consumer_ref)
        if not lines:
            raise ValidationError("lines", "an issue needs at least one line")
        parsed = [
            (line.batch_id, self._positive(line.quantity, f"lines[{i}].quantity"))
            for i, line in enumerate(lines, start=1)
        ]

        with LogContext.bind(consumer_ref=consumer_ref):
            try:
                with self._batches.transaction(b for b, _ in parsed) as mutation:
                    requested: dict[str, Decimal] = {}
                    for batch_id, quantity in parsed:
                        requested[batch_id] = requested.get(batch_id, Decimal("0")) + quantity
                    for batch_id, total in requested.items():
                        batch = mutation.get(batch_id)
                        if total > batch.remaining_quantity:
                            raise InsufficientStockError(
                                requested=str(total),
                                available=str(batch.remaining_quantity),
                                batch_id=batch_id,
                                item_code=batch.item_code,
                            )
                    return self._record(
                        mutation,
                        consumer_ref,
                        parsed,
                        IssuePolicy.EXPLICIT,
                        consumer_kind,
                        issued_by,
                        remarks,
                    )
            except StockLedgerError as exc:
                self._log_rejection(exc)
                raise

    def issue_auto(
        self,
        consumer_ref: str,
        item_code: str,
        requested: QuantityInput,
        policy: SelectionPolicy | None = None,
        *,
        consumer_kind: ConsumerKind | None = None,
        issued_by: str | None = None,
        remarks: str | None = None,
    ) -> IssueRecord:
        """
        Issue ``requested`` of ``item_code`` from the oldest (FIFO) or newest
        (LIFO) available batches.

        Raises:
            InsufficientStockError: total available stock of the item is
                below ``requested``.  Nothing is applied.
        """
        self._require_consumer(consumer_ref)
        if not (item_code or "").strip():
            raise ValidationError("item_code", "required")
        quantity = self._positive(requested, "quantity")
        policy = SelectionPolicy(policy or self._default_policy)

        candidate_ids = [b.id for b in self._batches.list_available(item_code)]
        with LogContext.bind(consumer_ref=consumer_ref):
            try:
                with self._batches.transaction(candidate_ids) as mutation:
                    candidates = []
                    for batch_id in candidate_ids:
                        batch = mutation.find(batch_id)
                        if batch is None or not batch.is_available:
                            continue
                        candidates.append(
                            DrawCandidate(
                                batch_id=batch.id,
                                remaining=batch.remaining_quantity,
                                created_at=batch.created_at,
                                sequence=batch.sequence,
                            )
                        )
                    plan = plan_draw(candidates, quantity, policy)
                    if not plan.is_complete:
                        raise InsufficientStockError(
                            requested=str(quantity),
                            available=str(plan.available),
                            item_code=item_code,
                        )
                    return self._record(
                        mutation,
                        consumer_ref,
                        [(line.batch_id, line.quantity) for line in plan.lines],
                        IssuePolicy(policy.value),
                        consumer_kind,
                        issued_by,
                        remarks,
                    )
            except StockLedgerError as exc:
                self._log_rejection(exc)
                raise

    def get_issue(self, issue_id: str) -> IssueRecord:
        return self._records.get_issue(issue_id)

    def _record(
        self,
        mutation: BatchMutation,
        consumer_ref: str,
        lines: Sequence[tuple[str, Decimal]],
        policy: IssuePolicy,
        consumer_kind: ConsumerKind | None,
        issued_by: str | None,
        remarks: str | None,
    ) -> IssueRecord:
        issue_lines = []
        for batch_id, quantity in lines:
            batch = mutation.apply(batch_id, -quantity)
            issue_lines.append(
                IssueLine(
                    batch_id=batch.id,
                    batch_code=batch.batch_code,
                    item_code=batch.item_code,
                    uom=batch.uom,
                    quantity=quantity,
                )
            )

        issue_id = self._sequences.next_number(self._prefix)
        mutation.on_rollback("document_number", lambda: self._sequences.release(issue_id))
        record = IssueRecord(
            id=issue_id,
            consumer_ref=consumer_ref,
            created_at=self._clock.now(),
            lines=tuple(issue_lines),
            policy=policy,
            consumer_kind=consumer_kind,
            issued_by=issued_by,
            remarks=remarks,
        )
        self._records.save_issue(record)
        mutation.on_rollback("issue_record", lambda: self._records.delete_issue(issue_id))

        logger.info(
            "issue_recorded",
            extra={
                "issue_id": issue_id,
                "policy": policy.value,
                "line_count": len(issue_lines),
                "total_quantity": str(sum((l.quantity for l in issue_lines), Decimal("0"))),
            },
        )
        return record

    @staticmethod
    def _require_consumer(consumer_ref: str) -> None:
        if not (consumer_ref or "").strip():
            raise ValidationError("consumer_ref", "required")

    @staticmethod
    def _positive(value: QuantityInput, field: str) -> Decimal:
        quantity = parse_quantity(value, field)
        if quantity <= 0:
            raise ValidationError(field, f"must be positive, got {quantity}")
        return quantity

    @staticmethod
    def _log_rejection(exc: StockLedgerError) -> None:
        logger.warning(
            "issue_rejected",
            extra={
                "error_code": exc.code,
                "batch_id": getattr(exc, "batch_id", None),
                "item_code": getattr(exc, "item_code", None),
            },
        )
