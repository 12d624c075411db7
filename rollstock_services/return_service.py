"""
ReturnService -- material returns, return deletion and issue reversal.

Responsibility:
    Credits previously issued quantity back to its batches.  A return covers
    part of an issue; deleting a return re-debits what it credited; reversing
    an issue credits everything still outstanding on it and marks it
    reversed.

Architecture position:
    Services -- stateful orchestration over BatchStore and RecordStore.

Invariants enforced:
    - Cumulative returns for an (issue, batch) pair never exceed the quantity
      issued on that pair.
    - Every operation holds the issue lock plus every affected batch lock
      (sorted) for its whole duration, so two returns against the same issue
      cannot both pass the outstanding-quantity check.
    - All-or-nothing: credits, debits and record writes are undone together.

Failure modes:
    - IssueNotFoundError / ReturnNotFoundError: unknown record id.
    - OverReturnError: return larger than the outstanding quantity, including
      a batch that is not on the issue at all.
    - IssueAlreadyReversedError: return, return deletion or second reversal
      against a reversed issue.
    - ConflictError: deleting a return whose credited stock has since been
      re-issued or slit.
    - BatchClosedError: crediting a batch that slitting already consumed.

Audit relevance:
    ``return_recorded``, ``return_deleted`` and ``issue_reversed`` are logged
    with the document ids; rejections are logged at WARNING with the code.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.domain.records import (
    IssueRecord,
    QualityStatus,
    ReturnLine,
    ReturnRecord,
)
from rollstock_kernel.domain.values import QuantityInput, parse_quantity
from rollstock_kernel.exceptions import (
    ConflictError,
    InsufficientStockError,
    IssueAlreadyReversedError,
    OverReturnError,
    ReturnNotFoundError,
    StockLedgerError,
    ValidationError,
)
from rollstock_kernel.logging_config import LogContext, get_logger
from rollstock_kernel.services.batch_store import BatchStore
from rollstock_kernel.services.document_sequence import DocumentSequenceService
from rollstock_kernel.services.locking import issue_lock_key
from rollstock_kernel.services.record_store import RecordStore

logger = get_logger("services.returns")


@dataclass(frozen=True)
class ReturnLineRequest:
    batch_id: str
    quantity: QuantityInput
    reason: str | None = None
    quality_status: QualityStatus = QualityStatus.OK


class ReturnService:
    """
    Returns and reversals against issue records.

    Contract:
        Quantities credited never exceed what the issue took out of each
        batch, net of earlier returns.

    Non-goals:
        - Does NOT route damaged returns to a quarantine location; the
          quality status is recorded on the line only.
    """

    def __init__(
        self,
        batches: BatchStore,
        records: RecordStore,
        sequences: DocumentSequenceService,
        clock: Clock | None = None,
        prefix: str = DocumentSequenceService.MATERIAL_RETURN,
    ):
        self._batches = batches
        self._records = records
        self._sequences = sequences
        self._clock = clock or SystemClock()
        self._prefix = prefix

    # =========================================================================
    # Returns
    # =========================================================================

    def process_return(
        self,
        issue_id: str,
        lines: Sequence[ReturnLineRequest],
        *,
        returned_by: str | None = None,
        remarks: str | None = None,
    ) -> ReturnRecord:
        """
        Credit ``lines`` back to their batches against ``issue_id``.

        Raises:
            IssueNotFoundError, OverReturnError, IssueAlreadyReversedError.
        """
        if not lines:
            raise ValidationError("lines", "a return needs at least one line")
        parsed = []
        for i, line in enumerate(lines, start=1):
            quantity = parse_quantity(line.quantity, f"lines[{i}].quantity")
            if quantity <= 0:
                raise ValidationError(
                    f"lines[{i}].quantity", f"must be positive, got {quantity}"
                )
            parsed.append(
                ReturnLine(
                    batch_id=line.batch_id,
                    quantity=quantity,
                    reason=line.reason,
                    quality_status=QualityStatus(line.quality_status),
                )
            )

        self._records.get_issue(issue_id)
        keys = [issue_lock_key(issue_id), *(line.batch_id for line in parsed)]
        with LogContext.bind(document_id=issue_id):
            try:
                with self._batches.transaction(keys) as mutation:
                    issue = self._records.get_issue(issue_id)
                    if issue.is_reversed:
                        raise IssueAlreadyReversedError(issue_id)

                    requested: dict[str, Decimal] = {}
                    for line in parsed:
                        requested[line.batch_id] = (
                            requested.get(line.batch_id, Decimal("0")) + line.quantity
                        )
                    for batch_id, total in requested.items():
                        outstanding = self._outstanding(issue, batch_id)
                        if total > outstanding:
                            raise OverReturnError(
                                issue_id=issue_id,
                                batch_id=batch_id,
                                requested=str(total),
                                outstanding=str(outstanding),
                            )

                    for line in parsed:
                        mutation.apply(line.batch_id, line.quantity)

                    return_id = self._sequences.next_number(self._prefix)
                    mutation.on_rollback(
                        "document_number", lambda: self._sequences.release(return_id)
                    )
                    record = ReturnRecord(
                        id=return_id,
                        issue_id=issue_id,
                        created_at=self._clock.now(),
                        lines=tuple(parsed),
                        returned_by=returned_by,
                        remarks=remarks,
                    )
                    self._records.save_return(record)
                    mutation.on_rollback(
                        "return_record", lambda: self._records.delete_return(return_id)
                    )
            except StockLedgerError as exc:
                self._log_rejection("return_rejected", exc)
                raise

            logger.info(
                "return_recorded",
                extra={
                    "return_id": record.id,
                    "line_count": len(record.lines),
                    "total_quantity": str(sum((l.quantity for l in record.lines), Decimal("0"))),
                },
            )
        return record

    def delete_return(self, return_id: str) -> ReturnRecord:
        """
        Remove a return and re-debit every batch it credited.

        Raises:
            ReturnNotFoundError: unknown return.
            IssueAlreadyReversedError: the issue has since been reversed.
            ConflictError: the credited stock is no longer in the batch.
        """
        record = self._records.get_return(return_id)
        keys = [issue_lock_key(record.issue_id), *(line.batch_id for line in record.lines)]
        with LogContext.bind(document_id=return_id):
            try:
                with self._batches.transaction(keys) as mutation:
                    current = self._records.find_return(return_id)
                    if current is None:
                        raise ReturnNotFoundError(return_id)
                    issue = self._records.get_issue(current.issue_id)
                    if issue.is_reversed:
                        raise IssueAlreadyReversedError(issue.id)

                    for line in current.lines:
                        try:
                            mutation.apply(line.batch_id, -line.quantity)
                        except InsufficientStockError as exc:
                            raise ConflictError(
                                return_id,
                                f"batch {line.batch_id} holds {exc.available}, "
                                f"cannot re-debit {line.quantity}",
                            ) from exc

                    self._records.delete_return(return_id)
                    mutation.on_rollback(
                        "return_record", lambda: self._records.save_return(current)
                    )
            except StockLedgerError as exc:
                self._log_rejection("return_delete_rejected", exc)
                raise

            logger.info(
                "return_deleted",
                extra={"return_id": return_id, "issue_id": current.issue_id},
            )
        return current

    # =========================================================================
    # Reversal
    # =========================================================================

    def reverse_issue(self, issue_id: str, reason: str | None = None) -> IssueRecord:
        """
        Credit every batch on the issue with its outstanding quantity and
        mark the issue reversed.

        Raises:
            IssueNotFoundError, IssueAlreadyReversedError, BatchClosedError.
        """
        issue = self._records.get_issue(issue_id)
        keys = [issue_lock_key(issue_id), *issue.batch_ids]
        with LogContext.bind(document_id=issue_id):
            try:
                with self._batches.transaction(keys) as mutation:
                    issue = self._records.get_issue(issue_id)
                    if issue.is_reversed:
                        raise IssueAlreadyReversedError(issue_id)

                    credited = Decimal("0")
                    for batch_id in sorted(issue.batch_ids):
                        outstanding = self._outstanding(issue, batch_id)
                        if outstanding > 0:
                            mutation.apply(batch_id, outstanding)
                            credited += outstanding

                    original = issue
                    reversed_issue = issue.reversed(self._clock.now(), reason)
                    self._records.save_issue(reversed_issue)
                    mutation.on_rollback(
                        "issue_record", lambda: self._records.save_issue(original)
                    )
            except StockLedgerError as exc:
                self._log_rejection("issue_reversal_rejected", exc)
                raise

            logger.info(
                "issue_reversed",
                extra={"issue_id": issue_id, "credited_quantity": str(credited)},
            )
        return reversed_issue

    # =========================================================================
    # Queries
    # =========================================================================

    def outstanding_quantity(self, issue_id: str, batch_id: str) -> Decimal:
        """Issued minus returned for one (issue, batch) pair; zero once reversed."""
        issue = self._records.get_issue(issue_id)
        if issue.is_reversed:
            return Decimal("0")
        return self._outstanding(issue, batch_id)

    def returns_for_issue(self, issue_id: str) -> list[ReturnRecord]:
        self._records.get_issue(issue_id)
        return self._records.returns_for_issue(issue_id)

    def _outstanding(self, issue: IssueRecord, batch_id: str) -> Decimal:
        return issue.issued_quantity(batch_id) - self._records.returned_quantity(
            issue.id, batch_id
        )

    @staticmethod
    def _log_rejection(event: str, exc: StockLedgerError) -> None:
        logger.warning(
            event,
            extra={
                "error_code": exc.code,
                "batch_id": getattr(exc, "batch_id", None),
            },
        )
