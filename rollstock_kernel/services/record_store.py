"""
RecordStore -- persistence and lookup for issue, return and slitting records.

Responsibility:
    Saves and loads IssueRecord, ReturnRecord and TransformationRecord
    payloads, and keeps the reference indexes the services need:
    issues by batch, returns by issue, transformations by input and output
    batch.

Architecture position:
    Kernel > Services.  Called by the allocation, return and transformation
    services while they hold the relevant batch and issue locks.

Invariants enforced:
    - Records are looked up by typed id only; an issue's batches are the
      ``batch_id`` fields of its lines, never parsed out of display text.

Failure modes:
    - IssueNotFoundError / ReturnNotFoundError / TransformationNotFoundError
      from the ``get_*`` methods.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from decimal import Decimal

from rollstock_kernel.domain.records import IssueRecord, ReturnRecord, TransformationRecord
from rollstock_kernel.exceptions import (
    IssueNotFoundError,
    ReturnNotFoundError,
    TransformationNotFoundError,
)
from rollstock_kernel.logging_config import get_logger
from rollstock_kernel.persistence.backend import PersistenceBackend

logger = get_logger("services.record_store")

ISSUE_KEY_PREFIX = "issue:"
RETURN_KEY_PREFIX = "return:"
TRANSFORMATION_KEY_PREFIX = "transformation:"


class RecordStore:
    """Backend-backed record repository with in-memory reference indexes."""

    def __init__(self, backend: PersistenceBackend):
        self._backend = backend
        self._index_lock = threading.Lock()
        self._issue_ids: set[str] = set()
        self._return_ids: set[str] = set()
        self._transformation_ids: set[str] = set()
        self._issues_by_batch: dict[str, set[str]] = defaultdict(set)
        self._returns_by_issue: dict[str, set[str]] = defaultdict(set)
        self._transformations_by_input: dict[str, set[str]] = defaultdict(set)
        self._transformation_by_output: dict[str, str] = {}
        self._rebuild_indexes()

    # -------------------------------------------------------------------------
    # Issues
    # -------------------------------------------------------------------------

    def save_issue(self, record: IssueRecord) -> None:
        self._backend.save(ISSUE_KEY_PREFIX + record.id, record.to_dict())
        with self._index_lock:
            self._index_issue(record)

    def delete_issue(self, issue_id: str) -> None:
        record = self.find_issue(issue_id)
        if record is None:
            return
        self._backend.delete(ISSUE_KEY_PREFIX + issue_id)
        with self._index_lock:
            self._issue_ids.discard(issue_id)
            for batch_id in record.batch_ids:
                self._issues_by_batch[batch_id].discard(issue_id)

    def find_issue(self, issue_id: str) -> IssueRecord | None:
        payload = self._backend.load(ISSUE_KEY_PREFIX + issue_id)
        return IssueRecord.from_dict(payload) if payload is not None else None

    def get_issue(self, issue_id: str) -> IssueRecord:
        record = self.find_issue(issue_id)
        if record is None:
            raise IssueNotFoundError(issue_id)
        return record

    def list_issues(self, consumer_ref: str | None = None) -> list[IssueRecord]:
        with self._index_lock:
            ids = sorted(self._issue_ids)
        records = [r for r in map(self.find_issue, ids) if r is not None]
        if consumer_ref is not None:
            records = [r for r in records if r.consumer_ref == consumer_ref]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def issues_for_batch(self, batch_id: str) -> list[IssueRecord]:
        with self._index_lock:
            ids = sorted(self._issues_by_batch.get(batch_id, ()))
        records = [r for r in map(self.find_issue, ids) if r is not None]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    # -------------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------------

    def save_return(self, record: ReturnRecord) -> None:
        self._backend.save(RETURN_KEY_PREFIX + record.id, record.to_dict())
        with self._index_lock:
            self._return_ids.add(record.id)
            self._returns_by_issue[record.issue_id].add(record.id)

    def delete_return(self, return_id: str) -> None:
        record = self.find_return(return_id)
        if record is None:
            return
        self._backend.delete(RETURN_KEY_PREFIX + return_id)
        with self._index_lock:
            self._return_ids.discard(return_id)
            self._returns_by_issue[record.issue_id].discard(return_id)

    def find_return(self, return_id: str) -> ReturnRecord | None:
        payload = self._backend.load(RETURN_KEY_PREFIX + return_id)
        return ReturnRecord.from_dict(payload) if payload is not None else None

    def get_return(self, return_id: str) -> ReturnRecord:
        record = self.find_return(return_id)
        if record is None:
            raise ReturnNotFoundError(return_id)
        return record

    def list_returns(self) -> list[ReturnRecord]:
        with self._index_lock:
            ids = sorted(self._return_ids)
        records = [r for r in map(self.find_return, ids) if r is not None]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def returns_for_issue(self, issue_id: str) -> list[ReturnRecord]:
        with self._index_lock:
            ids = sorted(self._returns_by_issue.get(issue_id, ()))
        records = [r for r in map(self.find_return, ids) if r is not None]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def returned_quantity(self, issue_id: str, batch_id: str) -> Decimal:
        """Cumulative quantity returned against one (issue, batch) pair."""
        return sum(
            (r.returned_quantity(batch_id) for r in self.returns_for_issue(issue_id)),
            Decimal("0"),
        )

    # -------------------------------------------------------------------------
    # Transformations
    # -------------------------------------------------------------------------

    def save_transformation(self, record: TransformationRecord) -> None:
        self._backend.save(TRANSFORMATION_KEY_PREFIX + record.id, record.to_dict())
        with self._index_lock:
            self._index_transformation(record)

    def delete_transformation(self, transformation_id: str) -> None:
        record = self.find_transformation(transformation_id)
        if record is None:
            return
        self._backend.delete(TRANSFORMATION_KEY_PREFIX + transformation_id)
        with self._index_lock:
            self._transformation_ids.discard(transformation_id)
            self._transformations_by_input[record.input_batch_id].discard(transformation_id)
            for batch_id in record.output_batch_ids:
                self._transformation_by_output.pop(batch_id, None)

    def find_transformation(self, transformation_id: str) -> TransformationRecord | None:
        payload = self._backend.load(TRANSFORMATION_KEY_PREFIX + transformation_id)
        return TransformationRecord.from_dict(payload) if payload is not None else None

    def get_transformation(self, transformation_id: str) -> TransformationRecord:
        record = self.find_transformation(transformation_id)
        if record is None:
            raise TransformationNotFoundError(transformation_id)
        return record

    def list_transformations(self) -> list[TransformationRecord]:
        with self._index_lock:
            ids = sorted(self._transformation_ids)
        records = [r for r in map(self.find_transformation, ids) if r is not None]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def transformations_consuming(self, batch_id: str) -> list[TransformationRecord]:
        """Slitting runs that drew on ``batch_id`` as input, oldest first."""
        with self._index_lock:
            ids = sorted(self._transformations_by_input.get(batch_id, ()))
        records = [r for r in map(self.find_transformation, ids) if r is not None]
        return sorted(records, key=lambda r: (r.created_at, r.id))

    def transformation_producing(self, batch_id: str) -> TransformationRecord | None:
        """The slitting run that created ``batch_id``, if any."""
        with self._index_lock:
            transformation_id = self._transformation_by_output.get(batch_id)
        return self.find_transformation(transformation_id) if transformation_id else None

    # -------------------------------------------------------------------------
    # Index maintenance
    # -------------------------------------------------------------------------

    def _index_issue(self, record: IssueRecord) -> None:
        self._issue_ids.add(record.id)
        for batch_id in record.batch_ids:
            self._issues_by_batch[batch_id].add(record.id)

    def _index_transformation(self, record: TransformationRecord) -> None:
        self._transformation_ids.add(record.id)
        self._transformations_by_input[record.input_batch_id].add(record.id)
        for batch_id in record.output_batch_ids:
            self._transformation_by_output[batch_id] = record.id

    def _rebuild_indexes(self) -> None:
        for _, payload in self._backend.items(ISSUE_KEY_PREFIX):
            self._index_issue(IssueRecord.from_dict(payload))
        for _, payload in self._backend.items(RETURN_KEY_PREFIX):
            record = ReturnRecord.from_dict(payload)
            self._return_ids.add(record.id)
            self._returns_by_issue[record.issue_id].add(record.id)
        for _, payload in self._backend.items(TRANSFORMATION_KEY_PREFIX):
            self._index_transformation(TransformationRecord.from_dict(payload))
        logger.info(
            "record_indexes_rebuilt",
            extra={
                "issue_count": len(self._issue_ids),
                "return_count": len(self._return_ids),
                "transformation_count": len(self._transformation_ids),
            },
        )
