"""
BatchStore -- sole authority over batch remaining quantities.

Responsibility:
    Creates batches, applies signed quantity deltas, answers lookups, and
    offers a multi-batch ``transaction`` whose undo log reverts every change
    if the enclosing block raises.  No other component writes batch records.

Architecture position:
    Kernel > Services -- imperative shell.  Persists through a
    ``PersistenceBackend``; locks through a shared ``BatchLockManager``.

Invariants enforced:
    - ``0 <= remaining <= received`` after every applied delta; a delta that
      would break the range is rejected and nothing is written.
    - Batch codes are unique.
    - Every read of a batch takes that batch's lock, so a reader sees either
      the state before or after a concurrent delta, never a torn value.
    - Received quantity, uom, lineage and attributes never change after
      creation.

Failure modes:
    - ValidationError: empty uom/item code, non-positive or non-finite
      received quantity, zero delta.
    - DuplicateBatchCodeError: batch code already in use.
    - BatchNotFoundError: unknown batch id (or unknown parent on create).
    - InsufficientStockError: debit larger than remaining.
    - BatchClosedError: credit against a batch consumed by slitting.
    - OverCreditError: credit pushing remaining above received.

Audit relevance:
    ``batch_created``, ``batch_delta_applied`` and ``batch_deleted`` events
    are logged with the batch id and the resulting remaining quantity.
    Rejections are logged at WARNING with their error code.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator
from contextlib import ExitStack, contextmanager
from decimal import Decimal
from uuid import uuid4

from rollstock_kernel.domain.batch import Batch, BatchLineage, BatchSpec
from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.domain.codec import normalize_attributes
from rollstock_kernel.domain.values import QuantityInput, parse_quantity
from rollstock_kernel.exceptions import (
    BatchClosedError,
    BatchNotFoundError,
    DuplicateBatchCodeError,
    InsufficientStockError,
    OverCreditError,
    StockLedgerError,
    ValidationError,
)
from rollstock_kernel.logging_config import get_logger
from rollstock_kernel.persistence.backend import PersistenceBackend
from rollstock_kernel.services.locking import BatchLockManager

logger = get_logger("services.batch_store")

BATCH_KEY_PREFIX = "batch:"


def batch_key(batch_id: str) -> str:
    return f"{BATCH_KEY_PREFIX}{batch_id}"


def _ordered(batches: Iterable[Batch]) -> list[Batch]:
    return sorted(batches, key=lambda b: (b.created_at, b.sequence))


class BatchStore:
    """
    Lock-guarded repository of Batch snapshots.

    Contract:
        Public methods take the locks they need.  Callers composing several
        mutations use ``transaction(keys)`` to hold every key up front and
        receive a ``BatchMutation``.

    Guarantees:
        - Secondary indexes (batch code, item code, parent batch, source
          document) are rebuilt from the backend on construction.
        - ``sequence`` is strictly increasing across created batches and is
          the tie-break after ``created_at`` for FIFO ordering.

    Non-goals:
        - Does NOT check whether issue or transformation records reference a
          batch before ``delete_batch``; the ledger facade does that.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        clock: Clock | None = None,
        locks: BatchLockManager | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self._backend = backend
        self._clock = clock or SystemClock()
        self._locks = locks or BatchLockManager()
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._index_lock = threading.Lock()
        self._by_code: dict[str, str] = {}
        self._by_item: dict[str, set[str]] = defaultdict(set)
        self._by_parent: dict[str, set[str]] = defaultdict(set)
        self._by_document: dict[str, set[str]] = defaultdict(set)
        self._next_sequence = 1
        self._rebuild_indexes()

    @property
    def locks(self) -> BatchLockManager:
        return self._locks

    @property
    def clock(self) -> Clock:
        return self._clock

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_batch(self, spec: BatchSpec) -> Batch:
        """
        Validate ``spec`` and persist a new AVAILABLE batch.

        Raises:
            ValidationError, DuplicateBatchCodeError, BatchNotFoundError.
        """
        batch = self._build(spec)
        with self._locks.hold([batch.id]):
            self._insert(batch)
        return batch

    def apply_delta(self, batch_id: str, delta: QuantityInput) -> Batch:
        """
        Add ``delta`` (negative for a debit) to the batch's remaining quantity.

        Returns the updated snapshot.
        """
        amount = self._parse_delta(delta)
        with self._locks.hold([batch_id]):
            _, after = self._apply_locked(batch_id, amount)
        return after

    @contextmanager
    def transaction(self, keys: Iterable[str]) -> Iterator[BatchMutation]:
        """
        Hold every lock in ``keys`` and yield a BatchMutation.

        If the block raises, every change made through the mutation is undone
        in reverse order before the exception propagates.  Batches created
        through the mutation stay locked until the transaction exits, so no
        other caller sees them before commit or rollback.
        """
        with self._locks.hold(keys) as held, ExitStack() as created_locks:
            mutation = BatchMutation(self, held, created_locks)
            try:
                yield mutation
            except Exception as exc:
                mutation.rollback(exc)
                raise

    def delete_batch(self, batch_id: str) -> Batch:
        """Remove a batch record and its index entries."""
        with self._locks.hold([batch_id]):
            batch = self._load_or_raise(batch_id)
            self._remove(batch)
        logger.info(
            "batch_deleted",
            extra={"batch_id": batch_id, "batch_code": batch.batch_code},
        )
        return batch

    # =========================================================================
    # Reads
    # =========================================================================

    def get_by_id(self, batch_id: str) -> Batch:
        """
        Raises:
            BatchNotFoundError: if no batch has this id.
        """
        with self._locks.hold([batch_id]):
            return self._load_or_raise(batch_id)

    def exists(self, batch_id: str) -> bool:
        with self._locks.hold([batch_id]):
            return self._load(batch_id) is not None

    def find_by_code(self, batch_code: str) -> Batch | None:
        with self._index_lock:
            batch_id = self._by_code.get(batch_code)
        if batch_id is None:
            return None
        with self._locks.hold([batch_id]):
            return self._load(batch_id)

    def list_by_item_code(self, item_code: str) -> list[Batch]:
        """All batches of an item in FIFO order (created_at, sequence)."""
        with self._index_lock:
            ids = set(self._by_item.get(item_code, ()))
        return self._load_many(ids)

    def list_available(self, item_code: str) -> list[Batch]:
        """Batches of an item with remaining > 0, in FIFO order."""
        return [b for b in self.list_by_item_code(item_code) if b.is_available]

    def list_children(self, parent_batch_id: str) -> list[Batch]:
        with self._index_lock:
            ids = set(self._by_parent.get(parent_batch_id, ()))
        return self._load_many(ids)

    def count_children(self, parent_batch_id: str) -> int:
        """Number of batches derived from ``parent_batch_id`` (index only, no batch locks)."""
        with self._index_lock:
            return len(self._by_parent.get(parent_batch_id, ()))

    def list_by_source_document(self, document_id: str) -> list[Batch]:
        with self._index_lock:
            ids = set(self._by_document.get(document_id, ()))
        return self._load_many(ids)

    def list_all(self) -> list[Batch]:
        with self._index_lock:
            ids = set(self._by_code.values())
        return self._load_many(ids)

    def item_codes(self) -> list[str]:
        with self._index_lock:
            return sorted(code for code, ids in self._by_item.items() if ids)

    # =========================================================================
    # Internals (callers must hold the batch lock)
    # =========================================================================

    def _build(self, spec: BatchSpec) -> Batch:
        item_code = (spec.item_code or "").strip()
        if not item_code:
            raise ValidationError("item_code", "required")
        uom = (spec.uom or "").strip()
        if not uom:
            raise ValidationError("uom", "required")
        if not (spec.source_document_id or "").strip():
            raise ValidationError("source_document_id", "required")
        received = parse_quantity(spec.received_quantity, "received_quantity")
        if received <= 0:
            raise ValidationError(
                "received_quantity", f"must be positive, got {received}"
            )
        if spec.batch_code is not None and not spec.batch_code.strip():
            raise ValidationError("batch_code", "must not be blank")
        if spec.parent_batch_id is not None and not self.exists(spec.parent_batch_id):
            raise BatchNotFoundError(spec.parent_batch_id)

        batch_id = self._id_factory()
        with self._index_lock:
            sequence = self._next_sequence
            self._next_sequence += 1

        return Batch(
            id=batch_id,
            batch_code=spec.batch_code.strip() if spec.batch_code else batch_id,
            item_code=item_code,
            uom=uom,
            received_quantity=received,
            remaining_quantity=received,
            lineage=BatchLineage(
                source_document_id=spec.source_document_id,
                parent_batch_id=spec.parent_batch_id,
                line_index=spec.line_index,
            ),
            created_at=self._clock.now(),
            sequence=sequence,
            attributes=normalize_attributes(spec.attributes),
        )

    def _insert(self, batch: Batch) -> None:
        with self._index_lock:
            existing = self._by_code.get(batch.batch_code)
            if existing is not None:
                logger.warning(
                    "batch_create_rejected",
                    extra={
                        "batch_code": batch.batch_code,
                        "existing_batch_id": existing,
                        "error_code": DuplicateBatchCodeError.code,
                    },
                )
                raise DuplicateBatchCodeError(batch.batch_code, existing)
            self._by_code[batch.batch_code] = batch.id
        try:
            self._backend.save(batch_key(batch.id), batch.to_dict())
        except Exception:
            with self._index_lock:
                self._by_code.pop(batch.batch_code, None)
            raise
        with self._index_lock:
            self._index_secondary(batch)
        logger.info(
            "batch_created",
            extra={
                "batch_id": batch.id,
                "batch_code": batch.batch_code,
                "item_code": batch.item_code,
                "received_quantity": str(batch.received_quantity),
                "uom": batch.uom,
                "source_document_id": batch.source_document_id,
                "parent_batch_id": batch.parent_batch_id,
            },
        )

    def _apply_locked(self, batch_id: str, amount: Decimal) -> tuple[Batch, Batch]:
        before = self._load_or_raise(batch_id)
        new_remaining = before.remaining_quantity + amount
        try:
            if new_remaining < 0:
                raise InsufficientStockError(
                    requested=str(-amount),
                    available=str(before.remaining_quantity),
                    batch_id=batch_id,
                    item_code=before.item_code,
                )
            if amount > 0 and before.is_closed:
                raise BatchClosedError(batch_id, before.closed_by or "")
            if new_remaining > before.received_quantity:
                raise OverCreditError(
                    batch_id=batch_id,
                    credit=str(amount),
                    remaining=str(before.remaining_quantity),
                    received=str(before.received_quantity),
                )
        except StockLedgerError as exc:
            logger.warning(
                "batch_delta_rejected",
                extra={
                    "batch_id": batch_id,
                    "delta": str(amount),
                    "remaining_quantity": str(before.remaining_quantity),
                    "error_code": exc.code,
                },
            )
            raise

        after = before.with_remaining(new_remaining)
        self._backend.save(batch_key(batch_id), after.to_dict())
        logger.debug(
            "batch_delta_applied",
            extra={
                "batch_id": batch_id,
                "delta": str(amount),
                "remaining_quantity": str(after.remaining_quantity),
                "status": after.status.value,
            },
        )
        return before, after

    def _close_locked(self, batch_id: str, transformation_id: str) -> tuple[Batch, Batch]:
        before = self._load_or_raise(batch_id)
        after = before.closed(transformation_id)
        self._backend.save(batch_key(batch_id), after.to_dict())
        return before, after

    def _restore(self, snapshot: Batch) -> None:
        self._backend.save(batch_key(snapshot.id), snapshot.to_dict())

    def _remove(self, batch: Batch) -> None:
        self._backend.delete(batch_key(batch.id))
        with self._index_lock:
            if self._by_code.get(batch.batch_code) == batch.id:
                del self._by_code[batch.batch_code]
            self._by_item[batch.item_code].discard(batch.id)
            if batch.parent_batch_id:
                self._by_parent[batch.parent_batch_id].discard(batch.id)
            self._by_document[batch.source_document_id].discard(batch.id)

    def _load(self, batch_id: str) -> Batch | None:
        payload = self._backend.load(batch_key(batch_id))
        return Batch.from_dict(payload) if payload is not None else None

    def _load_or_raise(self, batch_id: str) -> Batch:
        batch = self._load(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def _load_many(self, ids: set[str]) -> list[Batch]:
        with self._locks.hold(ids):
            batches = [b for b in (self._load(i) for i in ids) if b is not None]
        return _ordered(batches)

    def _parse_delta(self, delta: QuantityInput) -> Decimal:
        amount = parse_quantity(delta, "delta")
        if amount == 0:
            raise ValidationError("delta", "must be non-zero")
        return amount

    def _index_secondary(self, batch: Batch) -> None:
        self._by_item[batch.item_code].add(batch.id)
        if batch.parent_batch_id:
            self._by_parent[batch.parent_batch_id].add(batch.id)
        self._by_document[batch.source_document_id].add(batch.id)

    def _rebuild_indexes(self) -> None:
        count = 0
        for _, payload in self._backend.items(BATCH_KEY_PREFIX):
            batch = Batch.from_dict(payload)
            self._by_code[batch.batch_code] = batch.id
            self._index_secondary(batch)
            self._next_sequence = max(self._next_sequence, batch.sequence + 1)
            count += 1
        logger.info("batch_indexes_rebuilt", extra={"batch_count": count})


class BatchMutation:
    """
    Undo-logged view of the store inside ``BatchStore.transaction``.

    Contract:
        ``apply`` and ``close`` require the batch id to be among the keys
        held by the transaction.  ``create`` locks the new batch on the
        transaction's stack and adds it to the held keys.
        ``on_rollback`` registers compensation for non-batch writes (record
        saves, sequence numbers) so they unwind in the same reverse order.
    """

    def __init__(
        self,
        store: BatchStore,
        held_keys: Iterable[str],
        created_locks: ExitStack,
    ):
        self._store = store
        self._held = set(held_keys)
        self._created_locks = created_locks
        self._undo: list[tuple[str, Callable[[], None]]] = []

    def get(self, batch_id: str) -> Batch:
        self._require_held(batch_id)
        return self._store._load_or_raise(batch_id)

    def find(self, batch_id: str) -> Batch | None:
        self._require_held(batch_id)
        return self._store._load(batch_id)

    def apply(self, batch_id: str, delta: QuantityInput) -> Batch:
        self._require_held(batch_id)
        amount = self._store._parse_delta(delta)
        before, after = self._store._apply_locked(batch_id, amount)
        self._undo.append(("apply", lambda: self._store._restore(before)))
        return after

    def create(self, spec: BatchSpec) -> Batch:
        batch = self._store._build(spec)
        self._created_locks.enter_context(self._store.locks.hold([batch.id]))
        self._held.add(batch.id)
        self._store._insert(batch)
        self._undo.append(("create", lambda: self._store._remove(batch)))
        return batch

    def close(self, batch_id: str, transformation_id: str) -> Batch:
        self._require_held(batch_id)
        before, after = self._store._close_locked(batch_id, transformation_id)
        self._undo.append(("close", lambda: self._store._restore(before)))
        return after

    def on_rollback(self, label: str, compensation: Callable[[], None]) -> None:
        self._undo.append((label, compensation))

    @property
    def change_count(self) -> int:
        return len(self._undo)

    def rollback(self, cause: BaseException | None = None) -> None:
        steps = len(self._undo)
        while self._undo:
            _, compensation = self._undo.pop()
            compensation()
        logger.warning(
            "batch_transaction_rolled_back",
            extra={
                "undone_steps": steps,
                "error_code": getattr(cause, "code", type(cause).__name__ if cause else None),
            },
        )

    def _require_held(self, batch_id: str) -> None:
        if batch_id not in self._held:
            raise RuntimeError(
                f"Batch {batch_id} is not locked by this transaction"
            )
