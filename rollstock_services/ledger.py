"""
InventoryLedger -- composition root for the roll-stock ledger.

Responsibility:
    Wires one persistence backend, one lock manager and one clock into the
    kernel stores and the services, so that every component shares the same
    locks and sees the same records.  Also owns the operations that span
    stores, such as batch deletion with a reference check.

Architecture position:
    Services -- the only place where ``rollstock_config`` settings are
    turned into constructor arguments for kernel and service objects.

Invariants enforced:
    - A single BatchLockManager is shared by the batch store, the document
      sequences and every service.
    - A batch is deleted only when no non-reversed issue, no slitting run
      and no child batch references it.

Failure modes:
    - BatchReferencedError from ``delete_batch``.
    - ValueError from ``from_config`` for an unknown storage backend.
"""

from __future__ import annotations

import os
from pathlib import Path

from rollstock_config import LedgerSettings, get_active_config
from rollstock_engines.selection import SelectionPolicy
from rollstock_kernel.db.engine import build_engine
from rollstock_kernel.domain.batch import Batch
from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.exceptions import BatchReferencedError
from rollstock_kernel.logging_config import configure_logging, get_logger
from rollstock_kernel.persistence import InMemoryBackend, JsonFileBackend, PersistenceBackend
from rollstock_kernel.persistence.sql import SqlAlchemyBackend
from rollstock_kernel.selectors.stock_selector import StockSelector
from rollstock_kernel.selectors.trace_selector import TraceSelector
from rollstock_kernel.services.batch_store import BatchStore
from rollstock_kernel.services.document_sequence import DocumentSequenceService
from rollstock_kernel.services.locking import BatchLockManager
from rollstock_kernel.services.record_store import RecordStore
from rollstock_services.allocation_service import AllocationService
from rollstock_services.receipt_processor import ReceiptProcessor
from rollstock_services.return_service import ReturnService
from rollstock_services.transformation_service import TransformationService

logger = get_logger("services.ledger")


def build_backend(settings: LedgerSettings) -> PersistenceBackend:
    """Backend named by the storage policy."""
    storage = settings.storage
    if storage.backend == "memory":
        return InMemoryBackend()
    if storage.backend == "json":
        if not storage.path:
            raise ValueError("storage.path is required for the json backend")
        return JsonFileBackend(storage.path)
    if storage.backend == "sql":
        if not storage.database_url:
            raise ValueError("storage.database_url is required for the sql backend")
        return SqlAlchemyBackend(build_engine(storage.database_url, echo=storage.echo))
    raise ValueError(f"Unknown storage backend: {storage.backend!r}")


class InventoryLedger:
    """
    One ledger instance: stores, services and read-side selectors.

    Attributes:
        batches, records, sequences: kernel stores.
        receipts, allocation, returns, transformations: services.
        stock, trace: selectors.
    """

    def __init__(
        self,
        backend: PersistenceBackend | None = None,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self.settings = settings or LedgerSettings(config_id="inline", version=1)
        self.backend = backend if backend is not None else InMemoryBackend()
        self.clock = clock or SystemClock()
        self.locks = BatchLockManager()

        quantity = self.settings.quantity
        numbering = self.settings.numbering

        self.batches = BatchStore(self.backend, clock=self.clock, locks=self.locks)
        self.records = RecordStore(self.backend)
        self.sequences = DocumentSequenceService(
            self.backend,
            clock=self.clock,
            locks=self.locks,
            fy_start_month=numbering.fy_start_month,
            width=numbering.sequence_width,
        )

        self.receipts = ReceiptProcessor(
            self.batches,
            self.sequences,
            decimal_places=quantity.decimal_places,
            prefix=numbering.receipt_prefix,
        )
        self.allocation = AllocationService(
            self.batches,
            self.records,
            self.sequences,
            clock=self.clock,
            prefix=numbering.issue_prefix,
            default_policy=SelectionPolicy(self.settings.allocation.default_policy),
        )
        self.returns = ReturnService(
            self.batches,
            self.records,
            self.sequences,
            clock=self.clock,
            prefix=numbering.return_prefix,
        )
        self.transformations = TransformationService(
            self.batches,
            self.records,
            self.sequences,
            clock=self.clock,
            prefix=numbering.slitting_prefix,
            tolerance=quantity.conservation_tolerance,
            decimal_places=quantity.decimal_places,
            warn_unused_fraction=self.settings.stock_register.unused_width_warning_fraction,
        )

        self.stock = StockSelector(
            self.batches,
            self.records,
            clock=self.clock,
            low_stock_fraction=self.settings.stock_register.low_stock_fraction,
        )
        self.trace = TraceSelector(self.batches, self.records)

        logger.info(
            "ledger_opened",
            extra={
                "config_id": self.settings.config_id,
                "backend": type(self.backend).__name__,
            },
        )

    @classmethod
    def from_config(
        cls,
        path: str | os.PathLike[str] | Path | None = None,
        clock: Clock | None = None,
    ) -> InventoryLedger:
        """Build a ledger from YAML settings (see ``get_active_config``)."""
        settings = get_active_config(path)
        configure_logging(level=settings.logging.level)
        return cls(backend=build_backend(settings), clock=clock, settings=settings)

    def delete_batch(self, batch_id: str) -> Batch:
        """
        Delete a batch nothing refers to any more.

        Raises:
            BatchNotFoundError: unknown batch.
            BatchReferencedError: a non-reversed issue, a slitting run or a
                child batch still refers to it.
        """
        with self.locks.hold([batch_id]):
            self.batches.get_by_id(batch_id)
            references = [
                issue.id
                for issue in self.records.issues_for_batch(batch_id)
                if not issue.is_reversed
            ]
            references.extend(t.id for t in self.records.transformations_consuming(batch_id))
            producing = self.records.transformation_producing(batch_id)
            if producing is not None:
                references.append(producing.id)
            children = self.batches.count_children(batch_id)
            if children:
                references.append(f"{children} child batches")
            if references:
                logger.warning(
                    "batch_delete_rejected",
                    extra={
                        "batch_id": batch_id,
                        "references": references,
                        "error_code": BatchReferencedError.code,
                    },
                )
                raise BatchReferencedError(batch_id, references)
            return self.batches.delete_batch(batch_id)

    def close(self) -> None:
        self.backend.close()
        logger.info("ledger_closed", extra={"config_id": self.settings.config_id})
