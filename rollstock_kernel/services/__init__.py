"""Kernel services: batch store, record store, locks and document numbers."""

from rollstock_kernel.services.batch_store import BatchMutation, BatchStore
from rollstock_kernel.services.document_sequence import (
    DocumentSequenceService,
    financial_year_label,
)
from rollstock_kernel.services.locking import BatchLockManager, issue_lock_key
from rollstock_kernel.services.record_store import RecordStore

__all__ = [
    "BatchStore",
    "BatchMutation",
    "BatchLockManager",
    "RecordStore",
    "DocumentSequenceService",
    "financial_year_label",
    "issue_lock_key",
]
