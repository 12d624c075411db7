"""ORM models for the SQL persistence backend."""

from rollstock_kernel.models.ledger_document import LedgerDocumentModel

__all__ = ["LedgerDocumentModel"]
