"""
Module: rollstock_kernel.models.ledger_document
Responsibility: ORM persistence for every ledger record stored by the SQL
    backend.  One row per backend key; the JSON payload is the record's
    ``to_dict()`` form.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - ``key`` is the primary key; a save of an existing key replaces the row.
    - ``item_code``, ``parent_batch_id`` and ``source_document_id`` mirror
      the payload so stock and lineage lookups can use an index instead of
      scanning JSON.

Failure modes:
    - IntegrityError if two sessions insert the same key concurrently
      (prevented in-process by the batch lock manager).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from rollstock_kernel.db.base import Base


class LedgerDocumentModel(Base):
    """
    Persistent storage for ledger payloads.

    Contract:
        ``kind`` is the key prefix (``batch``, ``issue``, ``return``,
        ``transformation``, ``sequence``).  The payload is opaque to the
        database.

    Guarantees:
        - (kind, item_code) index supports stock register queries.
        - parent_batch_id index supports lineage traversal.
        - source_document_id index supports GRN lookups.
    """

    __tablename__ = "ledger_documents"

    __table_args__ = (
        Index("idx_ledger_doc_kind_item", "kind", "item_code"),
        Index("idx_ledger_doc_parent", "parent_batch_id"),
        Index("idx_ledger_doc_source", "source_document_id"),
    )

    key: Mapped[str] = mapped_column(String(200), primary_key=True)

    kind: Mapped[str] = mapped_column(String(30), nullable=False)

    item_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    parent_batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    source_document_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<LedgerDocument {self.key}>"
