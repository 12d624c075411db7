"""
SqlAlchemyBackend -- one row per ledger record in ``ledger_documents``.

Responsibility:
    Stores payloads in a JSON column and mirrors the lookup fields
    (item code, parent batch, source document) into indexed columns.
    Each call runs in its own ``session_scope`` (commit or rollback).

Architecture position:
    Kernel > Persistence.  Uses db/engine.py for sessions and
    models/ledger_document.py for the table.

Failure modes:
    SQLAlchemyError subclasses propagate after the session is rolled back.
"""

from __future__ import annotations

import copy

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from rollstock_kernel.db.base import Base
from rollstock_kernel.db.engine import session_scope
from rollstock_kernel.logging_config import get_logger
from rollstock_kernel.models.ledger_document import LedgerDocumentModel
from rollstock_kernel.persistence.backend import Payload, PersistenceBackend, key_kind

logger = get_logger("persistence.sql")


class SqlAlchemyBackend(PersistenceBackend):
    """
    Relational storage for ledger records.

    Contract:
        Owns the Engine it is given (see ``db.engine.build_engine``) and
        disposes it on ``close``.  Creates the ``ledger_documents`` table on
        construction unless ``create_schema=False``.
    """

    def __init__(self, engine: Engine, create_schema: bool = True) -> None:
        self._engine = engine
        self._factory: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False
        )
        if create_schema:
            Base.metadata.create_all(self._engine, tables=[LedgerDocumentModel.__table__])
        logger.info(
            "sql_backend_opened",
            extra={"dialect": self._engine.dialect.name},
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def load(self, key: str) -> Payload | None:
        with session_scope(self._factory) as session:
            row = session.get(LedgerDocumentModel, key)
            return copy.deepcopy(row.payload) if row is not None else None

    def save(self, key: str, value: Payload) -> None:
        with session_scope(self._factory) as session:
            row = session.get(LedgerDocumentModel, key)
            if row is None:
                row = LedgerDocumentModel(key=key, kind=key_kind(key))
                session.add(row)
            row.payload = copy.deepcopy(value)
            row.item_code = value.get("item_code")
            row.parent_batch_id = value.get("parent_batch_id")
            row.source_document_id = value.get("source_document_id")

    def delete(self, key: str) -> None:
        with session_scope(self._factory) as session:
            session.execute(
                delete(LedgerDocumentModel).where(LedgerDocumentModel.key == key)
            )

    def keys(self, prefix: str = "") -> list[str]:
        with session_scope(self._factory) as session:
            stmt = select(LedgerDocumentModel.key).order_by(LedgerDocumentModel.key)
            if prefix:
                stmt = stmt.where(LedgerDocumentModel.key.startswith(prefix, autoescape=True))
            return list(session.execute(stmt).scalars())

    def close(self) -> None:
        self._engine.dispose()
