"""
Module: rollstock_kernel.db.base
Responsibility: Declarative base class for the ledger's SQLAlchemy ORM models.
    Provides the type annotation map that keeps column types consistent.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel's SQL support.  ALL model files import from here.  This module MUST
    NOT import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(38, 9).  NEVER use float for stock quantities.
    - datetime maps to DateTime(timezone=True) so every stored timestamp is
      timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model inherits from Base.  Unlike record ids (opaque
        strings chosen by the stores) there is no generated primary key here;
        each model declares its own.

    Guarantees:
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }
