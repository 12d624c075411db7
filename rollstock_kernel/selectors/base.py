"""
Module: rollstock_kernel.selectors.base
Responsibility: Abstract base class for all read-only selectors.  Selectors
    form the query side of the ledger, turning stored batches and records
    into report DTOs without mutation capability.
Architecture position: Kernel > Selectors.  May import from domain/ and
    services/ stores.  Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only access: selectors call only the stores' read methods.
    - DTO return convention: selectors return frozen dataclasses, never raw
      payload dicts.
    - Projections, not recomputation: remaining quantities are read from
      batches; records are only consulted to explain them.
"""

from abc import ABC

from rollstock_kernel.services.batch_store import BatchStore
from rollstock_kernel.services.record_store import RecordStore


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors receive the stores from the caller and return DTOs.

    Non-goals:
        BaseSelector does NOT define any query methods; subclasses implement
        stock and lineage queries.
    """

    def __init__(self, batches: BatchStore, records: RecordStore):
        self.batches = batches
        self.records = records
