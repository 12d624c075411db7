"""
DocumentSequenceService -- financial-year document numbers.

Responsibility:
    Allocates human-readable document numbers of the form
    ``{PREFIX}{seq:05d}/{yy}-{yy+1}`` (``GRN00001/25-26``) for goods
    receipts, material issues, material returns and slitting runs.  Each
    prefix restarts at 1 in every financial year.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Counters are
    persisted in the same backend as the records they number.

Invariants enforced:
    - Strictly monotonic per (prefix, financial year): the counter is read,
      incremented and written while holding ``sequence:<prefix>``.
    - ``release`` only steps a counter back when the released number is
      still the latest one, so a rolled-back operation does not leave a
      gap unless a later number was already handed out.

Failure modes:
    - ValidationError for an unparseable document number passed to
      ``release``.
"""

from __future__ import annotations

import re
from datetime import datetime

from rollstock_kernel.domain.clock import Clock, SystemClock
from rollstock_kernel.exceptions import ValidationError
from rollstock_kernel.logging_config import get_logger
from rollstock_kernel.persistence.backend import PersistenceBackend
from rollstock_kernel.services.locking import BatchLockManager, sequence_lock_key

logger = get_logger("services.document_sequence")

SEQUENCE_KEY_PREFIX = "sequence:"

_NUMBER_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)(?P<seq>\d+)/(?P<fy>\d{2}-\d{2})$")


def financial_year_label(moment: datetime, start_month: int = 4) -> str:
    """
    Two-digit label of the financial year containing ``moment``.

    With the default April start, 2025-06-01 is in ``25-26`` and
    2026-02-10 is in ``25-26`` as well.
    """
    start_year = moment.year if moment.month >= start_month else moment.year - 1
    return f"{start_year % 100:02d}-{(start_year + 1) % 100:02d}"


class DocumentSequenceService:
    """
    Per-prefix, per-financial-year counters.

    Contract:
        ``next_number(prefix)`` returns a new document number; two calls
        never return the same number.

    Non-goals:
        - Does not validate that a caller-supplied document id follows the
          numbering pattern.  Receipts may carry an external GRN number.
    """

    GOODS_RECEIPT = "GRN"
    MATERIAL_ISSUE = "MI"
    MATERIAL_RETURN = "MR"
    SLITTING = "SL"

    def __init__(
        self,
        backend: PersistenceBackend,
        clock: Clock | None = None,
        locks: BatchLockManager | None = None,
        fy_start_month: int = 4,
        width: int = 5,
    ):
        if not 1 <= fy_start_month <= 12:
            raise ValueError(f"fy_start_month must be 1-12, got {fy_start_month}")
        self._backend = backend
        self._clock = clock or SystemClock()
        self._locks = locks or BatchLockManager()
        self._fy_start_month = fy_start_month
        self._width = width

    def current_label(self) -> str:
        return financial_year_label(self._clock.now(), self._fy_start_month)

    def next_number(self, prefix: str) -> str:
        label = self.current_label()
        key = self._key(prefix, label)
        with self._locks.hold([sequence_lock_key(prefix)]):
            payload = self._backend.load(key) or {"value": 0}
            value = int(payload["value"]) + 1
            self._backend.save(key, {"prefix": prefix, "fy": label, "value": value})
        number = self.format(prefix, value, label)
        logger.debug(
            "document_number_allocated",
            extra={"prefix": prefix, "financial_year": label, "value": value},
        )
        return number

    def current_value(self, prefix: str, label: str | None = None) -> int:
        payload = self._backend.load(self._key(prefix, label or self.current_label()))
        return int(payload["value"]) if payload else 0

    def release(self, document_number: str) -> bool:
        """
        Return ``document_number`` to its counter if it is the latest issued.

        Returns True when the counter was stepped back.
        """
        match = _NUMBER_PATTERN.match(document_number)
        if match is None:
            raise ValidationError("document_number", f"unrecognised format {document_number!r}")
        prefix, label = match["prefix"], match["fy"]
        value = int(match["seq"])
        key = self._key(prefix, label)
        with self._locks.hold([sequence_lock_key(prefix)]):
            payload = self._backend.load(key)
            if payload is None or int(payload["value"]) != value:
                return False
            self._backend.save(key, {"prefix": prefix, "fy": label, "value": value - 1})
        logger.debug(
            "document_number_released",
            extra={"prefix": prefix, "financial_year": label, "value": value},
        )
        return True

    def format(self, prefix: str, value: int, label: str) -> str:
        return f"{prefix}{value:0{self._width}d}/{label}"

    @staticmethod
    def _key(prefix: str, label: str) -> str:
        return f"{SEQUENCE_KEY_PREFIX}{prefix}:{label}"
