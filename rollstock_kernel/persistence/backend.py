"""
PersistenceBackend -- the storage seam underneath every ledger store.

Responsibility:
    A minimal key/value contract (``load``, ``save``, ``delete``, ``keys``)
    over JSON-compatible dicts.  Stores (batches, records, sequences) own the
    key scheme and the in-memory indexes; backends own durability only.

Architecture position:
    Kernel > Persistence.  Imported by kernel services; never imports them.

Key scheme:
    ``batch:<id>``, ``issue:<id>``, ``return:<id>``, ``transformation:<id>``,
    ``sequence:<prefix>:<fy>``.  The prefix before the first colon is the
    record kind.

Failure modes:
    Backend-specific I/O errors (OSError, SQLAlchemyError) propagate unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

Payload = dict[str, Any]


def key_kind(key: str) -> str:
    """Return the record kind encoded in a backend key."""
    return key.split(":", 1)[0]


class PersistenceBackend(ABC):
    """
    Durable key/value storage for ledger records.

    Contract:
        ``save`` then ``load`` of the same key returns an equal dict.
        Returned dicts are private copies; mutating them never changes
        stored state.

    Guarantees:
        - ``keys(prefix)`` returns keys in sorted order.
        - ``delete`` of a missing key is a no-op.

    Non-goals:
        - No multi-key transactions.  Atomicity across keys is provided by
          the store's undo log (see BatchMutation).
    """

    @abstractmethod
    def load(self, key: str) -> Payload | None:
        """Return the stored dict for ``key`` or None."""

    @abstractmethod
    def save(self, key: str, value: Payload) -> None:
        """Insert or replace ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """All stored keys starting with ``prefix``."""

    def items(self, prefix: str = "") -> Iterator[tuple[str, Payload]]:
        """Iterate ``(key, value)`` pairs under ``prefix``."""
        for key in self.keys(prefix):
            value = self.load(key)
            if value is not None:
                yield key, value

    def close(self) -> None:
        """Release backend resources."""
