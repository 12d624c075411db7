"""
BatchLockManager -- per-key re-entrant locks with ordered acquisition.

Responsibility:
    Serializes every mutation and every read of a batch (and of issue and
    sequence keys) inside one process.  Composite operations name all the
    keys they touch up front; ``hold`` acquires them in sorted order so two
    operations with overlapping key sets cannot deadlock.

Architecture position:
    Kernel > Services -- imperative shell infrastructure shared by the batch
    store, record store, document sequences and every ledger service.

Invariants enforced:
    - Lock acquisition order is the lexicographic order of keys.
    - Locks are re-entrant: a service holding ``batch:X`` may call a store
      method that takes ``batch:X`` again.
    - The registry holds an entry only while a key is held or awaited.

Failure modes:
    None.  There are no timeouts and no cancellation; a caller blocks until
    every key is free.

Non-goals:
    Cross-process coordination.  Two processes sharing a JSON file or a
    database need the backend's own locking.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager


def issue_lock_key(issue_id: str) -> str:
    """Lock key guarding the return history of one issue."""
    return f"issue:{issue_id}"


def sequence_lock_key(prefix: str) -> str:
    return f"sequence:{prefix}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class BatchLockManager:
    """
    Registry of ``threading.RLock`` objects keyed by string.

    An entry lives only while some thread holds or waits for its key; the
    last release drops it, so the registry stays bounded by the keys in use.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[tuple[str, ...]]:
        """
        Acquire every lock in ``keys`` (deduplicated, sorted) for the block.

        Yields the ordered key tuple.  Locks are released in reverse order.
        """
        ordered = tuple(sorted(set(keys)))
        acquired: list[str] = []
        try:
            for key in ordered:
                self._acquire(key)
                acquired.append(key)
            yield ordered
        finally:
            for key in reversed(acquired):
                self._release(key)

    def _acquire(self, key: str) -> None:
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        try:
            entry.lock.acquire()
        except BaseException:
            self._checkin(key, entry)
            raise

    def _release(self, key: str) -> None:
        with self._registry_lock:
            entry = self._entries[key]
        entry.lock.release()
        self._checkin(key, entry)

    def _checkin(self, key: str, entry: _Entry) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._entries)
