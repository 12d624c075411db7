"""In-process backend holding deep copies of every payload."""

from __future__ import annotations

import copy
import threading

from rollstock_kernel.persistence.backend import Payload, PersistenceBackend


class InMemoryBackend(PersistenceBackend):
    """Dictionary-backed storage; the default for tests and single runs."""

    def __init__(self) -> None:
        self._data: dict[str, Payload] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> Payload | None:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: Payload) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
