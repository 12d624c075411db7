"""
JsonFileBackend -- whole-collection JSON file with atomic replace.

Responsibility:
    Keeps the full key space in memory and rewrites the file on every
    mutation.  The write goes to a temporary file in the same directory and
    is moved into place with ``os.replace`` so readers never observe a
    half-written file.

Failure modes:
    - OSError on unwritable directory.  The in-memory view is rolled back to
      the previous value before the error propagates.
    - json.JSONDecodeError if an existing file is not valid JSON.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
import threading
from pathlib import Path

from rollstock_kernel.logging_config import get_logger
from rollstock_kernel.persistence.backend import Payload, PersistenceBackend

logger = get_logger("persistence.json_file")


class JsonFileBackend(PersistenceBackend):
    """File-backed storage for small installations."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, Payload] = {}
        if self._path.exists():
            with self._path.open("r", encoding="utf-8") as fh:
                self._data = json.load(fh)
        logger.info(
            "json_backend_opened",
            extra={"path": str(self._path), "record_count": len(self._data)},
        )

    @property
    def path(self) -> Path:
        return self._path

    def load(self, key: str) -> Payload | None:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: Payload) -> None:
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = copy.deepcopy(value)
            try:
                self._flush()
            except OSError:
                if previous is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = previous
                raise

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._data:
                return
            previous = self._data.pop(key)
            try:
                self._flush()
            except OSError:
                self._data[key] = previous
                raise

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, sort_keys=True, indent=1)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except OSError:
            logger.error(
                "json_backend_flush_failed",
                extra={"path": str(self._path)},
                exc_info=True,
            )
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
