"""Pluggable storage backends for ledger records."""

from rollstock_kernel.persistence.backend import PersistenceBackend, key_kind
from rollstock_kernel.persistence.json_file import JsonFileBackend
from rollstock_kernel.persistence.memory import InMemoryBackend

__all__ = [
    "PersistenceBackend",
    "InMemoryBackend",
    "JsonFileBackend",
    "key_kind",
]
