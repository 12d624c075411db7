"""
Configuration Loader (``rollstock_config.loader``).

Responsibility
--------------
Loads the ledger YAML file and parses it into the frozen
``rollstock_config.schema`` dataclasses.  Runtime callers use
``rollstock_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Unknown top-level sections are rejected; a typo never silently falls
  back to a default.
* Quantities (tolerance, fractions) are parsed to Decimal via ``str`` so a
  YAML float ``0.01`` becomes ``Decimal("0.01")``.
* ``compute_checksum`` produces a deterministic SHA-256 hash.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
* Out-of-range values -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from rollstock_config.schema import (
    AllocationPolicy,
    LedgerSettings,
    LoggingPolicy,
    NumberingPolicy,
    QuantityPolicy,
    StockRegisterPolicy,
    StoragePolicy,
)

_SECTIONS = {
    "config_id",
    "version",
    "quantity",
    "numbering",
    "allocation",
    "stock_register",
    "storage",
    "logging",
}

_BACKENDS = {"memory", "json", "sql"}
_POLICIES = {"fifo", "lifo"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{key}: expected a number, got {value!r}") from None


def _fraction(value: Any, key: str) -> Decimal:
    result = parse_decimal(value, key)
    if not Decimal("0") <= result <= Decimal("1"):
        raise ValueError(f"{key}: must be between 0 and 1, got {result}")
    return result


def parse_quantity_policy(data: dict[str, Any]) -> QuantityPolicy:
    defaults = QuantityPolicy()
    places = int(data.get("decimal_places", defaults.decimal_places))
    if not 0 <= places <= 9:
        raise ValueError(f"quantity.decimal_places: must be 0-9, got {places}")
    tolerance = parse_decimal(
        data.get("conservation_tolerance", defaults.conservation_tolerance),
        "quantity.conservation_tolerance",
    )
    if tolerance < 0:
        raise ValueError(f"quantity.conservation_tolerance: must not be negative, got {tolerance}")
    return QuantityPolicy(decimal_places=places, conservation_tolerance=tolerance)


def parse_numbering_policy(data: dict[str, Any]) -> NumberingPolicy:
    defaults = NumberingPolicy()
    month = int(data.get("fy_start_month", defaults.fy_start_month))
    if not 1 <= month <= 12:
        raise ValueError(f"numbering.fy_start_month: must be 1-12, got {month}")
    width = int(data.get("sequence_width", defaults.sequence_width))
    if width < 1:
        raise ValueError(f"numbering.sequence_width: must be positive, got {width}")
    prefixes = data.get("prefixes", {})
    return NumberingPolicy(
        fy_start_month=month,
        sequence_width=width,
        receipt_prefix=prefixes.get("receipt", defaults.receipt_prefix),
        issue_prefix=prefixes.get("issue", defaults.issue_prefix),
        return_prefix=prefixes.get("return", defaults.return_prefix),
        slitting_prefix=prefixes.get("slitting", defaults.slitting_prefix),
    )


def parse_allocation_policy(data: dict[str, Any]) -> AllocationPolicy:
    policy = str(data.get("default_policy", AllocationPolicy().default_policy)).lower()
    if policy not in _POLICIES:
        raise ValueError(f"allocation.default_policy: expected one of {sorted(_POLICIES)}, got {policy!r}")
    return AllocationPolicy(default_policy=policy)


def parse_stock_register_policy(data: dict[str, Any]) -> StockRegisterPolicy:
    defaults = StockRegisterPolicy()
    return StockRegisterPolicy(
        low_stock_fraction=_fraction(
            data.get("low_stock_fraction", defaults.low_stock_fraction),
            "stock_register.low_stock_fraction",
        ),
        unused_width_warning_fraction=_fraction(
            data.get("unused_width_warning_fraction", defaults.unused_width_warning_fraction),
            "stock_register.unused_width_warning_fraction",
        ),
    )


def parse_storage_policy(data: dict[str, Any]) -> StoragePolicy:
    backend = str(data.get("backend", "memory")).lower()
    if backend not in _BACKENDS:
        raise ValueError(f"storage.backend: expected one of {sorted(_BACKENDS)}, got {backend!r}")
    if backend == "json" and not data.get("path"):
        raise ValueError("storage.path: required for the json backend")
    if backend == "sql" and not data.get("database_url"):
        raise ValueError("storage.database_url: required for the sql backend")
    return StoragePolicy(
        backend=backend,
        path=data.get("path"),
        database_url=data.get("database_url"),
        echo=bool(data.get("echo", False)),
    )


def parse_logging_policy(data: dict[str, Any]) -> LoggingPolicy:
    return LoggingPolicy(level=str(data.get("level", "INFO")).upper())


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Parse a full settings dict.

    Raises:
        KeyError: if ``config_id`` is missing.
        ValueError: on unknown sections or out-of-range values.
    """
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    return LedgerSettings(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        quantity=parse_quantity_policy(data.get("quantity") or {}),
        numbering=parse_numbering_policy(data.get("numbering") or {}),
        allocation=parse_allocation_policy(data.get("allocation") or {}),
        stock_register=parse_stock_register_policy(data.get("stock_register") or {}),
        storage=parse_storage_policy(data.get("storage") or {}),
        logging=parse_logging_policy(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> LedgerSettings:
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
