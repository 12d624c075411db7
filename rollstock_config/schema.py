"""
LedgerSettings schema.

Typed, frozen view of the YAML ledger configuration.  The loader parses
YAML into these types; ``rollstock_services.ledger.InventoryLedger``
translates them into constructor arguments so the kernel never sees them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuantityPolicy:
    """Quantity precision and slitting conservation tolerance."""

    decimal_places: int = 3
    conservation_tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class NumberingPolicy:
    """Financial-year document numbering."""

    fy_start_month: int = 4
    sequence_width: int = 5
    receipt_prefix: str = "GRN"
    issue_prefix: str = "MI"
    return_prefix: str = "MR"
    slitting_prefix: str = "SL"


@dataclass(frozen=True)
class AllocationPolicy:
    """Automatic issue behaviour."""

    default_policy: str = "fifo"  # fifo | lifo


@dataclass(frozen=True)
class StockRegisterPolicy:
    low_stock_fraction: Decimal = Decimal("0.10")
    unused_width_warning_fraction: Decimal = Decimal("0.10")


@dataclass(frozen=True)
class StoragePolicy:
    """Which persistence backend the ledger facade builds."""

    backend: str = "memory"  # memory | json | sql
    path: str | None = None
    database_url: str | None = None
    echo: bool = False


@dataclass(frozen=True)
class LoggingPolicy:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerSettings:
    """
    Root configuration artifact.

    ``checksum`` is the SHA-256 of the canonical JSON of the source YAML and
    identifies the configuration in ROLLSTOCK_CONFIG_TRACE log entries.
    """

    config_id: str
    version: int
    quantity: QuantityPolicy = field(default_factory=QuantityPolicy)
    numbering: NumberingPolicy = field(default_factory=NumberingPolicy)
    allocation: AllocationPolicy = field(default_factory=AllocationPolicy)
    stock_register: StockRegisterPolicy = field(default_factory=StockRegisterPolicy)
    storage: StoragePolicy = field(default_factory=StoragePolicy)
    logging: LoggingPolicy = field(default_factory=LoggingPolicy)
    checksum: str = ""
