"""
rollstock_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``rollstock_kernel`` and below
    ``rollstock_services``.  The kernel MUST NEVER import from
    ``rollstock_config``; the ledger facade translates settings into
    constructor arguments.

Resolution order:
    1. explicit ``path`` argument
    2. ``ROLLSTOCK_CONFIG`` environment variable
    3. bundled ``defaults.yaml``

Failure modes:
    - ``FileNotFoundError`` -- the resolved file does not exist.
    - ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``ROLLSTOCK_CONFIG_TRACE`` log entry with the config id, version,
    source path and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from rollstock_config.loader import load_settings
from rollstock_config.schema import (
    AllocationPolicy,
    LedgerSettings,
    LoggingPolicy,
    NumberingPolicy,
    QuantityPolicy,
    StockRegisterPolicy,
    StoragePolicy,
)
from rollstock_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "ROLLSTOCK_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: str | os.PathLike[str] | None = None) -> LedgerSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a settings YAML file.

    Returns:
        Frozen LedgerSettings.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If configuration validation fails.
    """
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    settings = load_settings(source)

    _logger.info(
        "ROLLSTOCK_CONFIG_TRACE",
        extra={
            "trace_type": "ROLLSTOCK_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(source),
            "storage_backend": settings.storage.backend,
        },
    )
    return settings


__all__ = [
    "get_active_config",
    "LedgerSettings",
    "QuantityPolicy",
    "NumberingPolicy",
    "AllocationPolicy",
    "StockRegisterPolicy",
    "StoragePolicy",
    "LoggingPolicy",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
]
