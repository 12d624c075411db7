"""
Codec helpers for persisting domain objects as JSON-compatible dicts.

Decimals travel as strings and datetimes as ISO-8601 strings so that every
backend (in-memory, JSON file, SQL JSON column) round-trips values exactly.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from rollstock_kernel.exceptions import ValidationError

_SCALARS = (str, int, float, bool, type(None))


def encode_decimal(value: Decimal) -> str:
    return str(value)


def decode_decimal(value: str | int | float) -> Decimal:
    return Decimal(str(value))


def encode_datetime(value: datetime) -> str:
    return value.isoformat()


def decode_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def encode_optional_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def decode_optional_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def normalize_attributes(attributes: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """
    Freeze a descriptive attribute snapshot into JSON-safe scalars.

    Decimal becomes str, date/datetime become ISO strings.  Nested structures
    are rejected; a snapshot is a flat record of physical properties.

    Raises:
        ValidationError: for nested or unsupported attribute values.
    """
    normalized: dict[str, Any] = {}
    for key, value in (attributes or {}).items():
        if isinstance(value, Decimal):
            normalized[key] = str(value)
        elif isinstance(value, (datetime, date)):
            normalized[key] = value.isoformat()
        elif isinstance(value, _SCALARS):
            normalized[key] = value
        else:
            raise ValidationError(
                f"attributes.{key}",
                f"unsupported value type {type(value).__name__}",
            )
    return MappingProxyType(normalized)
