"""
Structured JSON logging for the roll-stock ledger.

Every record is one JSON object per line.  Ledger services bind the document
or batch they are working on into ``LogContext`` so each event under that
operation carries it; call sites add the event's own fields through
``extra={...}``.  A ``StockLedgerError`` logged with ``exc_info`` contributes
its ``code`` and structured attributes as ``exc_*`` fields.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from typing import Any

from rollstock_kernel.exceptions import StockLedgerError

_LOGGER_PREFIX = "rollstock"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "document_id",
    "consumer_ref",
    "batch_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"rollstock_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Operation-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the named fields; ``None`` leaves a field unchanged."""
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        for name, value in fields.items():
            if value is not None:
                _context[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {name: _context[name].get() for name in CONTEXT_FIELDS}
        return {name: value for name, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """
        Set fields for the duration of the block, then restore the previous
        values.  Names outside ``CONTEXT_FIELDS`` are ignored.
        """
        tokens = [
            (_context[name], _context[name].set(value))
            for name, value in fields.items()
            if name in _context and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        if isinstance(exc, StockLedgerError):
            fields["exc_code"] = exc.code
            fields.update(
                (f"exc_{name}", value)
                for name, value in vars(exc).items()
                if not name.startswith("_")
            )
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``rollstock`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``rollstock`` logger.  Later calls are no-ops."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
