"""
Structured JSON logging for the taxbook core.

One JSON object per line.  Messages are snake_case event names
(``transaction_posted``, ``tax_return_filed``); the figures travel as
``extra`` fields, and the ids of whatever the current facade call is
working on (organization, actor, transaction, return, receipt) are added
from ``LogContext``.

A logged TaxbookError contributes its ``code`` and public attributes as
``exc_*`` fields, so an UnbalancedEntryError shows up with ``exc_debits``
and ``exc_credits`` rather than only in the message text.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_CONTEXT_FIELDS = (
    "correlation_id",
    "organization_id",
    "actor_id",
    "transaction_id",
    "return_id",
    "receipt_id",
)

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"taxbook_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """Per-call ids attached to every record; safe across threads and tasks."""

    @staticmethod
    def _var(name: str) -> ContextVar[str | None]:
        try:
            return _context[name]
        except KeyError:
            raise KeyError(f"Unknown log context field: {name}") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """None values are skipped; unknown names raise KeyError."""
        for name, value in fields.items():
            var = cls._var(name)
            if value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        values = {name: var.get() for name, var in _context.items()}
        return {name: value for name, value in values.items() if value is not None}

    @classmethod
    def clear(cls) -> None:
        for var in _context.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (cls._var(name), cls._var(name).set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class StructuredFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            for key, value in vars(exc).items():
                if not key.startswith("_") and key not in ("args", "code"):
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json, ensure_ascii=False)


_ROOT = "taxbook"


def get_logger(name: str) -> logging.Logger:
    """``get_logger("tax.service")`` -> the ``taxbook.tax.service`` logger."""
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``taxbook`` logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False
    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Drop the handler and allow configure_logging again (tests)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
