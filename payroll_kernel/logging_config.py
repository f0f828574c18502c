"""
Module: payroll_kernel.logging_config
Responsibility: JSON-line logging for every payroll_kernel.* logger, with
    per-transition fields (document, actor, request) carried in contextvars.
Architecture position: Kernel > infrastructure. Imports stdlib only.

Every record is one JSON object:

    {"ts": ..., "level": "INFO", "logger": "payroll_kernel.services.x",
     "message": "status_transition_committed", "document_id": "DOC-1",
     "actor_id": "hr-1", ...extra fields...}

Usage:
    logger = get_logger("services.document_status")
    with LogContext.bind(document_id="DOC-1", actor_id="hr-1"):
        logger.info("status_transition_committed", extra={"to_status": "SENT"})
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
from decimal import Decimal
from enum import Enum
from typing import Any

ROOT_LOGGER_NAME = "payroll_kernel"

_CONTEXT_FIELDS = ("document_id", "actor_id", "request_id", "session_id", "batch_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"payroll_log_{field}", default=None)
    for field in _CONTEXT_FIELDS
}


class LogContext:
    """Fields attached to every record logged in the current context.

    Values live in contextvars, so worker threads started through
    ``contextvars.copy_context().run`` see the caller's fields.
    """

    fields = _CONTEXT_FIELDS

    @staticmethod
    def set(**values: str | None) -> None:
        for field, value in values.items():
            if value is not None:
                _var(field).set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        current = {}
        for field, var in _context_vars.items():
            value = var.get()
            if value is not None:
                current[field] = value
        return current

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**values: str | None) -> Iterator[None]:
        """Set fields for the duration of the block, then restore them."""
        tokens = [
            (_var(field), _var(field).set(value))
            for field, value in values.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def _var(field: str) -> ContextVar[str | None]:
    try:
        return _context_vars[field]
    except KeyError:
        raise ValueError(f"Unknown log context field: {field}") from None


# Attributes every LogRecord has; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    # PayrollKernelError subclasses carry a stable code and structured details
    code = getattr(exc, "code", None)
    if code is not None:
        fields["error_code"] = code
        fields["error_retryable"] = getattr(exc, "retryable", False)
    details = getattr(exc, "details", None)
    if isinstance(details, dict):
        for key, value in details.items():
            fields.setdefault(f"exc_{key}", value)
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)
        return json.dumps(line, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Return ``payroll_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_configure_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the payroll_kernel logger. Idempotent."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and restore defaults. Tests only."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
