"""
payroll_services.notifications -- Post-commit notification fan-out.

Every registered handler receives each ``NotificationEvent``. Handlers are
independent: one failing handler is logged and reported, the others still
run, and the committed transition is unaffected.
"""

from __future__ import annotations

import threading
from typing import Callable

from payroll_kernel.domain.document import DocumentStatus
from payroll_kernel.domain.transition import NotificationEvent
from payroll_kernel.domain.workflow import STATUS_LABELS
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

NotificationHandler = Callable[[NotificationEvent], None]


def default_message(
    document_id: str, from_status: DocumentStatus, to_status: DocumentStatus
) -> str:
    return (
        f"Document {document_id}: {STATUS_LABELS[from_status]} → "
        f"{STATUS_LABELS[to_status]}"
    )


class NotificationDispatcher:
    """Named notification handlers, dispatched in registration order."""

    def __init__(self) -> None:
        self._handlers: dict[str, NotificationHandler] = {}
        self._lock = threading.Lock()

    def register(self, name: str, handler: NotificationHandler) -> None:
        with self._lock:
            self._handlers[name] = handler

    def unregister(self, name: str) -> None:
        with self._lock:
            self._handlers.pop(name, None)

    @property
    def handler_names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._handlers)

    def dispatch(self, event: NotificationEvent) -> tuple[str, ...]:
        """Deliver to every handler. Returns the names of handlers that failed."""
        with self._lock:
            handlers = list(self._handlers.items())
        failures: list[str] = []
        for name, handler in handlers:
            try:
                handler(event)
            except Exception as e:  # noqa: BLE001
                logger.warning("notification_handler_failed", extra={
                    "handler": name,
                    "document_id": event.document_id,
                    "to_status": event.to_status.value,
                    "error": str(e),
                })
                failures.append(name)
        logger.debug("notification_dispatched", extra={
            "document_id": event.document_id,
            "priority": event.priority.value,
            "handler_count": len(handlers),
            "failure_count": len(failures),
        })
        return tuple(failures)
