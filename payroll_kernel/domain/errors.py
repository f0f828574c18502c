"""
Errors -- Structured failure values returned by the workflow.

Responsibility:
    ``DocumentError`` is the value the status service returns (never raises)
    for a failed transition: stable code, human message, severity, retryable
    flag, details and observability context.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Built from ``PayrollKernelError``
    instances via ``DocumentError.from_exception``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from payroll_kernel.exceptions import PayrollKernelError


class ErrorSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class ErrorContext:
    """Where a failure happened, for log correlation."""

    operation: str
    component: str = "DocumentStatusService"
    version: str = "1.0.0"
    environment: str = "development"
    request_id: str | None = None
    session_id: str | None = None


@dataclass(frozen=True)
class DocumentError:
    code: str
    message: str
    severity: ErrorSeverity
    retryable: bool
    timestamp: datetime
    context: ErrorContext
    details: dict[str, Any] = field(default_factory=dict, hash=False)
    document_id: str | None = None
    actor_id: str | None = None

    @property
    def failed_condition(self) -> str | None:
        return self.details.get("failed_condition")

    @property
    def failed_rule(self) -> str | None:
        return self.details.get("failed_rule")

    @classmethod
    def from_exception(
        cls,
        exc: PayrollKernelError,
        *,
        timestamp: datetime,
        context: ErrorContext,
        document_id: str | None = None,
        actor_id: str | None = None,
    ) -> DocumentError:
        details = {
            k: v for k, v in exc.details.items()
            if v is not None and k != "severity"
        }
        return cls(
            code=exc.code,
            message=str(exc),
            severity=ErrorSeverity(exc.severity),
            retryable=exc.retryable,
            timestamp=timestamp,
            context=context,
            details=details,
            document_id=document_id,
            actor_id=actor_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "document_id": self.document_id,
            "actor_id": self.actor_id,
            "details": dict(self.details),
            "context": {
                "operation": self.context.operation,
                "component": self.context.component,
                "version": self.context.version,
                "environment": self.context.environment,
                "request_id": self.context.request_id,
            },
        }
