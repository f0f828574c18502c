"""
Transition -- Request / result value objects of the status workflow.

Responsibility:
    ``TransitionContext`` carries who is asking and why; ``TransitionResult``
    and ``BatchTransitionResult`` are the discriminated outcomes returned by
    the status service; ``BusinessRule`` / ``RuleResult`` define the rule
    plug-in contract; ``NotificationEvent`` is what notification handlers
    receive.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Context metadata keys understood by the built-in conditions:
    approval_granted, preview_viewed, error_resolved,
    permanent_failure_confirmed, tracking_id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from payroll_kernel.domain.audit import BusinessImpact, ErrorDetails
from payroll_kernel.domain.document import (
    DocumentStatus,
    FileStorageInfo,
    NotificationPriority,
)
from payroll_kernel.domain.errors import DocumentError

T = TypeVar("T")


@dataclass(frozen=True)
class TransitionContext:
    """Who requested a transition, why, and through which request."""

    actor_id: str
    reason: str | None = None
    comments: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)
    user_agent: str | None = None
    ip_address: str | None = None
    session_id: str | None = None
    request_id: str | None = None
    business_impact: BusinessImpact | None = None
    error_details: ErrorDetails | None = None
    file_info: FileStorageInfo | None = None
    recipients: tuple[str, ...] = ()

    @property
    def approval_granted(self) -> bool:
        return self.metadata.get("approval_granted") is True

    def flag(self, key: str) -> bool:
        """True only when ``metadata[key]`` is literally ``True``."""
        return self.metadata.get(key) is True

    def for_document(self, document_id: str) -> TransitionContext:
        """Copy with a per-document request id, used by batch transitions."""
        return replace(self, request_id=f"{self.request_id or 'batch'}-{document_id}")


@dataclass(frozen=True)
class TransitionResult:
    success: bool
    document_id: str
    previous_status: DocumentStatus | None = None
    new_status: DocumentStatus | None = None
    audit_id: str | None = None
    warnings: tuple[str, ...] = ()
    side_effects_executed: tuple[str, ...] = ()
    side_effect_failures: tuple[str, ...] = ()
    notification_failures: tuple[str, ...] = ()
    processing_time_ms: int = 0
    error: DocumentError | None = None

    @property
    def retryable(self) -> bool:
        return bool(self.error and self.error.retryable)


@dataclass(frozen=True)
class BatchTransitionResult:
    successful: tuple[str, ...]
    failed: tuple[tuple[str, DocumentError], ...]
    total_processed: int
    processing_time_ms: int

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


class RuleSeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class RuleResult:
    valid: bool
    message: str | None = None
    severity: RuleSeverity = RuleSeverity.INFO

    @classmethod
    def ok(cls) -> RuleResult:
        return cls(valid=True)


@runtime_checkable
class BusinessRule(Protocol):
    """
    Pluggable transition policy.

    ``validate`` returning severity ERROR aborts the transition; WARNING lets
    it proceed and surfaces the message in ``TransitionResult.warnings``.
    """

    name: str
    description: str

    def applies(
        self,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> bool: ...

    def validate(
        self,
        document_id: str,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> RuleResult: ...


@dataclass(frozen=True)
class NotificationEvent:
    document_id: str
    from_status: DocumentStatus
    to_status: DocumentStatus
    actor_id: str
    timestamp: datetime
    priority: NotificationPriority
    recipients: tuple[str, ...] = ()
    message: str = ""
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass(frozen=True)
class TransitionStatistics:
    """Aggregates over the audit trail for a time window."""

    total_transitions: int
    transitions_by_status_pair: dict[str, int] = field(default_factory=dict, hash=False)
    transitions_by_trigger: dict[str, int] = field(default_factory=dict, hash=False)
    transitions_by_user: dict[str, int] = field(default_factory=dict, hash=False)
    average_processing_time_ms: float = 0.0
    error_rate: float = 0.0
    critical_transitions: int = 0
