"""
Audit -- Append-only status change records.

Responsibility:
    ``StatusChangeAuditEntry`` records exactly one committed transition:
    which edge, who, when, why, through which request, and how long it
    took. Entries carry a SHA-256 checksum and a retention date, both set by
    ``payroll_engines.integrity.finalize_audit_entry`` before insert.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Persisted by a ``DocumentStore``;
    the SQL store backs it with ``StatusChangeAuditModel`` whose ORM
    listeners reject updates and deletes.

Invariants enforced:
    - Entries are never updated except for the archival flags
      (``is_archived`` / ``archived_at``) and never deleted.
    - Stores keep and hand out detached copies, so changing a returned
      entry's metadata never reaches the stored one.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from payroll_kernel.domain.document import DocumentStatus, TransitionTrigger

AUDIT_VERSION = "1.0"


@dataclass(frozen=True)
class BusinessImpact:
    critical: bool = False
    affected_users: int | None = None
    estimated_revenue: Decimal | None = None


@dataclass(frozen=True)
class ErrorDetails:
    """Failure description kept on GENERATION_FAILED entries for retry tooling."""

    error_type: str
    message: str
    retryable: bool = False
    stack_trace: str | None = None


@dataclass(frozen=True)
class StatusChangeAuditEntry:
    audit_id: str
    document_id: str
    from_status: DocumentStatus
    to_status: DocumentStatus
    trigger: TransitionTrigger
    changed_by: str
    changed_at: datetime
    reason: str | None = None
    comments: str | None = None
    request_id: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)
    approval_required: bool = False
    approved_by: str | None = None
    approved_at: datetime | None = None
    business_impact: BusinessImpact | None = None
    error_details: ErrorDetails | None = None
    processing_time_ms: int | None = None
    checksum: str | None = None
    retention_date: datetime | None = None
    audit_version: str = AUDIT_VERSION
    is_archived: bool = False
    archived_at: datetime | None = None

    @property
    def status_pair(self) -> str:
        return f"{self.from_status.value} → {self.to_status.value}"

    @property
    def is_critical(self) -> bool:
        return bool(self.business_impact and self.business_impact.critical)

    def detached(self) -> StatusChangeAuditEntry:
        """Copy whose metadata shares no containers with this entry."""
        return replace(self, metadata=copy.deepcopy(self.metadata))


@dataclass(frozen=True)
class AuditIntegrityIssue:
    """A stored audit entry whose checksum no longer matches its content."""

    audit_id: str
    document_id: str
    expected_checksum: str
    stored_checksum: str | None
