"""
Module: payroll_kernel.models.status_change_audit
Responsibility: ORM persistence for document status change audit entries.
Architecture position: Kernel > Models. May import from db/base.py and
    kernel domain types only.

Invariants enforced:
    - Append-only: UPDATE is limited to the archival flags and DELETE is
      forbidden (ORM listeners in db/immutability.py).
    - checksum = SHA-256(document_id|from|to|changed_by|changed_at_ms), set
      before insert by payroll_engines.integrity.finalize_audit_entry.

Audit relevance:
    These rows are the legal trail of who moved which payslip where, and
    when. Retention is seven years; expired rows are flagged archived,
    never removed.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base
from payroll_kernel.domain.audit import (
    BusinessImpact,
    ErrorDetails,
    StatusChangeAuditEntry,
)
from payroll_kernel.domain.document import DocumentStatus, TransitionTrigger
from payroll_kernel.utils.hashing import canonicalize_json

ARCHIVAL_FIELDS = frozenset({"is_archived", "archived_at"})


class StatusChangeAuditModel(Base):
    """One committed status transition. Never updated except for archival."""

    __tablename__ = "status_change_audit"
    __table_args__ = (
        Index("idx_status_audit_document", "document_id", "changed_at"),
        Index("idx_status_audit_changed_at", "changed_at"),
        Index("idx_status_audit_retention", "is_archived", "retention_date"),
    )

    audit_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(100), nullable=False)
    from_status: Mapped[str] = mapped_column(String(50), nullable=False)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    comments: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Free-form transition context ("metadata" is reserved by DeclarativeBase)
    context_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    approval_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    impact_critical: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    impact_affected_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    impact_estimated_revenue: Mapped[Decimal | None] = mapped_column(nullable=True)

    error_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    error_retryable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    error_stack_trace: Mapped[str | None] = mapped_column(String(8000), nullable=True)

    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    retention_date: Mapped[datetime | None] = mapped_column(nullable=True)
    audit_version: Mapped[str] = mapped_column(String(10), nullable=False)

    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StatusChangeAudit {self.document_id}: "
            f"{self.from_status} → {self.to_status}>"
        )

    @classmethod
    def from_domain(cls, entry: StatusChangeAuditEntry) -> StatusChangeAuditModel:
        impact = entry.business_impact
        error = entry.error_details
        return cls(
            audit_id=entry.audit_id,
            document_id=entry.document_id,
            from_status=entry.from_status.value,
            to_status=entry.to_status.value,
            trigger=entry.trigger.value,
            changed_by=entry.changed_by,
            changed_at=entry.changed_at,
            reason=entry.reason,
            comments=entry.comments,
            request_id=entry.request_id,
            session_id=entry.session_id,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            context_metadata=(
                json.loads(canonicalize_json(entry.metadata))
                if entry.metadata else None
            ),
            approval_required=entry.approval_required,
            approved_by=entry.approved_by,
            approved_at=entry.approved_at,
            impact_critical=impact.critical if impact else None,
            impact_affected_users=impact.affected_users if impact else None,
            impact_estimated_revenue=impact.estimated_revenue if impact else None,
            error_type=error.error_type if error else None,
            error_message=error.message if error else None,
            error_retryable=error.retryable if error else None,
            error_stack_trace=error.stack_trace if error else None,
            processing_time_ms=entry.processing_time_ms,
            checksum=entry.checksum,
            retention_date=entry.retention_date,
            audit_version=entry.audit_version,
            is_archived=entry.is_archived,
            archived_at=entry.archived_at,
        )

    def to_domain(self) -> StatusChangeAuditEntry:
        impact = None
        if self.impact_critical is not None:
            impact = BusinessImpact(
                critical=self.impact_critical,
                affected_users=self.impact_affected_users,
                estimated_revenue=(
                    Decimal(self.impact_estimated_revenue)
                    if self.impact_estimated_revenue is not None else None
                ),
            )
        error = None
        if self.error_type is not None:
            error = ErrorDetails(
                error_type=self.error_type,
                message=self.error_message or "",
                retryable=bool(self.error_retryable),
                stack_trace=self.error_stack_trace,
            )
        return StatusChangeAuditEntry(
            audit_id=self.audit_id,
            document_id=self.document_id,
            from_status=DocumentStatus(self.from_status),
            to_status=DocumentStatus(self.to_status),
            trigger=TransitionTrigger(self.trigger),
            changed_by=self.changed_by,
            changed_at=self.changed_at,
            reason=self.reason,
            comments=self.comments,
            request_id=self.request_id,
            session_id=self.session_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            metadata=dict(self.context_metadata or {}),
            approval_required=self.approval_required,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            business_impact=impact,
            error_details=error,
            processing_time_ms=self.processing_time_ms,
            checksum=self.checksum,
            retention_date=self.retention_date,
            audit_version=self.audit_version,
            is_archived=self.is_archived,
            archived_at=self.archived_at,
        )
