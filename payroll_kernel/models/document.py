"""
Module: payroll_kernel.models.document
Responsibility: ORM persistence for payroll documents (``DocumentMetadata``).
Architecture position: Kernel > Models. May import from db/base.py and
    kernel domain types only.

Invariants enforced:
    - ``version`` is the optimistic lock column: SQLAlchemy adds
      ``WHERE version = :expected`` to every UPDATE, so two writers that
      slipped past the row lock cannot both commit.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base
from payroll_kernel.domain.document import (
    ApprovalInfo,
    DistributionInfo,
    DocumentMetadata,
    DocumentStatus,
    DocumentType,
    FileStorageInfo,
    PayrollPeriod,
    StorageProvider,
)
from payroll_kernel.domain.payroll import PayrollSummary


class PayrollDocumentModel(Base):
    """One row per payroll document; status changes go through the workflow."""

    __tablename__ = "payroll_documents"
    __table_args__ = (
        Index("idx_payroll_documents_status", "status", "updated_at"),
        Index("idx_payroll_documents_employee", "employee_id", "period_year", "period_month"),
    )

    document_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)

    # Denormalized payroll summary
    gross_salary: Mapped[Decimal | None] = mapped_column(nullable=True)
    net_salary: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_deductions: Mapped[Decimal | None] = mapped_column(nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    # Storage pointer, distribution and approval details
    file_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    distribution_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    preview_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<PayrollDocument {self.document_id} {self.status} v{self.version}>"

    @classmethod
    def from_domain(cls, document: DocumentMetadata) -> PayrollDocumentModel:
        model = cls(document_id=document.document_id)
        model.apply(document)
        return model

    def apply(self, document: DocumentMetadata) -> None:
        """Copy every mutable field of ``document`` onto this row."""
        summary = document.payroll_summary
        self.document_type = document.document_type.value
        self.employee_id = document.employee_id
        self.employee_name = document.employee_name
        self.period_year = document.period.year
        self.period_month = document.period.month
        self.status = document.status.value
        self.gross_salary = summary.gross_salary if summary else None
        self.net_salary = summary.net_salary if summary else None
        self.total_deductions = summary.total_deductions if summary else None
        self.currency = summary.currency if summary else None
        self.file_info = _file_info_to_json(document.file_info)
        self.distribution_info = _distribution_to_json(document.distribution_info)
        approval = document.approval_info
        self.approved_by = approval.approved_by if approval else None
        self.approved_at = approval.approved_at if approval else None
        self.approval_comments = approval.comments if approval else None
        self.preview_expires_at = document.preview_expires_at
        self.archived_by = document.archived_by
        self.archived_at = document.archived_at
        self.created_by = document.created_by
        self.created_at = document.created_at
        self.updated_at = document.updated_at
        self.version = document.version

    def to_domain(self) -> DocumentMetadata:
        summary = None
        if self.gross_salary is not None:
            summary = PayrollSummary(
                gross_salary=Decimal(self.gross_salary),
                net_salary=Decimal(self.net_salary),
                total_deductions=Decimal(self.total_deductions),
                currency=self.currency or "MAD",
            )
        approval = None
        if self.approved_by is not None and self.approved_at is not None:
            approval = ApprovalInfo(
                approved_by=self.approved_by,
                approved_at=self.approved_at,
                comments=self.approval_comments,
            )
        return DocumentMetadata(
            document_id=self.document_id,
            document_type=DocumentType(self.document_type),
            employee_id=self.employee_id,
            employee_name=self.employee_name,
            period=PayrollPeriod(self.period_year, self.period_month),
            status=DocumentStatus(self.status),
            payroll_summary=summary,
            file_info=_file_info_from_json(self.file_info),
            distribution_info=_distribution_from_json(self.distribution_info),
            approval_info=approval,
            preview_expires_at=self.preview_expires_at,
            archived_by=self.archived_by,
            archived_at=self.archived_at,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )


def _file_info_to_json(info: FileStorageInfo | None) -> dict | None:
    if info is None:
        return None
    return {
        "provider": info.provider.value,
        "file_path": info.file_path,
        "file_name": info.file_name,
        "checksum": info.checksum,
        "file_size": info.file_size,
        "mime_type": info.mime_type,
    }


def _file_info_from_json(data: dict | None) -> FileStorageInfo | None:
    if not data:
        return None
    return FileStorageInfo(
        provider=StorageProvider(data["provider"]),
        file_path=data["file_path"],
        file_name=data["file_name"],
        checksum=data.get("checksum"),
        file_size=data.get("file_size"),
        mime_type=data.get("mime_type", "application/pdf"),
    )


def _distribution_to_json(info: DistributionInfo | None) -> dict | None:
    if info is None:
        return None
    return {
        "recipients": list(info.recipients),
        "sent_by": info.sent_by,
        "sent_at": info.sent_at.isoformat() if info.sent_at else None,
        "tracking_id": info.tracking_id,
    }


def _distribution_from_json(data: dict | None) -> DistributionInfo | None:
    if not data:
        return None
    sent_at = data.get("sent_at")
    return DistributionInfo(
        recipients=tuple(data.get("recipients") or ()),
        sent_by=data.get("sent_by"),
        sent_at=datetime.fromisoformat(sent_at) if sent_at else None,
        tracking_id=data.get("tracking_id"),
    )
