"""
Document -- Payroll document entity and its value objects.

Responsibility:
    Defines the document state space (``DocumentStatus``), document kinds,
    storage / distribution / approval pointers and ``DocumentMetadata``, the
    snapshot of one payroll document instance.

Architecture position:
    Kernel > Domain -- pure, zero I/O. ``DocumentMetadata`` is frozen;
    the status service produces new snapshots with ``dataclasses.replace``
    and persists them through a ``DocumentStore``.

Invariants enforced:
    - ``PayrollPeriod.month`` is in 1..12.
    - A document's status only changes through a validated transition
      (enforced by ``payroll_services.document_status_service``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from payroll_kernel.domain.payroll import PayrollSummary


class DocumentStatus(str, Enum):
    """Lifecycle states of a payroll document."""

    CALCULATION_PENDING = "CALCULATION_PENDING"
    PREVIEW_REQUESTED = "PREVIEW_REQUESTED"
    PREVIEW_GENERATED = "PREVIEW_GENERATED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED_FOR_GENERATION = "APPROVED_FOR_GENERATION"
    GENERATING = "GENERATING"
    GENERATED = "GENERATED"
    GENERATION_FAILED = "GENERATION_FAILED"
    APPROVED = "APPROVED"
    SENT = "SENT"
    ARCHIVED = "ARCHIVED"


class TransitionTrigger(str, Enum):
    """What caused a status change."""

    USER_ACTION = "USER_ACTION"
    SYSTEM_EVENT = "SYSTEM_EVENT"
    SCHEDULED_EVENT = "SCHEDULED_EVENT"
    ERROR_EVENT = "ERROR_EVENT"
    TIMEOUT_EVENT = "TIMEOUT_EVENT"


class DocumentType(str, Enum):
    BULLETIN_PAIE = "BULLETIN_PAIE"
    ORDRE_VIREMENT = "ORDRE_VIREMENT"
    CNSS_DECLARATION = "CNSS_DECLARATION"
    SALARY_CERTIFICATE = "SALARY_CERTIFICATE"
    PAYROLL_SUMMARY = "PAYROLL_SUMMARY"


class StorageProvider(str, Enum):
    LOCAL_FILESYSTEM = "LOCAL_FILESYSTEM"
    MONGODB_GRIDFS = "MONGODB_GRIDFS"
    AWS_S3 = "AWS_S3"
    CLOUDINARY = "CLOUDINARY"
    IN_MEMORY = "IN_MEMORY"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


@dataclass(frozen=True)
class PayrollPeriod:
    """Calendar month a payroll document belongs to."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month}")
        if self.year < 1900:
            raise ValueError(f"year out of range: {self.year}")

    @property
    def code(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True)
class FileStorageInfo:
    """Pointer to a stored document file, with its SHA-256 checksum."""

    provider: StorageProvider
    file_path: str
    file_name: str
    checksum: str | None = None
    file_size: int | None = None
    mime_type: str = "application/pdf"


@dataclass(frozen=True)
class DistributionInfo:
    recipients: tuple[str, ...] = ()
    sent_by: str | None = None
    sent_at: datetime | None = None
    tracking_id: str | None = None


@dataclass(frozen=True)
class ApprovalInfo:
    approved_by: str
    approved_at: datetime
    comments: str | None = None


@dataclass(frozen=True)
class DocumentMetadata:
    """
    One payroll document instance.

    ``version`` increases by one on every committed transition.
    """

    document_id: str
    document_type: DocumentType
    employee_id: str
    employee_name: str
    period: PayrollPeriod
    status: DocumentStatus
    payroll_summary: PayrollSummary | None = None
    file_info: FileStorageInfo | None = None
    distribution_info: DistributionInfo | None = None
    approval_info: ApprovalInfo | None = None
    preview_expires_at: datetime | None = None
    archived_by: str | None = None
    archived_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1
