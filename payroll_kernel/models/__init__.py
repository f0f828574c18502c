"""ORM models for the payroll kernel."""

from payroll_kernel.models.document import PayrollDocumentModel
from payroll_kernel.models.status_change_audit import (
    ARCHIVAL_FIELDS,
    StatusChangeAuditModel,
)

__all__ = [
    "ARCHIVAL_FIELDS",
    "PayrollDocumentModel",
    "StatusChangeAuditModel",
]
