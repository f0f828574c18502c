"""
payroll_engines.integrity -- Audit checksum, retention and file integrity.

Responsibility:
    Seal status change audit entries before insert (checksum + retention
    date), re-verify stored entries for tamper detection, pick entries whose
    retention has elapsed, and verify stored file content against its
    recorded checksum.

Architecture position:
    Engines -- pure, zero I/O. Sealing is an explicit step called by the
    status service, not an ORM hook.

Invariants enforced:
    - checksum = SHA-256("document_id|from|to|changed_by|changed_at_ms").
    - retention_date = changed_at + retention period (default 7 x 365 days).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable

from payroll_kernel.domain.audit import AuditIntegrityIssue, StatusChangeAuditEntry
from payroll_kernel.utils.hashing import hash_bytes, hash_status_change

DEFAULT_RETENTION_DAYS = 7 * 365


def compute_audit_checksum(entry: StatusChangeAuditEntry) -> str:
    return hash_status_change(
        entry.document_id,
        entry.from_status.value,
        entry.to_status.value,
        entry.changed_by,
        entry.changed_at,
    )


def finalize_audit_entry(
    entry: StatusChangeAuditEntry,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> StatusChangeAuditEntry:
    """Return the entry sealed with its checksum and retention date."""
    return replace(
        entry,
        checksum=compute_audit_checksum(entry),
        retention_date=entry.changed_at + timedelta(days=retention_days),
    )


def verify_audit_entry(entry: StatusChangeAuditEntry) -> AuditIntegrityIssue | None:
    expected = compute_audit_checksum(entry)
    if entry.checksum == expected:
        return None
    return AuditIntegrityIssue(
        audit_id=entry.audit_id,
        document_id=entry.document_id,
        expected_checksum=expected,
        stored_checksum=entry.checksum,
    )


def verify_audit_entries(
    entries: Iterable[StatusChangeAuditEntry],
) -> tuple[AuditIntegrityIssue, ...]:
    """All entries whose stored checksum does not match their content."""
    issues = (verify_audit_entry(e) for e in entries)
    return tuple(issue for issue in issues if issue is not None)


def select_expired_entries(
    entries: Iterable[StatusChangeAuditEntry], as_of: datetime
) -> tuple[StatusChangeAuditEntry, ...]:
    """Unarchived entries whose retention date is before ``as_of``."""
    return tuple(
        e for e in entries
        if not e.is_archived
        and e.retention_date is not None
        and e.retention_date < as_of
    )


def verify_file_checksum(content: bytes, expected_checksum: str | None) -> bool:
    """True when no checksum was recorded or the content still matches it."""
    if expected_checksum is None:
        return True
    return hash_bytes(content) == expected_checksum
