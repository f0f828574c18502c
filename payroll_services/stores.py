"""
payroll_services.stores -- Document persistence collaborator.

Responsibility:
    Defines the ``DocumentStore`` contract used by the status service and
    ships a thread-safe in-memory implementation. The SQLAlchemy-backed
    store lives in ``payroll_services.sql_store``.

Architecture position:
    Services layer, persistence boundary.

Invariants enforced:
    - ``unit_of_work(document_id)`` is the per-document serialization point:
      while one unit of work is open for a document, another unit of work on
      the same document blocks until the first commits or rolls back.
    - Writes staged in a unit of work become visible only on clean exit
      (commit); an exception discards them (rollback) and propagates.
    - Audit entries are append-only; only their archival flags change.
"""

from __future__ import annotations

import threading
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterator, Protocol, Sequence, runtime_checkable

from payroll_kernel.domain.audit import StatusChangeAuditEntry
from payroll_kernel.domain.document import (
    DocumentMetadata,
    DocumentStatus,
    DocumentType,
    PayrollPeriod,
)
from payroll_kernel.exceptions import DocumentAlreadyExistsError

SORTABLE_FIELDS = frozenset({"updated_at", "created_at", "employee_name", "period"})


@dataclass(frozen=True)
class DocumentFilters:
    employee_id: str | None = None
    document_type: DocumentType | None = None
    period: PayrollPeriod | None = None

    def matches(self, document: DocumentMetadata) -> bool:
        if self.employee_id is not None and document.employee_id != self.employee_id:
            return False
        if self.document_type is not None and document.document_type != self.document_type:
            return False
        if self.period is not None and document.period != self.period:
            return False
        return True


@runtime_checkable
class UnitOfWork(Protocol):
    """Atomic read-validate-write scope for one document."""

    def get_document(self) -> DocumentMetadata | None: ...

    def get_current_status(self) -> DocumentStatus | None: ...

    def update_document(self, document: DocumentMetadata) -> None: ...

    def insert_audit_entry(self, entry: StatusChangeAuditEntry) -> str: ...


@runtime_checkable
class DocumentStore(Protocol):
    def unit_of_work(self, document_id: str) -> AbstractContextManager[UnitOfWork]: ...

    def add_document(self, document: DocumentMetadata) -> None: ...

    def get_document(self, document_id: str) -> DocumentMetadata | None: ...

    def query_documents(
        self,
        status: DocumentStatus,
        filters: DocumentFilters,
        sort_by: str,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[tuple[DocumentMetadata, ...], int]: ...

    def query_audit_entries(
        self, document_id: str, offset: int, limit: int
    ) -> tuple[tuple[StatusChangeAuditEntry, ...], int]: ...

    def list_audit_entries(
        self,
        document_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[StatusChangeAuditEntry, ...]: ...

    def get_audit_entry(self, audit_id: str) -> StatusChangeAuditEntry | None: ...

    def mark_audit_entries_archived(
        self, audit_ids: Sequence[str], archived_at: datetime
    ) -> int: ...


def document_sort_key(sort_by: str):
    if sort_by not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort documents by {sort_by!r}")
    if sort_by == "period":
        return lambda d: (d.period.year, d.period.month)
    if sort_by == "employee_name":
        return lambda d: d.employee_name
    return lambda d: (getattr(d, sort_by) is not None, getattr(d, sort_by) or datetime.min)


def in_window(
    entry: StatusChangeAuditEntry, start: datetime | None, end: datetime | None
) -> bool:
    if start is not None and entry.changed_at < start:
        return False
    if end is not None and entry.changed_at > end:
        return False
    return True


class _InMemoryUnitOfWork:
    def __init__(self, store: InMemoryDocumentStore, document_id: str) -> None:
        self._store = store
        self._document_id = document_id
        self._document = store.get_document(document_id)
        self._staged_audit: list[StatusChangeAuditEntry] = []

    def get_document(self) -> DocumentMetadata | None:
        return self._document

    def get_current_status(self) -> DocumentStatus | None:
        return self._document.status if self._document else None

    def update_document(self, document: DocumentMetadata) -> None:
        if document.document_id != self._document_id:
            raise ValueError("Unit of work is bound to another document")
        self._document = document

    def insert_audit_entry(self, entry: StatusChangeAuditEntry) -> str:
        self._staged_audit.append(entry.detached())
        return entry.audit_id

    def _commit(self) -> None:
        self._store._apply(self._document, self._staged_audit)


class InMemoryDocumentStore:
    """Thread-safe in-memory store with per-document locks."""

    def __init__(self) -> None:
        self._documents: dict[str, DocumentMetadata] = {}
        self._audit: list[StatusChangeAuditEntry] = []
        self._lock = threading.RLock()
        self._document_locks: dict[str, threading.Lock] = {}

    def _document_lock(self, document_id: str) -> threading.Lock:
        with self._lock:
            lock = self._document_locks.get(document_id)
            if lock is None:
                lock = self._document_locks[document_id] = threading.Lock()
            return lock

    @contextmanager
    def unit_of_work(self, document_id: str) -> Iterator[_InMemoryUnitOfWork]:
        with self._document_lock(document_id):
            uow = _InMemoryUnitOfWork(self, document_id)
            yield uow
            uow._commit()

    def _apply(
        self,
        document: DocumentMetadata | None,
        audit_entries: list[StatusChangeAuditEntry],
    ) -> None:
        with self._lock:
            if document is not None:
                self._documents[document.document_id] = document
            self._audit.extend(audit_entries)

    def add_document(self, document: DocumentMetadata) -> None:
        with self._lock:
            if document.document_id in self._documents:
                raise DocumentAlreadyExistsError(document.document_id)
            self._documents[document.document_id] = document

    def get_document(self, document_id: str) -> DocumentMetadata | None:
        with self._lock:
            return self._documents.get(document_id)

    def query_documents(
        self,
        status: DocumentStatus,
        filters: DocumentFilters,
        sort_by: str,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[tuple[DocumentMetadata, ...], int]:
        key = document_sort_key(sort_by)
        with self._lock:
            matching = [
                d for d in self._documents.values()
                if d.status == status and filters.matches(d)
            ]
        matching.sort(key=key, reverse=descending)
        return tuple(matching[offset:offset + limit]), len(matching)

    def query_audit_entries(
        self, document_id: str, offset: int, limit: int
    ) -> tuple[tuple[StatusChangeAuditEntry, ...], int]:
        with self._lock:
            entries = [e for e in self._audit if e.document_id == document_id]
        # Stable sort keeps insertion order for equal timestamps
        entries.reverse()
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        page = entries[offset:offset + limit]
        return tuple(e.detached() for e in page), len(entries)

    def list_audit_entries(
        self,
        document_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[StatusChangeAuditEntry, ...]:
        with self._lock:
            return tuple(
                e.detached() for e in self._audit
                if (document_id is None or e.document_id == document_id)
                and in_window(e, start, end)
            )

    def get_audit_entry(self, audit_id: str) -> StatusChangeAuditEntry | None:
        with self._lock:
            entry = next((e for e in self._audit if e.audit_id == audit_id), None)
        return entry.detached() if entry is not None else None

    def mark_audit_entries_archived(
        self, audit_ids: Sequence[str], archived_at: datetime
    ) -> int:
        wanted = set(audit_ids)
        count = 0
        with self._lock:
            for i, entry in enumerate(self._audit):
                if entry.audit_id in wanted and not entry.is_archived:
                    self._audit[i] = replace(
                        entry, is_archived=True, archived_at=archived_at
                    )
                    count += 1
        return count
