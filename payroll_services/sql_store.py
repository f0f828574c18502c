"""
payroll_services.sql_store -- SQLAlchemy-backed ``DocumentStore``.

Responsibility:
    Persists documents and audit entries through the ORM models in
    ``payroll_kernel.models``. Every unit of work runs in its own session
    (``session_scope``) so the store is safe to share between threads.

Architecture position:
    Services layer, persistence boundary. Works on PostgreSQL (production)
    and SQLite (tests / local runs).

Invariants enforced:
    - The document row is read ``FOR UPDATE`` inside the unit of work; an
      in-process lock per document serializes writers on backends where
      row locks are a no-op (SQLite).
    - ``PayrollDocumentModel.version`` is the optimistic lock column, so a
      writer that raced past both locks fails on commit instead of
      overwriting.
    - Audit rows are append-only (``register_immutability_listeners``).

Failure modes:
    - DatabaseConnectionError (retryable) for driver / connectivity errors
      and optimistic lock conflicts.
    - DocumentAlreadyExistsError from add_document on a duplicate id.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from payroll_kernel.db.engine import session_scope
from payroll_kernel.db.immutability import register_immutability_listeners
from payroll_kernel.domain.audit import StatusChangeAuditEntry
from payroll_kernel.domain.document import DocumentMetadata, DocumentStatus
from payroll_kernel.exceptions import (
    DatabaseConnectionError,
    DocumentAlreadyExistsError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models import PayrollDocumentModel, StatusChangeAuditModel
from payroll_services.stores import SORTABLE_FIELDS, DocumentFilters

logger = get_logger("services.sql_store")


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except OperationalError as exc:
        logger.error(
            "database_operation_failed",
            extra={"operation": operation, "error": str(exc.orig)},
        )
        raise DatabaseConnectionError(operation, str(exc.orig)) from exc
    except StaleDataError as exc:
        logger.warning(
            "optimistic_lock_conflict",
            extra={"operation": operation},
        )
        raise DatabaseConnectionError(
            operation, "document was modified concurrently"
        ) from exc


class _SqlUnitOfWork:
    """Unit of work bound to one session and one locked document row."""

    def __init__(self, session: Session, document_id: str) -> None:
        self._session = session
        self._document_id = document_id
        self._model = session.execute(
            select(PayrollDocumentModel)
            .where(PayrollDocumentModel.document_id == document_id)
            .with_for_update()
        ).scalar_one_or_none()

    def get_document(self) -> DocumentMetadata | None:
        return self._model.to_domain() if self._model is not None else None

    def get_current_status(self) -> DocumentStatus | None:
        return DocumentStatus(self._model.status) if self._model is not None else None

    def update_document(self, document: DocumentMetadata) -> None:
        if document.document_id != self._document_id:
            raise ValueError("Unit of work is bound to another document")
        if self._model is None:
            self._model = PayrollDocumentModel.from_domain(document)
            self._session.add(self._model)
        else:
            self._model.apply(document)

    def insert_audit_entry(self, entry: StatusChangeAuditEntry) -> str:
        self._session.add(StatusChangeAuditModel.from_domain(entry))
        return entry.audit_id


class SqlAlchemyDocumentStore:
    """``DocumentStore`` over a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._factory = session_factory
        self._lock = threading.Lock()
        self._document_locks: dict[str, threading.Lock] = {}
        register_immutability_listeners()

    def _document_lock(self, document_id: str) -> threading.Lock:
        with self._lock:
            lock = self._document_locks.get(document_id)
            if lock is None:
                lock = self._document_locks[document_id] = threading.Lock()
            return lock

    @contextmanager
    def unit_of_work(self, document_id: str) -> Iterator[_SqlUnitOfWork]:
        with self._document_lock(document_id), _translate_errors("unit_of_work"):
            with session_scope(self._factory) as session:
                yield _SqlUnitOfWork(session, document_id)

    def add_document(self, document: DocumentMetadata) -> None:
        try:
            with _translate_errors("add_document"), session_scope(self._factory) as session:
                if session.get(PayrollDocumentModel, document.document_id) is not None:
                    raise DocumentAlreadyExistsError(document.document_id)
                session.add(PayrollDocumentModel.from_domain(document))
        except IntegrityError as exc:
            raise DocumentAlreadyExistsError(document.document_id) from exc

    def get_document(self, document_id: str) -> DocumentMetadata | None:
        with _translate_errors("get_document"), session_scope(self._factory) as session:
            model = session.get(PayrollDocumentModel, document_id)
            return model.to_domain() if model is not None else None

    def query_documents(
        self,
        status: DocumentStatus,
        filters: DocumentFilters,
        sort_by: str,
        descending: bool,
        offset: int,
        limit: int,
    ) -> tuple[tuple[DocumentMetadata, ...], int]:
        if sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort documents by {sort_by!r}")

        conditions = [PayrollDocumentModel.status == status.value]
        if filters.employee_id is not None:
            conditions.append(PayrollDocumentModel.employee_id == filters.employee_id)
        if filters.document_type is not None:
            conditions.append(
                PayrollDocumentModel.document_type == filters.document_type.value
            )
        if filters.period is not None:
            conditions.append(PayrollDocumentModel.period_year == filters.period.year)
            conditions.append(PayrollDocumentModel.period_month == filters.period.month)

        if sort_by == "period":
            columns = [PayrollDocumentModel.period_year, PayrollDocumentModel.period_month]
        else:
            columns = [getattr(PayrollDocumentModel, sort_by)]
        order = [c.desc() if descending else c.asc() for c in columns]
        order.append(PayrollDocumentModel.document_id.asc())

        with _translate_errors("query_documents"), session_scope(self._factory) as session:
            total = session.execute(
                select(func.count()).select_from(PayrollDocumentModel).where(*conditions)
            ).scalar_one()
            models = session.execute(
                select(PayrollDocumentModel)
                .where(*conditions)
                .order_by(*order)
                .offset(offset)
                .limit(limit)
            ).scalars().all()
            return tuple(m.to_domain() for m in models), total

    def query_audit_entries(
        self, document_id: str, offset: int, limit: int
    ) -> tuple[tuple[StatusChangeAuditEntry, ...], int]:
        condition = StatusChangeAuditModel.document_id == document_id
        with _translate_errors("query_audit_entries"), session_scope(self._factory) as session:
            total = session.execute(
                select(func.count()).select_from(StatusChangeAuditModel).where(condition)
            ).scalar_one()
            models = session.execute(
                select(StatusChangeAuditModel)
                .where(condition)
                .order_by(StatusChangeAuditModel.changed_at.desc())
                .offset(offset)
                .limit(limit)
            ).scalars().all()
            return tuple(m.to_domain() for m in models), total

    def list_audit_entries(
        self,
        document_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[StatusChangeAuditEntry, ...]:
        stmt = select(StatusChangeAuditModel)
        if document_id is not None:
            stmt = stmt.where(StatusChangeAuditModel.document_id == document_id)
        if start is not None:
            stmt = stmt.where(StatusChangeAuditModel.changed_at >= start)
        if end is not None:
            stmt = stmt.where(StatusChangeAuditModel.changed_at <= end)
        stmt = stmt.order_by(StatusChangeAuditModel.changed_at.asc())

        with _translate_errors("list_audit_entries"), session_scope(self._factory) as session:
            return tuple(m.to_domain() for m in session.execute(stmt).scalars())

    def get_audit_entry(self, audit_id: str) -> StatusChangeAuditEntry | None:
        with _translate_errors("get_audit_entry"), session_scope(self._factory) as session:
            model = session.get(StatusChangeAuditModel, audit_id)
            return model.to_domain() if model is not None else None

    def mark_audit_entries_archived(
        self, audit_ids: Sequence[str], archived_at: datetime
    ) -> int:
        if not audit_ids:
            return 0
        with _translate_errors("mark_audit_entries_archived"), session_scope(self._factory) as session:
            models = session.execute(
                select(StatusChangeAuditModel).where(
                    StatusChangeAuditModel.audit_id.in_(list(audit_ids)),
                    StatusChangeAuditModel.is_archived.is_(False),
                )
            ).scalars().all()
            # Through the ORM so the immutability listener sees the change
            for model in models:
                model.is_archived = True
                model.archived_at = archived_at
            return len(models)
