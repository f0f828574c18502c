"""
payroll_services.document_status_service -- Payroll document state machine.

Responsibility:
    Owns every legal status change of a payroll document. A transition
    reads the current status, validates the requested edge against the
    transition table, its named conditions, the approval gate and the
    registered business rules, writes the new status and appends one sealed
    audit entry, all inside a single unit of work of the ``DocumentStore``.
    Post-commit side effects and notifications follow, best-effort.

Architecture position:
    Services -- stateful orchestration over engines + kernel. All
    collaborators are injected in ``__init__``; nothing here reads module
    level singletons.

Invariants enforced:
    - A document never skips steps: only pairs in ``STATUS_TRANSITIONS``
      are accepted.
    - Read-validate-write-audit is atomic per document; concurrent
      transitions on one document serialize and the loser is validated
      against the winner's status.
    - Exactly one audit entry per committed transition (when the audit
      trail is enabled), sealed with ``finalize_audit_entry``.
    - Side effect and notification failures never roll back a committed
      transition; they are reported on the result.
    - ``transition`` and ``batch_transition`` never raise; failures are
      returned as ``DocumentError`` values.

Failure modes (returned, not raised):
    - DOCUMENT_NOT_FOUND, INVALID_STATUS_TRANSITION (illegal pair, failed
      condition or failed business rule), APPROVAL_REQUIRED.
    - STORAGE_WRITE_FAILED from ``store_generated_document``.
    - DATABASE_CONNECTION_FAILED (retryable) for store failures.
    - TIMEOUT_EXCEEDED (retryable): the transition may still commit;
      re-query the status before retrying.

Usage:
    # Leaving the block (or calling close()) releases the timeout worker pool
    with DocumentStatusService(store=InMemoryDocumentStore()) as service:
        service.create_document("BP-2024-01-E001", DocumentType.BULLETIN_PAIE,
                                "E001", "Amina Alaoui", PayrollPeriod(2024, 1),
                                result, TransitionContext(actor_id="hr-1"))
        outcome = service.transition(
            "BP-2024-01-E001", DocumentStatus.PREVIEW_REQUESTED,
            TransitionContext(actor_id="hr-1"),
        )
"""

from __future__ import annotations

import contextvars
import copy
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Sequence
from uuid import uuid4

from payroll_config.schema import WorkflowConfig
from payroll_engines.business_rules import (
    GenerationRetryLimitRule,
    WorkingHoursRule,
    evaluate_rules,
)
from payroll_engines.integrity import (
    finalize_audit_entry,
    select_expired_entries,
    verify_audit_entries,
)
from payroll_engines.statistics import compute_transition_statistics
from payroll_kernel.domain.audit import (
    AuditIntegrityIssue,
    ErrorDetails,
    StatusChangeAuditEntry,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.document import (
    ApprovalInfo,
    DistributionInfo,
    DocumentMetadata,
    DocumentStatus,
    DocumentType,
    PayrollPeriod,
)
from payroll_kernel.domain.errors import DocumentError, ErrorContext
from payroll_kernel.domain.payroll import PayrollResult
from payroll_kernel.domain.transition import (
    BatchTransitionResult,
    BusinessRule,
    NotificationEvent,
    Page,
    TransitionContext,
    TransitionResult,
    TransitionStatistics,
)
from payroll_kernel.domain.workflow import (
    NOTIFICATION_PRIORITY,
    SideEffectPhase,
    StatusTransition,
    get_status_transition,
    is_valid_status_transition,
    post_commit_effects,
)
from payroll_kernel.exceptions import (
    ApprovalRequiredError,
    DatabaseConnectionError,
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    PayrollKernelError,
    StorageReadError,
    StorageWriteError,
    TransitionTimeoutError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_services.conditions import ConditionExecutor, default_condition_executor
from payroll_services.notifications import (
    NotificationDispatcher,
    NotificationHandler,
    default_message,
)
from payroll_services.side_effects import SideEffectExecutor
from payroll_services.storage import DocumentStorage
from payroll_services.stores import DocumentFilters, DocumentStore

logger = get_logger("services.document_status")

_COMPONENT = "DocumentStatusService"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@dataclass(frozen=True)
class _Committed:
    """What the unit of work hands back to the post-commit phase."""

    document: DocumentMetadata
    from_status: DocumentStatus
    transition: StatusTransition
    audit_id: str | None
    warnings: tuple[str, ...]
    pre_executed: tuple[str, ...]
    pre_failed: tuple[str, ...]


class DocumentStatusService:
    """
    Validated, audited status transitions for payroll documents.

    Args:
        store: Persistence collaborator (document rows + audit trail).
        config: Workflow switches and limits.
        clock: Time source for audit timestamps and working-hours checks.
        condition_executor: Evaluators for the named transition conditions.
        side_effects: Handlers for the transition side effects.
        notifier: Post-commit notification fan-out.
        storage: File storage for generated documents.
        rules: Business rules evaluated after the built-in ones.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: WorkflowConfig | None = None,
        clock: Clock | None = None,
        condition_executor: ConditionExecutor | None = None,
        side_effects: SideEffectExecutor | None = None,
        notifier: NotificationDispatcher | None = None,
        storage: DocumentStorage | None = None,
        rules: Sequence[BusinessRule] = (),
    ) -> None:
        self._store = store
        self._config = config or WorkflowConfig()
        self._clock = clock or SystemClock()
        self._conditions = condition_executor or default_condition_executor()
        self._side_effects = side_effects or SideEffectExecutor()
        self._notifier = notifier or NotificationDispatcher()
        self._storage = storage

        self._rules_lock = threading.Lock()
        self._rules: list[BusinessRule] = [
            GenerationRetryLimitRule(
                failure_count=self._generation_failure_count,
                max_retry_attempts=self._config.max_retry_attempts,
            ),
        ]
        if self._config.enforce_working_hours:
            self._rules.append(WorkingHoursRule(
                clock=self._clock,
                start=self._config.working_hours_start,
                end=self._config.working_hours_end,
                working_days=self._config.working_days,
                timezone=self._config.timezone,
            ))
        self._rules.extend(rules)

        self._pool_lock = threading.Lock()
        self._timeout_pool: ThreadPoolExecutor | None = None

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    @property
    def business_rules(self) -> tuple[BusinessRule, ...]:
        with self._rules_lock:
            return tuple(self._rules)

    # -----------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------

    def register_business_rule(self, rule: BusinessRule) -> None:
        """Append a rule; rules run in registration order."""
        if not isinstance(rule, BusinessRule):
            raise TypeError(f"{rule!r} does not implement BusinessRule")
        with self._rules_lock:
            self._rules.append(rule)
        logger.info("business_rule_registered", extra={"rule": rule.name})

    def register_notification_handler(
        self, name: str, handler: NotificationHandler
    ) -> None:
        self._notifier.register(name, handler)
        logger.info("notification_handler_registered", extra={"handler": name})

    # -----------------------------------------------------------------
    # Document creation and storage
    # -----------------------------------------------------------------

    def create_document(
        self,
        document_id: str,
        document_type: DocumentType,
        employee_id: str,
        employee_name: str,
        period: PayrollPeriod,
        payroll_result: PayrollResult | None,
        context: TransitionContext,
    ) -> DocumentMetadata:
        """
        Register a new document in CALCULATION_PENDING.

        Raises:
            DocumentAlreadyExistsError: If ``document_id`` is taken.
            DatabaseConnectionError: If the store cannot be reached.
        """
        now = self._clock.now()
        document = DocumentMetadata(
            document_id=document_id,
            document_type=document_type,
            employee_id=employee_id,
            employee_name=employee_name,
            period=period,
            status=DocumentStatus.CALCULATION_PENDING,
            payroll_summary=payroll_result.summary() if payroll_result else None,
            created_by=context.actor_id,
            created_at=now,
            updated_at=now,
        )
        self._store.add_document(document)
        logger.info("document_created", extra={
            "document_id": document_id,
            "document_type": document_type.value,
            "employee_id": employee_id,
            "period": period.code,
            "actor_id": context.actor_id,
        })
        return document

    def store_generated_document(
        self, document_id: str, content: bytes, context: TransitionContext
    ) -> TransitionResult:
        """
        Store the generated file, then move GENERATING -> GENERATED with it.

        Nothing is written when the document cannot currently reach
        GENERATED; the transition's own error is returned instead.
        """
        document = self._store.get_document(document_id)
        if document is None or not is_valid_status_transition(
            document.status, DocumentStatus.GENERATED
        ):
            return self.transition(document_id, DocumentStatus.GENERATED, context)

        if self._storage is None:
            exc = StorageWriteError(document_id, "no document storage configured")
            return self._failure(exc, document_id, context, "store_generated_document")
        try:
            file_info = self._storage.store(document_id, content)
        except StorageWriteError as exc:
            logger.error("document_storage_failed", extra={
                "document_id": document_id,
                "error": str(exc),
            })
            return self._failure(exc, document_id, context, "store_generated_document")

        return self.transition(
            document_id,
            DocumentStatus.GENERATED,
            replace(context, file_info=file_info),
        )

    def get_document_content(self, document_id: str) -> bytes:
        """
        Read a generated document back, verifying its checksum.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            StorageReadError: If there is no file, or it fails verification.
        """
        document = self.get_document(document_id)
        if document.file_info is None:
            raise StorageReadError(document_id, "Document has no stored file")
        if self._storage is None:
            raise StorageReadError(
                document.file_info.file_path, "no document storage configured"
            )
        return self._storage.retrieve(document.file_info)

    # -----------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------

    def transition(
        self,
        document_id: str,
        target_status: DocumentStatus,
        context: TransitionContext,
        timeout: float | None = None,
    ) -> TransitionResult:
        """
        Move a document to ``target_status``.

        ``timeout`` defaults to ``config.transition_timeout_seconds``; when
        both are None the call runs inline. On expiry the result carries
        TIMEOUT_EXCEEDED while the work may still commit in the background.
        """
        limit = timeout if timeout is not None else self._config.transition_timeout_seconds
        if limit is None:
            return self._execute_transition(document_id, target_status, context)

        ctx = contextvars.copy_context()
        future = self._pool().submit(
            ctx.run, self._execute_transition, document_id, target_status, context
        )
        try:
            return future.result(timeout=limit)
        except FutureTimeoutError:
            logger.warning("status_transition_timeout", extra={
                "document_id": document_id,
                "to_status": target_status.value,
                "timeout_seconds": limit,
            })
            return self._failure(
                TransitionTimeoutError(document_id, limit),
                document_id, context, "transition",
            )

    def batch_transition(
        self,
        document_ids: Sequence[str],
        target_status: DocumentStatus,
        context: TransitionContext,
    ) -> BatchTransitionResult:
        """
        Transition many documents independently.

        Documents are processed in chunks of ``config.batch_size`` with at
        most ``config.max_concurrent_transitions`` in flight. Each document
        gets its own request id; one failure never stops the batch.
        """
        start = time.monotonic()
        successful: list[str] = []
        failed: list[tuple[str, DocumentError]] = []
        batch_size = self._config.batch_size
        workers = self._config.max_concurrent_transitions

        logger.info("batch_transition_started", extra={
            "document_count": len(document_ids),
            "to_status": target_status.value,
            "batch_size": batch_size,
            "actor_id": context.actor_id,
        })

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="payroll-batch"
        ) as pool:
            for offset in range(0, len(document_ids), batch_size):
                chunk = document_ids[offset:offset + batch_size]
                futures = [
                    pool.submit(
                        contextvars.copy_context().run,
                        self.transition,
                        document_id,
                        target_status,
                        context.for_document(document_id),
                    )
                    for document_id in chunk
                ]
                for document_id, future in zip(chunk, futures):
                    try:
                        result = future.result()
                    except Exception as exc:  # noqa: BLE001
                        logger.exception("batch_item_crashed", extra={
                            "document_id": document_id,
                        })
                        failed.append((document_id, self._error_value(
                            DatabaseConnectionError("batch_transition", str(exc)),
                            document_id, context, "batch_transition",
                        )))
                        continue
                    if result.success:
                        successful.append(document_id)
                    else:
                        failed.append((document_id, result.error))

        outcome = BatchTransitionResult(
            successful=tuple(successful),
            failed=tuple(failed),
            total_processed=len(document_ids),
            processing_time_ms=_elapsed_ms(start),
        )
        logger.info("batch_transition_completed", extra={
            "to_status": target_status.value,
            "total_processed": outcome.total_processed,
            "successful": len(outcome.successful),
            "failed": len(outcome.failed),
            "duration_ms": outcome.processing_time_ms,
        })
        return outcome

    def _pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._timeout_pool is None:
                self._timeout_pool = ThreadPoolExecutor(
                    max_workers=self._config.max_concurrent_transitions,
                    thread_name_prefix="payroll-transition",
                )
            return self._timeout_pool

    def close(self) -> None:
        """Wait for in-flight transitions and release worker threads."""
        with self._pool_lock:
            pool, self._timeout_pool = self._timeout_pool, None
        if pool is not None:
            pool.shutdown(wait=True)

    def __enter__(self) -> DocumentStatusService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _execute_transition(
        self,
        document_id: str,
        target_status: DocumentStatus,
        context: TransitionContext,
    ) -> TransitionResult:
        start = time.monotonic()
        with LogContext.bind(
            document_id=document_id,
            actor_id=context.actor_id,
            request_id=context.request_id,
        ):
            try:
                committed = self._commit_transition(
                    document_id, target_status, context, start
                )
            except PayrollKernelError as exc:
                logger.info("status_transition_rejected", extra={
                    "to_status": target_status.value,
                    "error_code": exc.code,
                    "reason": str(exc),
                })
                return self._failure(
                    exc, document_id, context, "transition", _elapsed_ms(start)
                )
            except Exception as exc:  # noqa: BLE001
                logger.exception("status_transition_failed", extra={
                    "to_status": target_status.value,
                })
                return self._failure(
                    DatabaseConnectionError("transition", str(exc)),
                    document_id, context, "transition", _elapsed_ms(start),
                )

            return self._after_commit(committed, context, start)

    def _commit_transition(
        self,
        document_id: str,
        target_status: DocumentStatus,
        context: TransitionContext,
        start: float,
    ) -> _Committed:
        with self._store.unit_of_work(document_id) as uow:
            document = uow.get_document()
            if document is None:
                raise DocumentNotFoundError(document_id)
            from_status = document.status

            transition, warnings = self._validate(document, target_status, context)

            pre = self._side_effects.execute(
                transition.side_effects, SideEffectPhase.PRE,
                document, from_status, target_status, context,
            )

            now = self._clock.now()
            updated = self._apply_status(document, transition, context, now)
            uow.update_document(updated)

            audit_id = None
            if self._config.enable_audit_trail:
                entry = self._build_audit_entry(
                    updated, transition, context, now, _elapsed_ms(start)
                )
                audit_id = uow.insert_audit_entry(
                    finalize_audit_entry(entry, self._config.audit_retention_days)
                )

        return _Committed(
            document=updated,
            from_status=from_status,
            transition=transition,
            audit_id=audit_id,
            warnings=warnings,
            pre_executed=pre.executed,
            pre_failed=pre.failed,
        )

    def _validate(
        self,
        document: DocumentMetadata,
        target_status: DocumentStatus,
        context: TransitionContext,
    ) -> tuple[StatusTransition, tuple[str, ...]]:
        from_status = document.status
        transition = get_status_transition(from_status, target_status)
        if transition is None:
            raise InvalidStatusTransitionError(
                document.document_id, from_status.value, target_status.value,
                reason=(
                    f"Transition {from_status.value} -> {target_status.value} "
                    "is not allowed"
                ),
            )

        failed = self._conditions.first_failure(
            transition.conditions, document, context
        )
        if failed is not None:
            raise InvalidStatusTransitionError(
                document.document_id, from_status.value, target_status.value,
                reason=f"Condition not met: {failed.name}",
                failed_condition=failed.name,
            )

        if transition.requires_approval and not context.approval_granted:
            raise ApprovalRequiredError(
                document.document_id, from_status.value, target_status.value
            )

        if not self._config.enable_business_rules:
            return transition, ()
        evaluation = evaluate_rules(
            self.business_rules, document.document_id,
            from_status, target_status, context,
        )
        if not evaluation.allowed:
            raise InvalidStatusTransitionError(
                document.document_id, from_status.value, target_status.value,
                reason=evaluation.message or "Business rule violation",
                failed_rule=evaluation.failed_rule,
            )
        return transition, evaluation.warnings

    def _apply_status(
        self,
        document: DocumentMetadata,
        transition: StatusTransition,
        context: TransitionContext,
        now: datetime,
    ) -> DocumentMetadata:
        """New snapshot with the target status and its status-specific fields."""
        changes: dict = {
            "status": transition.to_status,
            "updated_at": now,
            "version": document.version + 1,
        }
        target = transition.to_status
        if target == DocumentStatus.PREVIEW_GENERATED:
            changes["preview_expires_at"] = now + timedelta(
                hours=self._config.preview_expiry_hours
            )
        elif target == DocumentStatus.GENERATED and context.file_info is not None:
            changes["file_info"] = context.file_info
        elif target == DocumentStatus.APPROVED:
            changes["approval_info"] = ApprovalInfo(
                approved_by=context.actor_id,
                approved_at=now,
                comments=context.comments,
            )
        elif target == DocumentStatus.SENT:
            changes["distribution_info"] = DistributionInfo(
                recipients=context.recipients,
                sent_by=context.actor_id,
                sent_at=now,
                tracking_id=context.metadata.get("tracking_id"),
            )
        elif target == DocumentStatus.ARCHIVED:
            changes["archived_by"] = context.actor_id
            changes["archived_at"] = now
        return replace(document, **changes)

    def _build_audit_entry(
        self,
        document: DocumentMetadata,
        transition: StatusTransition,
        context: TransitionContext,
        now: datetime,
        processing_time_ms: int,
    ) -> StatusChangeAuditEntry:
        approved = transition.requires_approval and context.approval_granted
        return StatusChangeAuditEntry(
            audit_id=str(uuid4()),
            document_id=document.document_id,
            from_status=transition.from_status,
            to_status=transition.to_status,
            trigger=transition.trigger,
            changed_by=context.actor_id,
            changed_at=now,
            reason=context.reason,
            comments=context.comments,
            request_id=context.request_id,
            session_id=context.session_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            metadata=copy.deepcopy(dict(context.metadata)),
            approval_required=transition.requires_approval,
            approved_by=context.actor_id if approved else None,
            approved_at=now if approved else None,
            business_impact=context.business_impact,
            error_details=self._error_details_for(transition, context),
            processing_time_ms=processing_time_ms,
        )

    @staticmethod
    def _error_details_for(
        transition: StatusTransition, context: TransitionContext
    ) -> ErrorDetails | None:
        if context.error_details is not None:
            return context.error_details
        if transition.to_status == DocumentStatus.GENERATION_FAILED:
            return ErrorDetails(
                error_type="GenerationFailed",
                message=context.reason or "Document generation failed",
                retryable=True,
            )
        return None

    def _after_commit(
        self,
        committed: _Committed,
        context: TransitionContext,
        start: float,
    ) -> TransitionResult:
        document = committed.document
        from_status = committed.from_status
        to_status = document.status

        post = self._side_effects.execute(
            post_commit_effects(committed.transition), SideEffectPhase.POST,
            document, from_status, to_status, context,
        )

        notification_failures: tuple[str, ...] = ()
        if self._config.enable_notifications:
            notification_failures = self._notifier.dispatch(NotificationEvent(
                document_id=document.document_id,
                from_status=from_status,
                to_status=to_status,
                actor_id=context.actor_id,
                timestamp=document.updated_at or self._clock.now(),
                priority=NOTIFICATION_PRIORITY[to_status],
                recipients=context.recipients,
                message=default_message(document.document_id, from_status, to_status),
                metadata={
                    "trigger": committed.transition.trigger.value,
                    "audit_id": committed.audit_id,
                    "request_id": context.request_id,
                },
            ))

        duration_ms = _elapsed_ms(start)
        logger.info("status_transition_committed", extra={
            "from_status": from_status.value,
            "to_status": to_status.value,
            "trigger": committed.transition.trigger.value,
            "audit_id": committed.audit_id,
            "version": document.version,
            "warnings": len(committed.warnings),
            "duration_ms": duration_ms,
        })

        return TransitionResult(
            success=True,
            document_id=document.document_id,
            previous_status=from_status,
            new_status=to_status,
            audit_id=committed.audit_id,
            warnings=committed.warnings,
            side_effects_executed=committed.pre_executed + post.executed,
            side_effect_failures=committed.pre_failed + post.failed,
            notification_failures=notification_failures,
            processing_time_ms=duration_ms,
        )

    # -----------------------------------------------------------------
    # Failure values
    # -----------------------------------------------------------------

    def _error_value(
        self,
        exc: PayrollKernelError,
        document_id: str,
        context: TransitionContext,
        operation: str,
    ) -> DocumentError:
        return DocumentError.from_exception(
            exc,
            timestamp=self._clock.now(),
            context=ErrorContext(
                operation=operation,
                component=_COMPONENT,
                version=self._config.component_version,
                environment=self._config.environment,
                request_id=context.request_id,
                session_id=context.session_id,
            ),
            document_id=document_id,
            actor_id=context.actor_id,
        )

    def _failure(
        self,
        exc: PayrollKernelError,
        document_id: str,
        context: TransitionContext,
        operation: str,
        processing_time_ms: int = 0,
    ) -> TransitionResult:
        error = self._error_value(exc, document_id, context, operation)
        from_status = getattr(exc, "from_status", None)
        return TransitionResult(
            success=False,
            document_id=document_id,
            previous_status=DocumentStatus(from_status) if from_status else None,
            processing_time_ms=processing_time_ms,
            error=error,
        )

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    def get_document(self, document_id: str) -> DocumentMetadata:
        document = self._store.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def get_current_status(self, document_id: str) -> DocumentStatus:
        return self.get_document(document_id).status

    def get_status_history(
        self, document_id: str, page: int = 1, limit: int = 50
    ) -> Page[StatusChangeAuditEntry]:
        """Audit entries of one document, newest first."""
        _check_paging(page, limit)
        items, total = self._store.query_audit_entries(
            document_id, offset=(page - 1) * limit, limit=limit
        )
        return Page(items=items, total=total, page=page, limit=limit)

    def get_documents_by_status(
        self,
        status: DocumentStatus,
        page: int = 1,
        limit: int = 20,
        filters: DocumentFilters | None = None,
        sort_by: str = "updated_at",
        descending: bool = True,
    ) -> Page[DocumentMetadata]:
        _check_paging(page, limit)
        items, total = self._store.query_documents(
            status,
            filters or DocumentFilters(),
            sort_by=sort_by,
            descending=descending,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return Page(items=items, total=total, page=page, limit=limit)

    def get_transition_statistics(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> TransitionStatistics:
        return compute_transition_statistics(
            self._store.list_audit_entries(start=start, end=end)
        )

    def get_error_transitions(
        self, retryable_only: bool = False, limit: int = 100
    ) -> tuple[StatusChangeAuditEntry, ...]:
        """Audit entries carrying error details, newest first."""
        entries = [
            e for e in self._store.list_audit_entries()
            if e.error_details is not None
            and (not retryable_only or e.error_details.retryable)
        ]
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return tuple(entries[:limit])

    def _generation_failure_count(self, document_id: str) -> int:
        return sum(
            1 for e in self._store.list_audit_entries(document_id=document_id)
            if e.to_status == DocumentStatus.GENERATION_FAILED
        )

    # -----------------------------------------------------------------
    # Audit maintenance
    # -----------------------------------------------------------------

    def archive_expired_audit_entries(self, as_of: datetime | None = None) -> int:
        """Flag entries past their retention date as archived. Never deletes."""
        as_of = as_of or self._clock.now()
        expired = select_expired_entries(self._store.list_audit_entries(), as_of)
        count = self._store.mark_audit_entries_archived(
            [e.audit_id for e in expired], as_of
        )
        logger.info("audit_entries_archived", extra={
            "as_of": as_of,
            "archived_count": count,
        })
        return count

    def verify_audit_trail(self, document_id: str) -> tuple[AuditIntegrityIssue, ...]:
        """Recompute checksums of a document's audit entries."""
        issues = verify_audit_entries(
            self._store.list_audit_entries(document_id=document_id)
        )
        if issues:
            logger.error("audit_integrity_violation", extra={
                "document_id": document_id,
                "issue_count": len(issues),
                "audit_ids": [i.audit_id for i in issues],
            })
        return issues


def _check_paging(page: int, limit: int) -> None:
    if page < 1:
        raise ValueError("page starts at 1")
    if limit < 1:
        raise ValueError("limit must be positive")


def error_details_from_exception(exc: BaseException, retryable: bool = False) -> ErrorDetails:
    """Build ``ErrorDetails`` for a GENERATION_FAILED context from a caught exception."""
    return ErrorDetails(
        error_type=type(exc).__name__,
        message=str(exc),
        retryable=retryable,
        stack_trace="".join(traceback.format_exception(exc)),
    )
