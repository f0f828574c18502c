"""
ORM-Level Immutability Enforcement for the status audit trail.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database. The listeners registered here intercept them:

    session.flush()
         |
         v
    [before_update] --> _check_status_audit_update() --> ImmutabilityViolationError
         |                                                       ^
         v                                                       |
    [before_delete] --> _check_status_audit_delete() ------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | Rule
------------------------|----------------------------------------------------
StatusChangeAuditModel  | UPDATE only of is_archived / archived_at; no DELETE

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
document store never issues them against the audit table.
"""

from sqlalchemy import event, inspect

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _changed_attributes(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key for attr in state.attrs
        if attr.history.has_changes()
    }


def _check_status_audit_update(mapper, connection, target):
    """Allow only the archival flags to change on an audit row."""
    from payroll_kernel.models.status_change_audit import (
        ARCHIVAL_FIELDS,
        StatusChangeAuditModel,
    )

    if not isinstance(target, StatusChangeAuditModel):
        return

    forbidden = _changed_attributes(target) - ARCHIVAL_FIELDS
    if not forbidden:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StatusChangeAudit",
            "entity_id": target.audit_id,
            "operation": "UPDATE",
            "fields": sorted(forbidden),
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StatusChangeAudit",
        entity_id=target.audit_id,
        reason=f"audit entries are append-only (attempted to change {sorted(forbidden)})",
    )


def _check_status_audit_delete(mapper, connection, target):
    """Audit rows are never deleted; retention only archives them."""
    from payroll_kernel.models.status_change_audit import StatusChangeAuditModel

    if not isinstance(target, StatusChangeAuditModel):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StatusChangeAudit",
            "entity_id": target.audit_id,
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StatusChangeAudit",
        entity_id=target.audit_id,
        reason="audit entries cannot be deleted",
    )


def register_immutability_listeners() -> None:
    """
    Register the audit immutability listeners (idempotent).

    Called by ``SqlAlchemyDocumentStore`` on construction.
    """
    from payroll_kernel.models.status_change_audit import StatusChangeAuditModel

    if not event.contains(StatusChangeAuditModel, "before_update", _check_status_audit_update):
        event.listen(StatusChangeAuditModel, "before_update", _check_status_audit_update)
    if not event.contains(StatusChangeAuditModel, "before_delete", _check_status_audit_delete):
        event.listen(StatusChangeAuditModel, "before_delete", _check_status_audit_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only use this in tests that deliberately tamper with rows to
    verify checksum detection.
    """
    from payroll_kernel.models.status_change_audit import StatusChangeAuditModel

    _safe_remove_listener(StatusChangeAuditModel, "before_update", _check_status_audit_update)
    _safe_remove_listener(StatusChangeAuditModel, "before_delete", _check_status_audit_delete)
