"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll documents move through a regulated lifecycle. Callers (batch jobs,
HTTP adapters, retry tooling) need to react to failures by TYPE and by CODE,
never by parsing message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception declares a SEVERITY and whether it is RETRYABLE
  4. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        store.update_document(document)
    except DatabaseConnectionError as e:
        if e.retryable:
            schedule_retry(e.operation)

The status service never lets these escape from ``transition()``; it converts
them to ``DocumentError`` values (see ``payroll_kernel.domain.errors``).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- PayrollInputError
    |   +-- InvalidPayrollInputError
    |   +-- InvalidRateTableError
    |
    +-- DocumentLookupError
    |   +-- DocumentNotFoundError
    |   +-- DocumentAlreadyExistsError
    |
    +-- TransitionError
    |   +-- InvalidStatusTransitionError
    |   +-- ApprovalRequiredError
    |   +-- TransitionTimeoutError
    |
    +-- StorageError
    |   +-- StorageWriteError
    |   +-- StorageReadError
    |
    +-- PersistenceError
    |   +-- DatabaseConnectionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | Severity | Retryable
-------------|----------------------------|----------|----------
Input        | INVALID_PAYROLL_INPUT      | MEDIUM   | no
             | INVALID_RATE_TABLE         | HIGH     | no
Document     | DOCUMENT_NOT_FOUND         | LOW      | no
             | DOCUMENT_ALREADY_EXISTS    | LOW      | no
Transition   | INVALID_STATUS_TRANSITION  | HIGH     | no
             | APPROVAL_REQUIRED          | MEDIUM   | no
             | TIMEOUT_EXCEEDED           | LOW      | yes
Storage      | STORAGE_WRITE_FAILED       | LOW      | no
             | STORAGE_READ_FAILED        | LOW      | no
Persistence  | DATABASE_CONNECTION_FAILED | CRITICAL | yes
Immutability | IMMUTABILITY_VIOLATION     | CRITICAL | no
Config       | CONFIGURATION_ERROR        | HIGH     | no

===============================================================================
"""

from typing import Any


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    Subclasses set ``code``, ``severity`` and ``retryable`` as class
    attributes and store their structured context as instance attributes.
    """

    code: str = "PAYROLL_KERNEL_ERROR"
    severity: str = "LOW"
    retryable: bool = False

    @property
    def details(self) -> dict[str, Any]:
        """Structured attributes of this error (public, non-callable)."""
        return {
            k: v for k, v in vars(self).items()
            if not k.startswith("_") and k != "args"
        }


# Payroll input exceptions


class PayrollInputError(PayrollKernelError):
    """Base exception for payroll calculation input errors."""

    code: str = "PAYROLL_INPUT_ERROR"
    severity: str = "MEDIUM"


class InvalidPayrollInputError(PayrollInputError):
    """Payroll input violates the upstream contract (negative amounts, etc.)."""

    code: str = "INVALID_PAYROLL_INPUT"

    def __init__(self, violations: tuple[str, ...]):
        self.violations = tuple(violations)
        super().__init__(
            f"Invalid payroll input: {'; '.join(self.violations)}"
        )


class InvalidRateTableError(PayrollInputError):
    """Statutory rate table is malformed (gaps, overlaps, unordered)."""

    code: str = "INVALID_RATE_TABLE"
    severity: str = "HIGH"

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Invalid {table} table: {reason}")


# Document exceptions


class DocumentLookupError(PayrollKernelError):
    """Base exception for document lookup errors."""

    code: str = "DOCUMENT_ERROR"


class DocumentNotFoundError(DocumentLookupError):
    """No document exists with the given ID."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class DocumentAlreadyExistsError(DocumentLookupError):
    """A document with the given ID was already created."""

    code: str = "DOCUMENT_ALREADY_EXISTS"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document already exists: {document_id}")


# Transition exceptions


class TransitionError(PayrollKernelError):
    """Base exception for status transition errors."""

    code: str = "TRANSITION_ERROR"


class InvalidStatusTransitionError(TransitionError):
    """
    The requested transition is not allowed.

    Raised for pairs absent from the transition table, for failed named
    conditions (``failed_condition``) and for ERROR-severity business rule
    violations (``failed_rule``).
    """

    code: str = "INVALID_STATUS_TRANSITION"
    severity: str = "HIGH"

    def __init__(
        self,
        document_id: str,
        from_status: str,
        to_status: str,
        reason: str,
        failed_condition: str | None = None,
        failed_rule: str | None = None,
    ):
        self.document_id = document_id
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        self.failed_condition = failed_condition
        self.failed_rule = failed_rule
        super().__init__(reason)


class ApprovalRequiredError(TransitionError):
    """Transition requires an approval grant that the context does not carry."""

    code: str = "APPROVAL_REQUIRED"
    severity: str = "MEDIUM"

    def __init__(self, document_id: str, from_status: str, to_status: str):
        self.document_id = document_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Approval required for transition {from_status} -> {to_status}"
        )


class TransitionTimeoutError(TransitionError):
    """
    Transition did not complete within its time limit.

    The transition may still commit in the background; callers must re-query
    the document status before retrying.
    """

    code: str = "TIMEOUT_EXCEEDED"
    retryable: bool = True

    def __init__(self, document_id: str, timeout_seconds: float):
        self.document_id = document_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transition for document {document_id} exceeded "
            f"{timeout_seconds}s; status may have changed, re-query before retry"
        )


# Storage exceptions


class StorageError(PayrollKernelError):
    """Base exception for document file storage errors."""

    code: str = "STORAGE_ERROR"


class StorageWriteError(StorageError):
    """Document content could not be written."""

    code: str = "STORAGE_WRITE_FAILED"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Failed to store document {document_id}: {reason}")


class StorageReadError(StorageError):
    """Document content could not be read or failed its integrity check."""

    code: str = "STORAGE_READ_FAILED"

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Failed to read {file_path}: {reason}")


# Persistence exceptions


class PersistenceError(PayrollKernelError):
    """Base exception for persistence collaborator errors."""

    code: str = "PERSISTENCE_ERROR"
    severity: str = "HIGH"


class DatabaseConnectionError(PersistenceError):
    """The document store could not be reached or the transaction failed."""

    code: str = "DATABASE_CONNECTION_FAILED"
    severity: str = "CRITICAL"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Database failure during {operation}: {reason}")


# Immutability exceptions


class ImmutabilityError(PayrollKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"
    severity: str = "CRITICAL"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(PayrollKernelError):
    """Workflow or rate configuration is invalid or unreadable."""

    code: str = "CONFIGURATION_ERROR"
    severity: str = "HIGH"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration ({source}): {reason}")
