"""
Pytest fixtures for the payroll workflow test suite.

Provides:
- Structured logging configured once per session, with a log capture fixture
- Deterministic clock, in-memory and SQLite-backed document stores
- A ``DocumentStatusService`` factory and document builders

SQL tests run against a SQLite file per test under ``tmp_path``; no external
database is required.
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest

from payroll_config.schema import WorkflowConfig
from payroll_engines.calculation import PayrollCalculator
from payroll_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.db.immutability import unregister_immutability_listeners
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.document import (
    DocumentMetadata,
    DocumentStatus,
    DocumentType,
    PayrollPeriod,
)
from payroll_kernel.domain.payroll import PayrollInput
from payroll_kernel.domain.transition import TransitionContext
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_services.document_status_service import DocumentStatusService
from payroll_services.sql_store import SqlAlchemyDocumentStore
from payroll_services.storage import InMemoryDocumentStorage
from payroll_services.stores import InMemoryDocumentStore

TEST_ACTOR_ID = "hr-officer-1"

# Monday 2024-01-15 10:00 UTC (11:00 in Casablanca)
FIXED_TIME = datetime(2024, 1, 15, 10, 0, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.transition(...)
            logs = captured_logs()
            assert any(r["message"] == "status_transition_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_TIME)


@pytest.fixture
def calculator():
    return PayrollCalculator()


@pytest.fixture
def payroll_result(calculator):
    """Golden case: 15 000 MAD, single, no seniority."""
    return calculator.calculate(PayrollInput(base_salary=Decimal("15000")))


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore()


@pytest.fixture
def document_storage():
    return InMemoryDocumentStorage()


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'payroll.db'}"


@pytest.fixture
def sql_store(sqlite_url):
    init_engine_from_url(sqlite_url)
    create_tables()
    yield SqlAlchemyDocumentStore(get_session_factory())
    reset_engine()


@pytest.fixture
def sql_session_factory(sql_store):
    return get_session_factory()


@pytest.fixture
def without_immutability(sql_store):
    """Remove the audit listeners for tamper tests; restored afterwards."""
    from payroll_kernel.db.immutability import register_immutability_listeners

    unregister_immutability_listeners()
    yield
    register_immutability_listeners()


@pytest.fixture
def make_service(clock, document_storage):
    """
    Factory building a ``DocumentStatusService``.

    Defaults: in-memory store, deterministic clock, in-memory file storage
    and no transition timeout (inline execution).
    """
    created: list[DocumentStatusService] = []

    def _make(store=None, config=None, **kwargs) -> DocumentStatusService:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("storage", document_storage)
        service = DocumentStatusService(
            store=store if store is not None else InMemoryDocumentStore(),
            config=config or WorkflowConfig(transition_timeout_seconds=None),
            **kwargs,
        )
        created.append(service)
        return service

    yield _make

    for service in created:
        service.close()


@pytest.fixture
def service(make_service, memory_store):
    return make_service(store=memory_store)


@pytest.fixture
def actor_context():
    return TransitionContext(actor_id=TEST_ACTOR_ID, request_id="req-1")


@pytest.fixture
def create_document(payroll_result, actor_context):
    """Create a CALCULATION_PENDING document through a service."""

    def _create(service, document_id="BP-2024-01-E001", employee_id="E001"):
        return service.create_document(
            document_id=document_id,
            document_type=DocumentType.BULLETIN_PAIE,
            employee_id=employee_id,
            employee_name="Amina Alaoui",
            period=PayrollPeriod(2024, 1),
            payroll_result=payroll_result,
            context=actor_context,
        )

    return _create


def _build_document(
    document_id: str = "BP-2024-01-E001",
    status: DocumentStatus = DocumentStatus.CALCULATION_PENDING,
    **overrides,
) -> DocumentMetadata:
    """Plain ``DocumentMetadata`` for store-level tests."""
    values = dict(
        document_id=document_id,
        document_type=DocumentType.BULLETIN_PAIE,
        employee_id="E001",
        employee_name="Amina Alaoui",
        period=PayrollPeriod(2024, 1),
        status=status,
        created_by=TEST_ACTOR_ID,
        created_at=FIXED_TIME,
        updated_at=FIXED_TIME,
    )
    values.update(overrides)
    return DocumentMetadata(**values)


@pytest.fixture
def make_document():
    return _build_document


# Context metadata that satisfies each edge of the happy path
PATH_CONTEXT = {
    DocumentStatus.PREVIEW_REQUESTED: {},
    DocumentStatus.PREVIEW_GENERATED: {},
    DocumentStatus.PENDING_APPROVAL: {"preview_viewed": True},
    DocumentStatus.APPROVED_FOR_GENERATION: {"approval_granted": True},
    DocumentStatus.GENERATING: {},
    DocumentStatus.GENERATED: {},
    DocumentStatus.APPROVED: {"approval_granted": True},
    DocumentStatus.SENT: {"tracking_id": "TRK-001"},
    DocumentStatus.ARCHIVED: {},
}

HAPPY_PATH = (
    DocumentStatus.PREVIEW_REQUESTED,
    DocumentStatus.PREVIEW_GENERATED,
    DocumentStatus.PENDING_APPROVAL,
    DocumentStatus.APPROVED_FOR_GENERATION,
    DocumentStatus.GENERATING,
)


@pytest.fixture
def advance_to(clock):
    """
    Walk a document along the happy path up to ``target`` (GENERATING or
    earlier), one second of clock time per step.
    """

    def _advance(service, document_id, target):
        for status in HAPPY_PATH:
            clock.advance(1)
            result = service.transition(
                document_id,
                status,
                TransitionContext(
                    actor_id=TEST_ACTOR_ID,
                    metadata=dict(PATH_CONTEXT[status]),
                ),
            )
            assert result.success, result.error
            if status == target:
                return result
        raise AssertionError(f"{target} is not on the pre-generation path")

    return _advance
