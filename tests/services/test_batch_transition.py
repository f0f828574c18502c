"""
Tests for DocumentStatusService.batch_transition.

Each document is transitioned independently: failures are collected per
document, never abort the batch, and every item gets its own request id.
"""

import pytest

from payroll_config.schema import WorkflowConfig
from payroll_kernel.domain.document import DocumentStatus
from payroll_kernel.domain.transition import TransitionContext

S = DocumentStatus


@pytest.fixture
def batch_service(make_service, create_document):
    service = make_service(config=WorkflowConfig(
        transition_timeout_seconds=None,
        batch_size=2,
        max_concurrent_transitions=3,
    ))
    for employee in ("E001", "E002", "E003", "E004", "E005"):
        create_document(service, document_id=f"BP-2024-01-{employee}", employee_id=employee)
    return service


class TestBatchTransition:

    def test_all_succeed(self, batch_service):
        ids = [f"BP-2024-01-E00{i}" for i in range(1, 6)]

        result = batch_service.batch_transition(
            ids, S.PREVIEW_REQUESTED, TransitionContext(actor_id="hr-officer-1")
        )

        assert result.all_succeeded
        assert result.total_processed == 5
        assert set(result.successful) == set(ids)
        assert all(
            batch_service.get_current_status(i) == S.PREVIEW_REQUESTED for i in ids
        )

    def test_failures_are_collected(self, batch_service):
        batch_service.transition(
            "BP-2024-01-E002", S.PREVIEW_REQUESTED, TransitionContext(actor_id="hr-officer-1")
        )

        result = batch_service.batch_transition(
            ["BP-2024-01-E001", "BP-2024-01-E002", "missing"],
            S.PREVIEW_REQUESTED,
            TransitionContext(actor_id="hr-officer-1"),
        )

        failures = dict(result.failed)
        assert result.successful == ("BP-2024-01-E001",)
        assert failures["BP-2024-01-E002"].code == "INVALID_STATUS_TRANSITION"
        assert failures["missing"].code == "DOCUMENT_NOT_FOUND"
        assert result.total_processed == 3
        assert not result.all_succeeded

    def test_per_document_request_ids(self, batch_service):
        events = []
        batch_service.register_notification_handler("inbox", events.append)

        batch_service.batch_transition(
            ["BP-2024-01-E001", "BP-2024-01-E003"],
            S.PREVIEW_REQUESTED,
            TransitionContext(actor_id="hr-officer-1", request_id="run-42"),
        )

        request_ids = {e.document_id: e.metadata["request_id"] for e in events}
        assert request_ids == {
            "BP-2024-01-E001": "run-42-BP-2024-01-E001",
            "BP-2024-01-E003": "run-42-BP-2024-01-E003",
        }

    def test_audit_entries_carry_item_request_id(self, batch_service):
        batch_service.batch_transition(
            ["BP-2024-01-E004"], S.PREVIEW_REQUESTED, TransitionContext(actor_id="hr-officer-1")
        )

        entry = batch_service.get_status_history("BP-2024-01-E004").items[0]
        assert entry.request_id == "batch-BP-2024-01-E004"

    def test_empty_batch(self, batch_service):
        result = batch_service.batch_transition(
            [], S.PREVIEW_REQUESTED, TransitionContext(actor_id="hr-officer-1")
        )

        assert result.successful == ()
        assert result.failed == ()
        assert result.total_processed == 0

    def test_batch_is_logged(self, batch_service, captured_logs):
        batch_service.batch_transition(
            ["BP-2024-01-E001", "missing"], S.PREVIEW_REQUESTED,
            TransitionContext(actor_id="hr-officer-1"),
        )

        completed = [r for r in captured_logs() if r["message"] == "batch_transition_completed"]
        assert len(completed) == 1
        assert completed[0]["successful"] == 1
        assert completed[0]["failed"] == 1
