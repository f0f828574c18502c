"""
Tests for the static document status transition table.

Covers:
- Exact set of legal edges
- Illegal jumps (skips, backwards moves, terminal state exits)
- Approval flags, conditions and side effect phases per edge
- Lookup tables are exhaustive over DocumentStatus
"""

import pytest

from payroll_kernel.domain.document import DocumentStatus, NotificationPriority
from payroll_kernel.domain.workflow import (
    NOTIFICATION_PRIORITY,
    STATUS_LABELS,
    STATUS_TRANSITIONS,
    SideEffect,
    SideEffectPhase,
    get_status_transition,
    get_valid_next_statuses,
    is_valid_status_transition,
    post_commit_effects,
)

S = DocumentStatus

LEGAL_EDGES = {
    (S.CALCULATION_PENDING, S.PREVIEW_REQUESTED),
    (S.PREVIEW_REQUESTED, S.PREVIEW_GENERATED),
    (S.PREVIEW_REQUESTED, S.GENERATION_FAILED),
    (S.PREVIEW_GENERATED, S.PENDING_APPROVAL),
    (S.PREVIEW_GENERATED, S.APPROVED_FOR_GENERATION),
    (S.PENDING_APPROVAL, S.APPROVED_FOR_GENERATION),
    (S.PENDING_APPROVAL, S.PREVIEW_REQUESTED),
    (S.APPROVED_FOR_GENERATION, S.GENERATING),
    (S.GENERATING, S.GENERATED),
    (S.GENERATING, S.GENERATION_FAILED),
    (S.GENERATED, S.APPROVED),
    (S.GENERATED, S.ARCHIVED),
    (S.APPROVED, S.SENT),
    (S.APPROVED, S.ARCHIVED),
    (S.SENT, S.ARCHIVED),
    (S.GENERATION_FAILED, S.PREVIEW_REQUESTED),
    (S.GENERATION_FAILED, S.ARCHIVED),
}


class TestTableShape:

    def test_exact_edge_set(self):
        table = {(t.from_status, t.to_status) for t in STATUS_TRANSITIONS}

        assert table == LEGAL_EDGES
        assert len(STATUS_TRANSITIONS) == len(LEGAL_EDGES)

    @pytest.mark.parametrize("from_status", list(S))
    @pytest.mark.parametrize("to_status", list(S))
    def test_every_pair(self, from_status, to_status):
        expected = (from_status, to_status) in LEGAL_EDGES

        assert is_valid_status_transition(from_status, to_status) is expected
        assert (get_status_transition(from_status, to_status) is not None) is expected

    def test_archived_is_terminal(self):
        assert get_valid_next_statuses(S.ARCHIVED) == ()

    def test_sent_never_goes_back(self):
        assert not is_valid_status_transition(S.SENT, S.CALCULATION_PENDING)
        assert get_valid_next_statuses(S.SENT) == (S.ARCHIVED,)

    def test_no_self_loops(self):
        assert all(t.from_status != t.to_status for t in STATUS_TRANSITIONS)

    def test_next_statuses_in_table_order(self):
        assert get_valid_next_statuses(S.PREVIEW_GENERATED) == (
            S.PENDING_APPROVAL, S.APPROVED_FOR_GENERATION,
        )


class TestEdgeAttributes:

    def test_approval_required_edges(self):
        requiring = {
            (t.from_status, t.to_status)
            for t in STATUS_TRANSITIONS if t.requires_approval
        }

        assert requiring == {
            (S.PENDING_APPROVAL, S.APPROVED_FOR_GENERATION),
            (S.GENERATED, S.APPROVED),
        }

    def test_first_step_conditions(self):
        t = get_status_transition(S.CALCULATION_PENDING, S.PREVIEW_REQUESTED)

        assert t.condition_names == (
            "employee_data_valid", "payroll_calculation_complete",
        )

    def test_generation_failure_timeout(self):
        t = get_status_transition(S.GENERATING, S.GENERATION_FAILED)

        assert t.timeout_seconds == 30
        assert t.side_effects == (
            SideEffect.LOG_ERROR, SideEffect.RETRY_GENERATION, SideEffect.NOTIFY_ADMIN,
        )

    def test_side_effect_phases_split(self):
        t = get_status_transition(S.GENERATING, S.GENERATION_FAILED)

        assert t.side_effects_for(SideEffectPhase.PRE) == (SideEffect.LOG_ERROR,)
        assert t.side_effects_for(SideEffectPhase.POST) == (
            SideEffect.RETRY_GENERATION, SideEffect.NOTIFY_ADMIN,
        )

    def test_post_commit_effects_are_deduplicated(self):
        generated = get_status_transition(S.GENERATING, S.GENERATED)
        sent = get_status_transition(S.APPROVED, S.SENT)

        assert post_commit_effects(generated) == (SideEffect.NOTIFY_STAKEHOLDERS,)
        assert post_commit_effects(sent) == (
            SideEffect.SEND_TO_EMPLOYEE, SideEffect.LOG_DISTRIBUTION,
        )

    def test_every_side_effect_has_a_phase(self):
        assert {e.phase for e in SideEffect} == set(SideEffectPhase)


class TestLookupTables:

    def test_priorities_are_exhaustive(self):
        assert set(NOTIFICATION_PRIORITY) == set(S)
        assert NOTIFICATION_PRIORITY[S.GENERATION_FAILED] == NotificationPriority.URGENT
        assert NOTIFICATION_PRIORITY[S.APPROVED] == NotificationPriority.HIGH
        assert NOTIFICATION_PRIORITY[S.SENT] == NotificationPriority.HIGH
        assert NOTIFICATION_PRIORITY[S.PENDING_APPROVAL] == NotificationPriority.NORMAL
        assert NOTIFICATION_PRIORITY[S.ARCHIVED] == NotificationPriority.LOW

    def test_labels_are_exhaustive(self):
        assert set(STATUS_LABELS) == set(S)
        assert STATUS_LABELS[S.SENT] == "Envoyé"
