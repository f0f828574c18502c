"""
Tests for the side effect executor and notification dispatcher in isolation.
"""

from payroll_kernel.domain.document import DocumentStatus, NotificationPriority
from payroll_kernel.domain.transition import NotificationEvent, TransitionContext
from payroll_kernel.domain.workflow import SideEffect, SideEffectPhase
from payroll_services.notifications import NotificationDispatcher, default_message
from payroll_services.side_effects import SideEffectExecutor

S = DocumentStatus
CTX = TransitionContext(actor_id="hr-officer-1")


def _event(clock, to_status=S.GENERATED):
    return NotificationEvent(
        document_id="BP-2024-01-E001",
        from_status=S.GENERATING,
        to_status=to_status,
        actor_id="hr-officer-1",
        timestamp=clock.now(),
        priority=NotificationPriority.NORMAL,
    )


class TestSideEffectExecutor:

    def test_only_requested_phase_runs(self, make_document):
        seen = []
        executor = SideEffectExecutor()
        for effect in SideEffect:
            executor.register(effect, lambda request: seen.append(request.effect))

        outcome = executor.execute(
            [SideEffect.LOG_ERROR, SideEffect.RETRY_GENERATION, SideEffect.NOTIFY_ADMIN],
            SideEffectPhase.POST,
            make_document(), S.GENERATING, S.GENERATION_FAILED, CTX,
        )

        assert seen == [SideEffect.RETRY_GENERATION, SideEffect.NOTIFY_ADMIN]
        assert outcome.executed == ("retry_generation", "notify_admin")

    def test_failure_does_not_stop_later_effects(self, make_document):
        executor = SideEffectExecutor()

        def broken(request):
            raise RuntimeError("queue full")

        executor.register(SideEffect.SEND_TO_EMPLOYEE, broken)

        outcome = executor.execute(
            [SideEffect.SEND_TO_EMPLOYEE, SideEffect.LOG_DISTRIBUTION],
            SideEffectPhase.POST,
            make_document(), S.APPROVED, S.SENT, CTX,
        )

        assert outcome.failed == ("send_to_employee",)
        assert outcome.executed == ("log_distribution",)

    def test_request_carries_transition(self, make_document):
        requests = []
        executor = SideEffectExecutor()
        executor.register(SideEffect.QUEUE_GENERATION_JOB, requests.append)
        document = make_document()

        executor.execute(
            [SideEffect.QUEUE_GENERATION_JOB], SideEffectPhase.PRE,
            document, S.APPROVED_FOR_GENERATION, S.GENERATING, CTX,
        )

        (request,) = requests
        assert request.document == document
        assert request.from_status == S.APPROVED_FOR_GENERATION
        assert request.to_status == S.GENERATING
        assert request.context is CTX

    def test_default_handlers_log(self, make_document, captured_logs):
        SideEffectExecutor().execute(
            [SideEffect.CACHE_PREVIEW_PDF, SideEffect.LOG_ERROR], SideEffectPhase.PRE,
            make_document(), S.PREVIEW_REQUESTED, S.PREVIEW_GENERATED,
            TransitionContext(actor_id="hr-officer-1", reason="renderer crashed"),
        )

        messages = [r["message"] for r in captured_logs()]
        assert "side_effect_executed" in messages
        assert "document_generation_error" in messages


class TestNotificationDispatcher:

    def test_all_handlers_receive_event(self, clock):
        first, second = [], []
        dispatcher = NotificationDispatcher()
        dispatcher.register("first", first.append)
        dispatcher.register("second", second.append)

        failures = dispatcher.dispatch(_event(clock))

        assert failures == ()
        assert len(first) == len(second) == 1

    def test_failures_reported_by_name(self, clock, captured_logs):
        delivered = []
        dispatcher = NotificationDispatcher()

        def broken(event):
            raise ConnectionError("smtp down")

        dispatcher.register("email", broken)
        dispatcher.register("audit", delivered.append)

        failures = dispatcher.dispatch(_event(clock))

        assert failures == ("email",)
        assert len(delivered) == 1
        assert any(
            r["message"] == "notification_handler_failed" and r["handler"] == "email"
            for r in captured_logs()
        )

    def test_register_replaces_and_unregister(self, clock):
        calls = []
        dispatcher = NotificationDispatcher()
        dispatcher.register("inbox", lambda e: calls.append("old"))
        dispatcher.register("inbox", lambda e: calls.append("new"))
        dispatcher.dispatch(_event(clock))
        dispatcher.unregister("inbox")
        dispatcher.unregister("never-registered")
        dispatcher.dispatch(_event(clock))

        assert calls == ["new"]
        assert dispatcher.handler_names == ()

    def test_default_message_uses_labels(self):
        message = default_message("BP-1", S.APPROVED, S.SENT)

        assert message == "Document BP-1: Approuvé → Envoyé"
