"""
Tests for business rule evaluation.

Covers:
- Folding of rule outcomes (ERROR aborts, WARNING collected, INFO ignored)
- Rules that raise fail closed
- WorkingHoursRule time window, weekdays and timezone handling
- GenerationRetryLimitRule thresholds
"""

from datetime import UTC, datetime, time

import pytest

from payroll_engines.business_rules import (
    GenerationRetryLimitRule,
    WorkingHoursRule,
    evaluate_rules,
)
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.document import DocumentStatus
from payroll_kernel.domain.transition import (
    BusinessRule,
    RuleResult,
    RuleSeverity,
    TransitionContext,
)

S = DocumentStatus
CTX = TransitionContext(actor_id="hr-1")


class StubRule:
    description = "stub"

    def __init__(self, name, result=None, targets=None, error=None):
        self.name = name
        self._result = result or RuleResult.ok()
        self._targets = targets
        self._error = error
        self.calls = 0

    def applies(self, from_status, to_status, context):
        return self._targets is None or to_status in self._targets

    def validate(self, document_id, from_status, to_status, context):
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._result


class TestEvaluateRules:

    def test_stub_satisfies_protocol(self):
        assert isinstance(StubRule("x"), BusinessRule)

    def test_no_rules_allows(self):
        evaluation = evaluate_rules([], "D1", S.GENERATED, S.APPROVED, CTX)

        assert evaluation.allowed
        assert evaluation.warnings == ()

    def test_error_aborts_and_names_rule(self):
        rules = [
            StubRule("first"),
            StubRule("blocker", RuleResult(False, "closed today", RuleSeverity.ERROR)),
            StubRule("never"),
        ]

        evaluation = evaluate_rules(rules, "D1", S.GENERATED, S.APPROVED, CTX)

        assert not evaluation.allowed
        assert evaluation.failed_rule == "blocker"
        assert evaluation.message == "Business rule violation (blocker): closed today"
        assert evaluation.evaluated_rules == ("first", "blocker")
        assert rules[2].calls == 0

    def test_warnings_are_collected_in_order(self):
        rules = [
            StubRule("a", RuleResult(False, "first warning", RuleSeverity.WARNING)),
            StubRule("b", RuleResult(False, "just info", RuleSeverity.INFO)),
            StubRule("c", RuleResult(False, "second warning", RuleSeverity.WARNING)),
        ]

        evaluation = evaluate_rules(rules, "D1", S.GENERATED, S.APPROVED, CTX)

        assert evaluation.allowed
        assert evaluation.warnings == ("a: first warning", "c: second warning")

    def test_non_applicable_rules_are_skipped(self):
        rule = StubRule(
            "sent-only",
            RuleResult(False, "no", RuleSeverity.ERROR),
            targets={S.SENT},
        )

        evaluation = evaluate_rules([rule], "D1", S.GENERATED, S.APPROVED, CTX)

        assert evaluation.allowed
        assert rule.calls == 0

    def test_raising_rule_fails_closed(self):
        rule = StubRule("broken", error=RuntimeError("directory down"))

        evaluation = evaluate_rules([rule], "D1", S.GENERATED, S.APPROVED, CTX)

        assert not evaluation.allowed
        assert evaluation.failed_rule == "broken"
        assert "directory down" in evaluation.message


class TestWorkingHoursRule:

    def _rule(self, when: datetime, **kwargs) -> WorkingHoursRule:
        return WorkingHoursRule(clock=DeterministicClock(when), **kwargs)

    def test_applies_to_sensitive_targets_only(self):
        rule = self._rule(datetime(2024, 1, 15, 10, tzinfo=UTC))

        assert rule.applies(S.GENERATED, S.APPROVED, CTX)
        assert rule.applies(S.APPROVED, S.SENT, CTX)
        assert rule.applies(S.PREVIEW_GENERATED, S.APPROVED_FOR_GENERATION, CTX)
        assert not rule.applies(S.GENERATED, S.ARCHIVED, CTX)

    def test_weekday_inside_window_passes(self):
        # Monday 10:00 UTC is 11:00 in Casablanca
        rule = self._rule(datetime(2024, 1, 15, 10, tzinfo=UTC))

        assert rule.validate("D1", S.GENERATED, S.APPROVED, CTX).valid

    def test_after_hours_is_rejected(self):
        # Monday 18:30 UTC is 19:30 in Casablanca
        rule = self._rule(datetime(2024, 1, 15, 18, 30, tzinfo=UTC))

        result = rule.validate("D1", S.GENERATED, S.APPROVED, CTX)

        assert not result.valid
        assert result.severity == RuleSeverity.ERROR
        assert "08:00" in result.message and "18:00" in result.message

    def test_weekend_is_rejected(self):
        rule = self._rule(datetime(2024, 1, 13, 10, tzinfo=UTC))  # Saturday

        result = rule.validate("D1", S.APPROVED, S.SENT, CTX)

        assert not result.valid
        assert "working days" in result.message

    def test_window_uses_configured_timezone(self):
        # 07:30 UTC is 08:30 in Casablanca (UTC+1) but 07:30 in UTC
        when = datetime(2024, 1, 15, 7, 30, tzinfo=UTC)

        assert self._rule(when).validate("D1", S.GENERATED, S.APPROVED, CTX).valid
        assert not self._rule(when, timezone="UTC").validate(
            "D1", S.GENERATED, S.APPROVED, CTX
        ).valid

    def test_warning_severity_lets_transition_through(self):
        rule = self._rule(
            datetime(2024, 1, 13, 10, tzinfo=UTC),
            severity=RuleSeverity.WARNING,
        )

        evaluation = evaluate_rules([rule], "D1", S.APPROVED, S.SENT, CTX)

        assert evaluation.allowed
        assert len(evaluation.warnings) == 1

    def test_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            WorkingHoursRule(start=time(18), end=time(8))


class TestGenerationRetryLimitRule:

    def _rule(self, failures: int, limit: int = 3) -> GenerationRetryLimitRule:
        return GenerationRetryLimitRule(lambda _: failures, max_retry_attempts=limit)

    def test_applies_only_to_retry_edge(self):
        rule = self._rule(0)

        assert rule.applies(S.GENERATION_FAILED, S.PREVIEW_REQUESTED, CTX)
        assert not rule.applies(S.GENERATION_FAILED, S.ARCHIVED, CTX)
        assert not rule.applies(S.PENDING_APPROVAL, S.PREVIEW_REQUESTED, CTX)

    def test_under_limit_passes(self):
        assert self._rule(1).validate("D1", S.GENERATION_FAILED, S.PREVIEW_REQUESTED, CTX).valid

    def test_last_attempt_warns(self):
        result = self._rule(3).validate(
            "D1", S.GENERATION_FAILED, S.PREVIEW_REQUESTED, CTX
        )

        assert not result.valid
        assert result.severity == RuleSeverity.WARNING

    def test_over_limit_is_rejected(self):
        result = self._rule(4).validate(
            "D1", S.GENERATION_FAILED, S.PREVIEW_REQUESTED, CTX
        )

        assert not result.valid
        assert result.severity == RuleSeverity.ERROR
        assert "permanent failure" in result.message

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            self._rule(0, limit=-1)
