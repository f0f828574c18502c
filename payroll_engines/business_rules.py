"""
payroll_engines.business_rules -- Pluggable transition policy rules.

Responsibility:
    Evaluate the registered ``BusinessRule`` objects against one proposed
    transition and fold their outcomes into a single ``RuleEvaluation``:
    the first ERROR aborts, WARNINGs are collected.

Architecture position:
    Engines -- pure, zero I/O. Rules receive the current time through
    ``payroll_kernel.domain.clock.Clock``; they never read the system clock.

Invariants enforced:
    - Rules are evaluated in registration order; evaluation stops at the
      first ERROR.
    - A rule that raises is treated as an ERROR for that rule (fail closed).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time as dt_time
from typing import Callable, Sequence
from zoneinfo import ZoneInfo

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.document import DocumentStatus
from payroll_kernel.domain.transition import (
    BusinessRule,
    RuleResult,
    RuleSeverity,
    TransitionContext,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.business_rules")


@dataclass(frozen=True)
class RuleEvaluation:
    """Folded outcome of all applicable rules."""

    allowed: bool
    warnings: tuple[str, ...] = ()
    failed_rule: str | None = None
    message: str | None = None
    evaluated_rules: tuple[str, ...] = ()


def evaluate_rules(
    rules: Sequence[BusinessRule],
    document_id: str,
    from_status: DocumentStatus,
    to_status: DocumentStatus,
    context: TransitionContext,
) -> RuleEvaluation:
    """Run every rule whose ``applies`` matches, stopping at the first ERROR."""
    warnings: list[str] = []
    evaluated: list[str] = []
    for rule in rules:
        try:
            if not rule.applies(from_status, to_status, context):
                continue
            evaluated.append(rule.name)
            outcome = rule.validate(document_id, from_status, to_status, context)
        except Exception as exc:
            logger.exception("business_rule_raised", extra={
                "rule": rule.name,
                "document_id": document_id,
                "from_status": from_status.value,
                "to_status": to_status.value,
            })
            return RuleEvaluation(
                allowed=False,
                warnings=tuple(warnings),
                failed_rule=rule.name,
                message=f"Business rule violation ({rule.name}): {exc}",
                evaluated_rules=tuple(evaluated),
            )

        if outcome.valid:
            continue
        if outcome.severity == RuleSeverity.ERROR:
            logger.info("business_rule_rejected", extra={
                "rule": rule.name,
                "document_id": document_id,
                "rule_message": outcome.message,
            })
            return RuleEvaluation(
                allowed=False,
                warnings=tuple(warnings),
                failed_rule=rule.name,
                message=f"Business rule violation ({rule.name}): {outcome.message}",
                evaluated_rules=tuple(evaluated),
            )
        if outcome.severity == RuleSeverity.WARNING and outcome.message:
            warnings.append(f"{rule.name}: {outcome.message}")

    return RuleEvaluation(
        allowed=True,
        warnings=tuple(warnings),
        evaluated_rules=tuple(evaluated),
    )


WORKING_HOURS_SENSITIVE_TARGETS: frozenset[DocumentStatus] = frozenset({
    DocumentStatus.APPROVED_FOR_GENERATION,
    DocumentStatus.APPROVED,
    DocumentStatus.SENT,
})


class WorkingHoursRule:
    """
    Restrict approval and sending to working hours.

    Weekdays are ISO numbers (Monday=1). The window is ``[start, end)`` in
    ``timezone``.
    """

    name = "working_hours"
    description = "Sensitive transitions only during working hours"

    def __init__(
        self,
        clock: Clock | None = None,
        start: dt_time = dt_time(8, 0),
        end: dt_time = dt_time(18, 0),
        working_days: frozenset[int] = frozenset({1, 2, 3, 4, 5}),
        timezone: str = "Africa/Casablanca",
        targets: frozenset[DocumentStatus] = WORKING_HOURS_SENSITIVE_TARGETS,
        severity: RuleSeverity = RuleSeverity.ERROR,
    ) -> None:
        if start >= end:
            raise ValueError("working hours start must be before end")
        self._clock = clock or SystemClock()
        self._start = start
        self._end = end
        self._working_days = working_days
        self._tz = ZoneInfo(timezone)
        self._targets = targets
        self._severity = severity

    def applies(
        self,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> bool:
        return to_status in self._targets

    def validate(
        self,
        document_id: str,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> RuleResult:
        local = self._clock.now().astimezone(self._tz)
        if local.isoweekday() not in self._working_days:
            return RuleResult(
                valid=False,
                message=f"{to_status.value} is not allowed outside working days",
                severity=self._severity,
            )
        if not self._start <= local.time() < self._end:
            return RuleResult(
                valid=False,
                message=(
                    f"{to_status.value} is only allowed between "
                    f"{self._start:%H:%M} and {self._end:%H:%M}"
                ),
                severity=self._severity,
            )
        return RuleResult.ok()


class GenerationRetryLimitRule:
    """
    Cap how often a failed document may be sent back for regeneration.

    ``failure_count`` returns how many times the document has entered
    GENERATION_FAILED. Once that exceeds ``max_retry_attempts`` the only way
    out is archiving it as a permanent failure.
    """

    name = "generation_retry_limit"
    description = "Failed generations are retried a bounded number of times"

    def __init__(
        self,
        failure_count: Callable[[str], int],
        max_retry_attempts: int = 3,
    ) -> None:
        if max_retry_attempts < 0:
            raise ValueError("max_retry_attempts cannot be negative")
        self._failure_count = failure_count
        self._max_retry_attempts = max_retry_attempts

    def applies(
        self,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> bool:
        return (
            from_status == DocumentStatus.GENERATION_FAILED
            and to_status == DocumentStatus.PREVIEW_REQUESTED
        )

    def validate(
        self,
        document_id: str,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> RuleResult:
        failures = self._failure_count(document_id)
        if failures > self._max_retry_attempts:
            return RuleResult(
                valid=False,
                message=(
                    f"Retry limit reached ({self._max_retry_attempts} attempts); "
                    "archive the document as a permanent failure"
                ),
                severity=RuleSeverity.ERROR,
            )
        if failures == self._max_retry_attempts:
            return RuleResult(
                valid=False,
                message="Last retry attempt for this document",
                severity=RuleSeverity.WARNING,
            )
        return RuleResult.ok()
