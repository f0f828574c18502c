"""
payroll_services.conditions -- Named transition precondition evaluation.

Responsibility:
    Holds the evaluation logic behind each condition name declared in the
    transition table (``payroll_kernel.domain.workflow``). The status
    service asks ``ConditionExecutor.first_failure`` which condition, if
    any, blocks a transition.

Architecture position:
    Services layer. Role checks are delegated to a ``RoleProvider`` so
    deployments can plug in their own directory.

Invariants enforced:
    - Fail closed: an unknown condition name or an evaluator that raises
      counts as a failed condition.
    - Conditions are evaluated in declaration order; the first failure is
      reported by name.
"""

from __future__ import annotations

from typing import Callable, Protocol, Sequence, runtime_checkable

from payroll_kernel.domain.document import DocumentMetadata
from payroll_kernel.domain.transition import TransitionContext
from payroll_kernel.domain.workflow import Condition
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.conditions")

ConditionEvaluator = Callable[[DocumentMetadata, TransitionContext], bool]

ROLE_APPROVER = "payroll_approver"
ROLE_ARCHIVER = "payroll_archiver"


@runtime_checkable
class RoleProvider(Protocol):
    def has_role(self, actor_id: str, role: str) -> bool: ...


class PermissiveRoleProvider:
    """Grants every role. For deployments that authorize upstream."""

    def has_role(self, actor_id: str, role: str) -> bool:
        return True


class StaticRoleProvider:
    """Role provider backed by a simple dict of actor id -> roles."""

    def __init__(self, role_map: dict[str, tuple[str, ...]] | None = None) -> None:
        self._role_map: dict[str, tuple[str, ...]] = role_map or {}

    def get_actor_roles(self, actor_id: str) -> tuple[str, ...]:
        return self._role_map.get(actor_id, ())

    def has_role(self, actor_id: str, role: str) -> bool:
        return role in self._role_map.get(actor_id, ())


class ConditionExecutor:
    """Evaluates named transition conditions against a document and context."""

    def __init__(self) -> None:
        self._evaluators: dict[str, ConditionEvaluator] = {}

    def register(self, condition_name: str, evaluator: ConditionEvaluator) -> None:
        """Register (or replace) the evaluator for a condition name."""
        self._evaluators[condition_name] = evaluator

    def is_registered(self, condition_name: str) -> bool:
        return condition_name in self._evaluators

    def evaluate(
        self,
        condition: Condition,
        document: DocumentMetadata,
        context: TransitionContext,
    ) -> bool:
        """Evaluate one condition. Returns True if it passes."""
        fn = self._evaluators.get(condition.name)
        if fn is None:
            logger.warning(
                "condition_no_evaluator",
                extra={"condition_name": condition.name},
            )
            return False
        try:
            return bool(fn(document, context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "condition_evaluation_error",
                extra={"condition_name": condition.name, "error": str(e)},
            )
            return False

    def first_failure(
        self,
        conditions: Sequence[Condition],
        document: DocumentMetadata,
        context: TransitionContext,
    ) -> Condition | None:
        """The first condition that does not pass, or None when all pass."""
        for condition in conditions:
            if not self.evaluate(condition, document, context):
                return condition
        return None


def _employee_data_valid(document: DocumentMetadata, context: TransitionContext) -> bool:
    return bool(document.employee_id.strip()) and bool(document.employee_name.strip())


def _payroll_calculation_complete(
    document: DocumentMetadata, context: TransitionContext
) -> bool:
    # Amounts are not re-checked here
    summary = document.payroll_summary
    return summary is not None and summary.gross_salary > 0


def _document_quality_verified(
    document: DocumentMetadata, context: TransitionContext
) -> bool:
    info = document.file_info
    return info is not None and bool(info.checksum)


def _metadata_flag(key: str) -> ConditionEvaluator:
    def check(document: DocumentMetadata, context: TransitionContext) -> bool:
        return context.flag(key)

    return check


def _has_role(roles: RoleProvider, role: str) -> ConditionEvaluator:
    def check(document: DocumentMetadata, context: TransitionContext) -> bool:
        return roles.has_role(context.actor_id, role)

    return check


def default_condition_executor(
    role_provider: RoleProvider | None = None,
) -> ConditionExecutor:
    """Return a ConditionExecutor with every condition of the table registered."""
    roles = role_provider or PermissiveRoleProvider()
    ex = ConditionExecutor()
    ex.register("employee_data_valid", _employee_data_valid)
    ex.register("payroll_calculation_complete", _payroll_calculation_complete)
    ex.register("preview_viewed", _metadata_flag("preview_viewed"))
    ex.register("user_has_approval_rights", _has_role(roles, ROLE_APPROVER))
    ex.register("approver_authorized", _has_role(roles, ROLE_APPROVER))
    ex.register("document_quality_verified", _document_quality_verified)
    ex.register("user_has_archive_rights", _has_role(roles, ROLE_ARCHIVER))
    ex.register("error_resolved", _metadata_flag("error_resolved"))
    ex.register("permanent_failure_confirmed", _metadata_flag("permanent_failure_confirmed"))
    return ex
