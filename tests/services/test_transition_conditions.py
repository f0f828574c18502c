"""
Tests for named condition evaluation.

Conditions fail closed: an unregistered name or an evaluator that raises
blocks the transition.
"""

from decimal import Decimal

import pytest

from payroll_kernel.domain.document import FileStorageInfo, StorageProvider
from payroll_kernel.domain.payroll import PayrollSummary
from payroll_kernel.domain.transition import TransitionContext
from payroll_kernel.domain.workflow import (
    APPROVER_AUTHORIZED,
    DOCUMENT_QUALITY_VERIFIED,
    EMPLOYEE_DATA_VALID,
    PAYROLL_CALCULATION_COMPLETE,
    STATUS_TRANSITIONS,
    USER_HAS_ARCHIVE_RIGHTS,
    Condition,
)
from payroll_services.conditions import (
    ROLE_APPROVER,
    ROLE_ARCHIVER,
    ConditionExecutor,
    PermissiveRoleProvider,
    RoleProvider,
    StaticRoleProvider,
    default_condition_executor,
)

CTX = TransitionContext(actor_id="hr-officer-1")


def summary(gross, net):
    return PayrollSummary(
        gross_salary=Decimal(gross),
        net_salary=Decimal(net),
        total_deductions=Decimal(gross) - Decimal(net),
    )


class TestConditionExecutor:

    def test_unknown_condition_fails_closed(self, make_document, captured_logs):
        executor = ConditionExecutor()

        assert not executor.evaluate(Condition("mystery"), make_document(), CTX)
        assert any(
            r["message"] == "condition_no_evaluator" and r["condition_name"] == "mystery"
            for r in captured_logs()
        )

    def test_raising_evaluator_fails_closed(self, make_document):
        executor = ConditionExecutor()

        def broken(document, context):
            raise KeyError("directory offline")

        executor.register("flaky", broken)

        assert not executor.evaluate(Condition("flaky"), make_document(), CTX)

    def test_first_failure_in_order(self, make_document):
        executor = ConditionExecutor()
        executor.register("a", lambda d, c: True)
        executor.register("b", lambda d, c: False)
        executor.register("c", lambda d, c: False)

        failed = executor.first_failure(
            [Condition("a"), Condition("b"), Condition("c")], make_document(), CTX
        )

        assert failed.name == "b"

    def test_all_pass(self, make_document):
        executor = ConditionExecutor()
        executor.register("a", lambda d, c: 1)

        assert executor.first_failure([Condition("a")], make_document(), CTX) is None

    def test_every_table_condition_registered(self):
        executor = default_condition_executor()
        names = {c.name for t in STATUS_TRANSITIONS for c in t.conditions}

        assert all(executor.is_registered(name) for name in names)


class TestBuiltinConditions:

    @pytest.fixture
    def executor(self):
        return default_condition_executor()

    @pytest.mark.parametrize("employee_id,name,expected", [
        ("E001", "Amina Alaoui", True),
        ("", "Amina Alaoui", False),
        ("E001", "  ", False),
    ])
    def test_employee_data(self, executor, make_document, employee_id, name, expected):
        document = make_document(employee_id=employee_id, employee_name=name)

        assert executor.evaluate(EMPLOYEE_DATA_VALID, document, CTX) is expected

    @pytest.mark.parametrize("gross,net,expected", [
        ("15000", "11782.19", True),
        ("15000", "15000", True),
        ("0", "0", False),
        ("15000", "-1", True),
        ("15000", "15000.01", True),
    ])
    def test_payroll_calculation(self, executor, make_document, gross, net, expected):
        document = make_document(payroll_summary=summary(gross, net))

        assert executor.evaluate(PAYROLL_CALCULATION_COMPLETE, document, CTX) is expected

    def test_payroll_calculation_requires_summary(self, executor, make_document):
        assert not executor.evaluate(PAYROLL_CALCULATION_COMPLETE, make_document(), CTX)

    def test_document_quality(self, executor, make_document):
        info = FileStorageInfo(StorageProvider.IN_MEMORY, "memory://x.pdf", "x.pdf")

        assert not executor.evaluate(DOCUMENT_QUALITY_VERIFIED, make_document(), CTX)
        assert not executor.evaluate(
            DOCUMENT_QUALITY_VERIFIED, make_document(file_info=info), CTX
        )
        assert executor.evaluate(
            DOCUMENT_QUALITY_VERIFIED,
            make_document(file_info=FileStorageInfo(
                StorageProvider.IN_MEMORY, "memory://x.pdf", "x.pdf", checksum="ab" * 32
            )),
            CTX,
        )

    def test_metadata_flags_need_literal_true(self, executor, make_document):
        from payroll_kernel.domain.workflow import PREVIEW_VIEWED

        document = make_document()

        assert executor.evaluate(
            PREVIEW_VIEWED, document, TransitionContext("a", metadata={"preview_viewed": True})
        )
        assert not executor.evaluate(
            PREVIEW_VIEWED, document, TransitionContext("a", metadata={"preview_viewed": 1})
        )
        assert not executor.evaluate(PREVIEW_VIEWED, document, CTX)


class TestRoles:

    def test_permissive_by_default(self, make_document):
        executor = default_condition_executor()

        assert executor.evaluate(APPROVER_AUTHORIZED, make_document(), CTX)
        assert executor.evaluate(USER_HAS_ARCHIVE_RIGHTS, make_document(), CTX)

    def test_static_roles(self, make_document):
        roles = StaticRoleProvider({
            "manager-2": (ROLE_APPROVER,),
            "archivist": (ROLE_ARCHIVER,),
        })
        executor = default_condition_executor(roles)
        document = make_document()

        assert executor.evaluate(APPROVER_AUTHORIZED, document, TransitionContext("manager-2"))
        assert not executor.evaluate(APPROVER_AUTHORIZED, document, TransitionContext("archivist"))
        assert executor.evaluate(USER_HAS_ARCHIVE_RIGHTS, document, TransitionContext("archivist"))
        assert not executor.evaluate(USER_HAS_ARCHIVE_RIGHTS, document, CTX)
        assert roles.get_actor_roles("nobody") == ()

    def test_providers_satisfy_protocol(self):
        assert isinstance(PermissiveRoleProvider(), RoleProvider)
        assert isinstance(StaticRoleProvider(), RoleProvider)
