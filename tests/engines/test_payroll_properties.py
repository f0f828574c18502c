"""
Property-based tests for the payroll calculation engine.

Invariants checked over generated inputs:
- Net salary identity: net = global gross - all employee deductions
- Contributions never exceed their statutory ceilings
- Income tax is monotonic in salary and never negative
- Dependants only lower (never raise) the income tax
- Identical inputs give identical results
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_engines.calculation import PayrollCalculator, annual_income_tax
from payroll_kernel.domain.payroll import (
    DEFAULT_RATES,
    DEFAULT_TAX_BRACKETS,
    MaritalStatus,
    PayrollInput,
)

money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("500000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
salaries = st.decimals(
    min_value=Decimal("1"),
    max_value=Decimal("500000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
small_rates = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("0.10"),
    places=4,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def payroll_inputs(draw):
    return PayrollInput(
        base_salary=draw(salaries),
        seniority_months=draw(st.integers(min_value=0, max_value=600)),
        taxable_bonuses=draw(st.one_of(st.none(), money)),
        non_taxable_bonuses=draw(st.one_of(st.none(), money)),
        marital_status=draw(st.one_of(st.none(), st.sampled_from(MaritalStatus))),
        children_count=draw(st.one_of(st.none(), st.integers(min_value=0, max_value=12))),
        cimr_rate=draw(st.one_of(st.none(), small_rates)),
        insurance_rate=draw(st.one_of(st.none(), small_rates)),
        other_deductions=draw(st.one_of(st.none(), money)),
    )


calculator = PayrollCalculator()


@settings(max_examples=200, deadline=None)
@given(payroll_inputs())
def test_net_salary_identity(payroll_input):
    result = calculator.calculate(payroll_input)

    assert result.net_salary == (
        result.gross_global_salary
        - result.employee_cnss
        - result.employee_amo
        - result.employee_cimr
        - result.employee_insurance
        - result.net_income_tax
        - result.other_deductions
    )


@settings(max_examples=200, deadline=None)
@given(payroll_inputs())
def test_amounts_are_cents_and_non_negative(payroll_input):
    result = calculator.calculate(payroll_input)

    for name in (
        "gross_global_salary", "employee_cnss", "employee_amo",
        "professional_expenses", "net_income_tax", "employer_total",
    ):
        value = getattr(result, name)
        assert value >= 0, name
        assert value == value.quantize(Decimal("0.01")), name


@settings(max_examples=200, deadline=None)
@given(payroll_inputs())
def test_ceilings(payroll_input):
    result = calculator.calculate(payroll_input)

    assert result.employee_cnss <= Decimal("268.80")
    assert result.employer_cnss <= Decimal("480.00")
    assert result.professional_expenses <= Decimal("2500.00")
    assert 0 <= result.dependants_count <= DEFAULT_RATES.max_dependants


@settings(max_examples=200, deadline=None)
@given(
    st.decimals(min_value=Decimal("0"), max_value=Decimal("2000000"), places=2),
    st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=2),
)
def test_annual_tax_is_monotonic(base, delta):
    lower = annual_income_tax(base, DEFAULT_TAX_BRACKETS)
    higher = annual_income_tax(base + delta, DEFAULT_TAX_BRACKETS)

    assert lower >= 0
    assert higher >= lower


@settings(max_examples=100, deadline=None)
@given(salaries, st.integers(min_value=0, max_value=10))
def test_dependants_never_increase_tax(base_salary, children):
    single = calculator.calculate(PayrollInput(base_salary=base_salary))
    family = calculator.calculate(PayrollInput(
        base_salary=base_salary,
        marital_status=MaritalStatus.MARRIED,
        children_count=children,
    ))

    assert family.net_income_tax <= single.net_income_tax
    assert family.net_salary >= single.net_salary


@settings(max_examples=100, deadline=None)
@given(payroll_inputs())
def test_deterministic(payroll_input):
    assert calculator.calculate(payroll_input) == calculator.calculate(payroll_input)
