"""
payroll_engines.calculation -- Moroccan payroll calculation engine.

Responsibility:
    Turn one ``PayrollInput`` into a full monthly ``PayrollResult``:
    seniority bonus, gross pay, employee CNSS / AMO / CIMR / insurance,
    professional-expense allowance, annual income tax (IR) with family
    charges, net salary and employer contributions.

Architecture position:
    Engines -- pure calculation layer, zero I/O. Imports only
    payroll_kernel domain types. Safe to call concurrently; holds no
    mutable state.

Invariants enforced:
    - Total function over well-formed input: no exception for any resolved
      input. Callers validate upstream with
      ``payroll_kernel.domain.payroll.require_valid_payroll_input``.
    - Deterministic: identical input and rates give an equal result.
    - Professional expenses and IR are computed on an annual basis
      (monthly x 12) and brought back to the month (/ 12).
    - Intermediate amounts keep full Decimal precision; result amounts are
      rounded to cents and the net salary is derived from the rounded parts:
      net = gross_global - cnss - amo - cimr - insurance - net_ir - other.
    - Monthly IR and net IR are floored at 0.

Usage:
    from payroll_engines.calculation import PayrollCalculator
    from payroll_kernel.domain.payroll import PayrollInput
    from decimal import Decimal

    result = PayrollCalculator().calculate(PayrollInput(base_salary=Decimal("15000")))
    result.net_salary       # Decimal('11782.19')
"""

from __future__ import annotations

from decimal import Decimal

from payroll_kernel.domain.clock import Clock
from payroll_kernel.domain.payroll import (
    DEFAULT_RATES,
    ZERO,
    MaritalStatus,
    PayrollInput,
    PayrollRates,
    PayrollResult,
    ResolvedPayrollInput,
    SeniorityBracket,
    TaxBracket,
    quantize_money,
    resolve_payroll_input,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.calculation")

MONTHS_PER_YEAR = Decimal("12")


def seniority_rate_for(
    months: int, brackets: tuple[SeniorityBracket, ...]
) -> Decimal:
    """Rate of the first bracket (descending thresholds) the tenure reaches."""
    for bracket in brackets:
        if months >= bracket.min_months:
            return bracket.rate
    return ZERO


def find_tax_bracket(
    annual_base: Decimal, brackets: tuple[TaxBracket, ...]
) -> TaxBracket:
    """First bracket whose inclusive upper bound covers the base."""
    for bracket in brackets:
        if bracket.contains(annual_base):
            return bracket
    # Tables are validated to end open-ended
    return brackets[-1]


def annual_income_tax(
    annual_base: Decimal, brackets: tuple[TaxBracket, ...]
) -> Decimal:
    """Annual IR: ``base * rate - deduction`` of the matching bracket, >= 0."""
    bracket = find_tax_bracket(annual_base, brackets)
    return max(ZERO, annual_base * bracket.rate - bracket.deduction)


def dependants_count(
    marital_status: MaritalStatus, children_count: int, max_dependants: int
) -> int:
    """Spouse (when married) plus children, capped at ``max_dependants``."""
    spouse = 1 if marital_status == MaritalStatus.MARRIED else 0
    children = max(0, min(children_count, max_dependants - spouse))
    return spouse + children


def family_charge_deduction(
    marital_status: MaritalStatus,
    children_count: int,
    rates: PayrollRates = DEFAULT_RATES,
) -> Decimal:
    """Monthly IR reduction for family charges."""
    count = dependants_count(marital_status, children_count, rates.max_dependants)
    return rates.family_charge_per_dependant * count


def professional_expense_allowance(
    gross_taxable: Decimal, rates: PayrollRates = DEFAULT_RATES
) -> Decimal:
    """Monthly share of the annually capped professional-expense allowance."""
    annual_gross = gross_taxable * MONTHS_PER_YEAR
    annual_allowance = min(
        annual_gross * rates.professional_expense_rate,
        rates.professional_expense_annual_cap,
    )
    return annual_allowance / MONTHS_PER_YEAR


class PayrollCalculator:
    """
    Stateless calculator bound to one rate table.

    The optional clock only stamps ``calculated_at``; it never influences
    amounts.
    """

    def __init__(
        self,
        rates: PayrollRates = DEFAULT_RATES,
        clock: Clock | None = None,
    ) -> None:
        self._rates = rates
        self._clock = clock

    @property
    def rates(self) -> PayrollRates:
        return self._rates

    def calculate(self, payroll_input: PayrollInput) -> PayrollResult:
        """Compute the monthly payroll for one employee."""
        return self.calculate_resolved(resolve_payroll_input(payroll_input))

    def calculate_resolved(self, data: ResolvedPayrollInput) -> PayrollResult:
        rates = self._rates

        # 1. Seniority
        seniority_rate = seniority_rate_for(
            data.seniority_months, rates.seniority_brackets
        )
        seniority_bonus = data.base_salary * seniority_rate

        # 2. Gross
        overtime_amount = data.overtime_amount
        gross_taxable = (
            data.base_salary
            + seniority_bonus
            + data.taxable_bonuses
            + overtime_amount
        )
        gross_global = gross_taxable + data.non_taxable_bonuses

        # 3. Employee contributions
        cnss_base = min(gross_taxable, rates.cnss_ceiling)
        employee_cnss = cnss_base * rates.cnss_employee_rate
        employee_amo = gross_taxable * rates.amo_employee_rate
        employee_cimr = gross_taxable * data.cimr_rate
        employee_insurance = gross_taxable * data.insurance_rate
        contributions = (
            employee_cnss + employee_amo + employee_cimr + employee_insurance
        )

        # 4. Professional expenses (annual cap)
        allowance = professional_expense_allowance(gross_taxable, rates)

        # 5. IR on the annualized base
        taxable_net = gross_taxable - contributions - allowance
        annual_base = taxable_net * MONTHS_PER_YEAR
        monthly_ir = max(
            ZERO, annual_income_tax(annual_base, rates.tax_brackets) / MONTHS_PER_YEAR
        )

        # 6. Family charges
        dependants = dependants_count(
            data.marital_status, data.children_count, rates.max_dependants
        )
        family_deduction = rates.family_charge_per_dependant * dependants
        net_ir = max(ZERO, monthly_ir - family_deduction)

        # 7. Net from the rounded components
        gross_global_q = quantize_money(gross_global)
        cnss_q = quantize_money(employee_cnss)
        amo_q = quantize_money(employee_amo)
        cimr_q = quantize_money(employee_cimr)
        insurance_q = quantize_money(employee_insurance)
        net_ir_q = quantize_money(net_ir)
        other_q = quantize_money(data.other_deductions)
        net_salary = (
            gross_global_q - cnss_q - amo_q - cimr_q - insurance_q - net_ir_q - other_q
        )

        # 8. Employer side
        employer_cnss = quantize_money(cnss_base * rates.cnss_employer_rate)
        employer_amo = quantize_money(gross_taxable * rates.amo_employer_rate)
        employer_training = quantize_money(gross_taxable * rates.training_tax_rate)

        result = PayrollResult(
            base_salary=quantize_money(data.base_salary),
            seniority_rate=seniority_rate,
            seniority_bonus=quantize_money(seniority_bonus),
            overtime_amount=quantize_money(overtime_amount),
            taxable_bonuses=quantize_money(data.taxable_bonuses),
            non_taxable_bonuses=quantize_money(data.non_taxable_bonuses),
            gross_taxable_salary=quantize_money(gross_taxable),
            gross_global_salary=gross_global_q,
            employee_cnss=cnss_q,
            employee_amo=amo_q,
            employee_cimr=cimr_q,
            employee_insurance=insurance_q,
            professional_expense_rate=rates.professional_expense_rate,
            professional_expenses=quantize_money(allowance),
            taxable_net_salary=quantize_money(taxable_net),
            annual_taxable_base=quantize_money(annual_base),
            gross_income_tax=quantize_money(monthly_ir),
            dependants_count=dependants,
            family_charge_deduction=quantize_money(family_deduction),
            net_income_tax=net_ir_q,
            other_deductions=other_q,
            net_salary=net_salary,
            employer_cnss=employer_cnss,
            employer_amo=employer_amo,
            employer_training_tax=employer_training,
            employer_total=employer_cnss + employer_amo + employer_training,
            currency=rates.currency,
            calculated_at=self._clock.now() if self._clock else None,
        )

        logger.debug("payroll_calculated", extra={
            "gross_global_salary": str(result.gross_global_salary),
            "net_income_tax": str(result.net_income_tax),
            "net_salary": str(result.net_salary),
            "seniority_rate": str(seniority_rate),
            "dependants_count": dependants,
        })
        return result
