"""
Payroll -- Value objects for the Moroccan payroll calculation.

Responsibility:
    Defines the calculation request (``PayrollInput``), its resolved form
    with every default applied (``ResolvedPayrollInput``), the statutory
    rate table (``PayrollRates``) and the immutable calculation output
    (``PayrollResult``).

Architecture position:
    Kernel > Domain -- pure, zero I/O. Consumed by
    ``payroll_engines.calculation`` and by the document workflow, which
    denormalizes a ``PayrollSummary`` onto each document.

Invariants enforced:
    - All money is ``Decimal``; floats are converted through ``str`` so
      0.1 stays 0.1.
    - Rate tables are validated at construction: seniority thresholds are
      strictly descending and end at 0 months; tax brackets start at 0, are
      contiguous and the last one is open-ended.
    - ``resolve_payroll_input`` is the single place where optional fields
      receive their defaults.

Failure modes:
    - InvalidRateTableError for malformed seniority / tax tables.
    - InvalidPayrollInputError from ``require_valid_payroll_input``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from payroll_kernel.exceptions import (
    InvalidPayrollInputError,
    InvalidRateTableError,
)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric value to Decimal (``None`` becomes zero)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(amount: Decimal) -> Decimal:
    """Round a money amount to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class MaritalStatus(str, Enum):
    """Marital status as declared on the employee record."""

    SINGLE = "single"
    MARRIED = "married"
    DIVORCED = "divorced"
    WIDOWED = "widowed"


# =============================================================================
# Statutory rate tables
# =============================================================================


@dataclass(frozen=True)
class SeniorityBracket:
    """Seniority bonus rate applying from ``min_months`` of service."""

    min_months: int
    rate: Decimal


@dataclass(frozen=True)
class TaxBracket:
    """
    One annual income tax bracket.

    ``upper`` is inclusive; ``None`` marks the open-ended top bracket.
    Tax for a base in this bracket is ``base * rate - deduction``.
    """

    lower: Decimal
    upper: Decimal | None
    rate: Decimal
    deduction: Decimal

    def contains(self, annual_base: Decimal) -> bool:
        return self.upper is None or annual_base <= self.upper


DEFAULT_SENIORITY_BRACKETS: tuple[SeniorityBracket, ...] = (
    SeniorityBracket(301, Decimal("0.25")),
    SeniorityBracket(241, Decimal("0.20")),
    SeniorityBracket(145, Decimal("0.15")),
    SeniorityBracket(61, Decimal("0.10")),
    SeniorityBracket(25, Decimal("0.05")),
    SeniorityBracket(0, Decimal("0")),
)

DEFAULT_TAX_BRACKETS: tuple[TaxBracket, ...] = (
    TaxBracket(Decimal("0"), Decimal("30000"), Decimal("0"), Decimal("0")),
    TaxBracket(Decimal("30000"), Decimal("50000"), Decimal("0.10"), Decimal("3000")),
    TaxBracket(Decimal("50000"), Decimal("60000"), Decimal("0.20"), Decimal("8000")),
    TaxBracket(Decimal("60000"), Decimal("80000"), Decimal("0.30"), Decimal("14000")),
    TaxBracket(Decimal("80000"), Decimal("180000"), Decimal("0.34"), Decimal("17200")),
    TaxBracket(Decimal("180000"), None, Decimal("0.38"), Decimal("24400")),
)


@dataclass(frozen=True)
class PayrollRates:
    """
    Statutory rates and ceilings used by the calculator.

    Defaults are the Moroccan rates in force for the CNSS / AMO / IR regime.
    Overridable from YAML through ``payroll_config.loader.parse_rates``.
    """

    cnss_employee_rate: Decimal = Decimal("0.0448")
    cnss_ceiling: Decimal = Decimal("6000")
    amo_employee_rate: Decimal = Decimal("0.0226")
    cnss_employer_rate: Decimal = Decimal("0.08")
    amo_employer_rate: Decimal = Decimal("0.0185")
    training_tax_rate: Decimal = Decimal("0.016")
    professional_expense_rate: Decimal = Decimal("0.20")
    professional_expense_annual_cap: Decimal = Decimal("30000")
    family_charge_per_dependant: Decimal = Decimal("30")
    max_dependants: int = 6
    currency: str = "MAD"
    currency_symbol: str = "DH"
    seniority_brackets: tuple[SeniorityBracket, ...] = DEFAULT_SENIORITY_BRACKETS
    tax_brackets: tuple[TaxBracket, ...] = DEFAULT_TAX_BRACKETS

    def __post_init__(self) -> None:
        _validate_seniority_brackets(self.seniority_brackets)
        _validate_tax_brackets(self.tax_brackets)


def _validate_seniority_brackets(brackets: tuple[SeniorityBracket, ...]) -> None:
    if not brackets:
        raise InvalidRateTableError("seniority", "table is empty")
    thresholds = [b.min_months for b in brackets]
    if any(a <= b for a, b in zip(thresholds, thresholds[1:])):
        raise InvalidRateTableError(
            "seniority", "thresholds must be strictly descending"
        )
    if thresholds[-1] != 0:
        raise InvalidRateTableError(
            "seniority", "last threshold must be 0 months"
        )


def _validate_tax_brackets(brackets: tuple[TaxBracket, ...]) -> None:
    if not brackets:
        raise InvalidRateTableError("income tax", "table is empty")
    if brackets[0].lower != ZERO:
        raise InvalidRateTableError("income tax", "first bracket must start at 0")
    for current, following in zip(brackets, brackets[1:]):
        if current.upper is None:
            raise InvalidRateTableError(
                "income tax", "only the last bracket may be open-ended"
            )
        if following.lower != current.upper:
            raise InvalidRateTableError(
                "income tax",
                f"gap or overlap between {current.upper} and {following.lower}",
            )
    if brackets[-1].upper is not None:
        raise InvalidRateTableError("income tax", "last bracket must be open-ended")


DEFAULT_RATES = PayrollRates()


# =============================================================================
# Input
# =============================================================================


@dataclass(frozen=True)
class PayrollInput:
    """
    Per-calculation request as received from the surrounding application.

    Optional fields are ``None`` when the caller did not supply them; they
    are defaulted once by ``resolve_payroll_input``.
    """

    base_salary: Decimal
    seniority_months: int | None = None
    taxable_bonuses: Decimal | None = None
    non_taxable_bonuses: Decimal | None = None
    marital_status: MaritalStatus | None = None
    children_count: int | None = None
    cimr_rate: Decimal | None = None
    insurance_rate: Decimal | None = None
    other_deductions: Decimal | None = None
    overtime_hours: Decimal | None = None
    overtime_rate: Decimal | None = None


@dataclass(frozen=True)
class ResolvedPayrollInput:
    """``PayrollInput`` with every default applied and all numbers as Decimal."""

    base_salary: Decimal
    seniority_months: int
    taxable_bonuses: Decimal
    non_taxable_bonuses: Decimal
    marital_status: MaritalStatus
    children_count: int
    cimr_rate: Decimal
    insurance_rate: Decimal
    other_deductions: Decimal
    overtime_hours: Decimal
    overtime_rate: Decimal

    @property
    def overtime_amount(self) -> Decimal:
        return self.overtime_hours * self.overtime_rate


def resolve_payroll_input(payroll_input: PayrollInput) -> ResolvedPayrollInput:
    """Apply defaults: absent amounts and rates are zero, status is SINGLE."""
    status = payroll_input.marital_status
    return ResolvedPayrollInput(
        base_salary=to_decimal(payroll_input.base_salary),
        seniority_months=int(payroll_input.seniority_months or 0),
        taxable_bonuses=to_decimal(payroll_input.taxable_bonuses),
        non_taxable_bonuses=to_decimal(payroll_input.non_taxable_bonuses),
        marital_status=MaritalStatus(status) if status else MaritalStatus.SINGLE,
        children_count=int(payroll_input.children_count or 0),
        cimr_rate=to_decimal(payroll_input.cimr_rate),
        insurance_rate=to_decimal(payroll_input.insurance_rate),
        other_deductions=to_decimal(payroll_input.other_deductions),
        overtime_hours=to_decimal(payroll_input.overtime_hours),
        overtime_rate=to_decimal(payroll_input.overtime_rate),
    )


_RATE_FIELDS = frozenset({"cimr_rate", "insurance_rate"})

_MONETARY_FIELDS = (
    "base_salary",
    "taxable_bonuses",
    "non_taxable_bonuses",
    "cimr_rate",
    "insurance_rate",
    "other_deductions",
    "overtime_hours",
    "overtime_rate",
)


def validate_payroll_input(payroll_input: PayrollInput) -> tuple[str, ...]:
    """
    Check the upstream contract of a calculation request.

    Returns:
        Field-level violation messages; empty when the input is valid.
    """
    violations: list[str] = []
    if payroll_input.base_salary is None:
        violations.append("base_salary: required")
    for name in _MONETARY_FIELDS:
        raw = getattr(payroll_input, name)
        if raw is None:
            continue
        if isinstance(raw, float) and not math.isfinite(raw):
            violations.append(f"{name}: must be finite")
            continue
        try:
            value = to_decimal(raw)
        except (ArithmeticError, ValueError, TypeError):
            violations.append(f"{name}: not a number ({raw!r})")
            continue
        if not value.is_finite():
            violations.append(f"{name}: must be finite")
        elif value < 0:
            violations.append(f"{name}: must be >= 0 (got {value})")
        elif name in _RATE_FIELDS and value > 1:
            violations.append(f"{name}: must be a fraction <= 1 (got {value})")
    for name in ("seniority_months", "children_count"):
        raw = getattr(payroll_input, name)
        if raw is not None and raw < 0:
            violations.append(f"{name}: must be >= 0 (got {raw})")
    if payroll_input.marital_status is not None:
        try:
            MaritalStatus(payroll_input.marital_status)
        except ValueError:
            violations.append(
                f"marital_status: unknown value {payroll_input.marital_status!r}"
            )
    return tuple(violations)


def require_valid_payroll_input(payroll_input: PayrollInput) -> None:
    """Raise InvalidPayrollInputError when the request breaks its contract."""
    violations = validate_payroll_input(payroll_input)
    if violations:
        raise InvalidPayrollInputError(violations)


# =============================================================================
# Output
# =============================================================================


@dataclass(frozen=True)
class PayrollSummary:
    """Gross / net / deductions snapshot denormalized onto a document."""

    gross_salary: Decimal
    net_salary: Decimal
    total_deductions: Decimal
    currency: str = "MAD"


def _format_rate(rate: Decimal) -> str:
    percent = (rate * 100).normalize()
    return f"{percent:f}%"


@dataclass(frozen=True)
class PayrollResult:
    """
    Full monthly payroll breakdown for one employee.

    Money fields are rounded to cents; ``net_salary`` is derived from the
    rounded components so the net identity holds exactly. ``calculated_at``
    does not take part in equality: identical inputs give equal results.
    """

    base_salary: Decimal
    seniority_rate: Decimal
    seniority_bonus: Decimal
    overtime_amount: Decimal
    taxable_bonuses: Decimal
    non_taxable_bonuses: Decimal
    gross_taxable_salary: Decimal
    gross_global_salary: Decimal
    employee_cnss: Decimal
    employee_amo: Decimal
    employee_cimr: Decimal
    employee_insurance: Decimal
    professional_expense_rate: Decimal
    professional_expenses: Decimal
    taxable_net_salary: Decimal
    annual_taxable_base: Decimal
    gross_income_tax: Decimal
    dependants_count: int
    family_charge_deduction: Decimal
    net_income_tax: Decimal
    other_deductions: Decimal
    net_salary: Decimal
    employer_cnss: Decimal
    employer_amo: Decimal
    employer_training_tax: Decimal
    employer_total: Decimal
    currency: str = "MAD"
    calculated_at: datetime | None = field(default=None, compare=False)

    @property
    def total_social_contributions(self) -> Decimal:
        return (
            self.employee_cnss
            + self.employee_amo
            + self.employee_cimr
            + self.employee_insurance
        )

    @property
    def total_employee_deductions(self) -> Decimal:
        """Everything withheld from the global gross to reach the net."""
        return (
            self.total_social_contributions
            + self.net_income_tax
            + self.other_deductions
        )

    @property
    def total_employer_cost(self) -> Decimal:
        return self.gross_global_salary + self.employer_total

    def summary(self) -> PayrollSummary:
        return PayrollSummary(
            gross_salary=self.gross_global_salary,
            net_salary=self.net_salary,
            total_deductions=self.total_employee_deductions,
            currency=self.currency,
        )

    def to_payslip(self) -> dict[str, Any]:
        """Presentation view: 2-decimal strings and percentage labels."""
        money = {
            "salaire_base": self.base_salary,
            "prime_anciennete": self.seniority_bonus,
            "heures_supplementaires": self.overtime_amount,
            "primes_imposables": self.taxable_bonuses,
            "primes_non_imposables": self.non_taxable_bonuses,
            "salaire_brut_imposable": self.gross_taxable_salary,
            "salaire_brut_global": self.gross_global_salary,
            "cnss_salarie": self.employee_cnss,
            "amo_salarie": self.employee_amo,
            "cimr_salarie": self.employee_cimr,
            "assurance_salarie": self.employee_insurance,
            "frais_professionnels": self.professional_expenses,
            "salaire_net_imposable": self.taxable_net_salary,
            "ir_brut": self.gross_income_tax,
            "charges_familiales": self.family_charge_deduction,
            "ir_net": self.net_income_tax,
            "autres_retenues": self.other_deductions,
            "total_retenues": self.total_employee_deductions,
            "salaire_net": self.net_salary,
            "cnss_patronale": self.employer_cnss,
            "amo_patronale": self.employer_amo,
            "taxe_formation": self.employer_training_tax,
            "total_patronal": self.employer_total,
        }
        payslip: dict[str, Any] = {
            key: f"{quantize_money(value):.2f}" for key, value in money.items()
        }
        payslip["taux_anciennete"] = _format_rate(self.seniority_rate)
        payslip["taux_frais_professionnels"] = _format_rate(
            self.professional_expense_rate
        )
        payslip["personnes_a_charge"] = self.dependants_count
        payslip["devise"] = self.currency
        return payslip
