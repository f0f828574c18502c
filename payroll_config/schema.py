"""
Configuration schema (``payroll_config.schema``).

Frozen dataclasses describing the runtime configuration of the document
workflow. Statutory payroll rates reuse the kernel's ``PayrollRates`` so
the calculator and the configuration never disagree on field names.

Invariants enforced
-------------------
* Every numeric limit is validated in ``__post_init__`` (ValueError).
* Instances are immutable; a changed configuration is a new object with a
  new checksum.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time

from payroll_kernel.domain.payroll import DEFAULT_RATES, PayrollRates
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.schema")

SEVEN_YEARS_DAYS = 7 * 365


@dataclass(frozen=True)
class WorkflowConfig:
    """Behaviour switches and limits of ``DocumentStatusService``."""

    enable_audit_trail: bool = True
    enable_notifications: bool = True
    enable_business_rules: bool = True
    max_retry_attempts: int = 3
    transition_timeout_seconds: float | None = 30.0
    batch_size: int = 100
    max_concurrent_transitions: int = 10
    audit_retention_days: int = SEVEN_YEARS_DAYS
    preview_expiry_hours: int = 24
    environment: str = "development"
    component_version: str = "1.0.0"
    enforce_working_hours: bool = False
    working_hours_start: time = time(8, 0)
    working_hours_end: time = time(18, 0)
    working_days: frozenset[int] = field(
        default_factory=lambda: frozenset({1, 2, 3, 4, 5})
    )
    timezone: str = "Africa/Casablanca"

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.max_concurrent_transitions <= 0:
            raise ValueError("max_concurrent_transitions must be positive")
        if self.max_retry_attempts < 0:
            raise ValueError("max_retry_attempts cannot be negative")
        if self.transition_timeout_seconds is not None and self.transition_timeout_seconds <= 0:
            raise ValueError("transition_timeout_seconds must be positive or None")
        if self.audit_retention_days <= 0:
            raise ValueError("audit_retention_days must be positive")
        if self.preview_expiry_hours <= 0:
            raise ValueError("preview_expiry_hours must be positive")
        if self.working_hours_start >= self.working_hours_end:
            raise ValueError("working_hours_start must be before working_hours_end")
        if not self.working_days or not self.working_days <= frozenset(range(1, 8)):
            raise ValueError("working_days must be ISO weekdays 1..7")
        logger.debug("workflow_config_initialized", extra={
            "environment": self.environment,
            "batch_size": self.batch_size,
            "max_concurrent_transitions": self.max_concurrent_transitions,
            "enforce_working_hours": self.enforce_working_hours,
        })


@dataclass(frozen=True)
class AppConfig:
    """Complete runtime configuration: workflow behaviour plus payroll rates."""

    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    rates: PayrollRates = DEFAULT_RATES
    source: str = "<defaults>"
    checksum: str = ""
