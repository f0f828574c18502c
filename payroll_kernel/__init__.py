"""
Payroll Kernel

Moroccan payroll calculation and payslip document lifecycle core:
- Deterministic CNSS / AMO / IR calculation (Decimal money)
- Static document status transition table
- Append-only, checksummed status change audit trail
- Structured logging and typed exceptions
"""

__version__ = "0.1.0"
