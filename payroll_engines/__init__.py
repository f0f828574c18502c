"""
Payroll Engines -- pure calculation layer.

Engines take domain values and return domain values. They never touch the
database, the filesystem or the system clock.
"""
