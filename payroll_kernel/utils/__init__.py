"""Shared deterministic helpers for the payroll kernel."""
