"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``payroll_config.schema`` dataclasses. Runtime callers go through
``payroll_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are rejected; a typo never silently falls back to a default.
* Money and rates are parsed as ``Decimal`` from their string form.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML, unknown keys, invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from datetime import time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import AppConfig, WorkflowConfig
from payroll_kernel.domain.payroll import PayrollRates, SeniorityBracket, TaxBracket
from payroll_kernel.exceptions import ConfigurationError, InvalidRateTableError

_WORKFLOW_FIELDS = frozenset(f.name for f in fields(WorkflowConfig))
_RATE_FIELDS = frozenset(f.name for f in fields(PayrollRates))
_DECIMAL_RATE_FIELDS = frozenset(
    f.name for f in fields(PayrollRates)
    if f.name not in {"max_dependants", "currency", "currency_symbol",
                      "seniority_brackets", "tax_brackets"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse decimal from {value!r}") from exc


def parse_time(value: Any) -> time:
    """Parse ``"HH:MM"`` (or a ``time``) into a ``time``."""
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        return time.fromisoformat(value)
    raise ValueError(f"Cannot parse time from {value!r}")


def _reject_unknown(section: str, data: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"unknown {section} keys: {sorted(unknown)}")


def parse_workflow(data: dict[str, Any]) -> WorkflowConfig:
    """Parse the ``workflow`` section. ``working_hours`` is a nested mapping."""
    data = dict(data)
    hours = data.pop("working_hours", None) or {}
    _reject_unknown("workflow", data, _WORKFLOW_FIELDS)
    _reject_unknown("working_hours", hours, frozenset({"enforce", "start", "end", "days", "timezone"}))

    kwargs: dict[str, Any] = dict(data)
    if "enforce" in hours:
        kwargs["enforce_working_hours"] = bool(hours["enforce"])
    if "start" in hours:
        kwargs["working_hours_start"] = parse_time(hours["start"])
    if "end" in hours:
        kwargs["working_hours_end"] = parse_time(hours["end"])
    if "days" in hours:
        kwargs["working_days"] = frozenset(int(d) for d in hours["days"])
    if "timezone" in hours:
        kwargs["timezone"] = str(hours["timezone"])
    for key in ("working_hours_start", "working_hours_end"):
        if key in kwargs:
            kwargs[key] = parse_time(kwargs[key])
    if "working_days" in kwargs:
        kwargs["working_days"] = frozenset(int(d) for d in kwargs["working_days"])
    return WorkflowConfig(**kwargs)


def parse_seniority_bracket(data: dict[str, Any]) -> SeniorityBracket:
    return SeniorityBracket(
        min_months=int(data["min_months"]),
        rate=parse_decimal(data["rate"]),
    )


def parse_tax_bracket(data: dict[str, Any]) -> TaxBracket:
    upper = data.get("upper")
    return TaxBracket(
        lower=parse_decimal(data["lower"]),
        upper=parse_decimal(upper) if upper is not None else None,
        rate=parse_decimal(data["rate"]),
        deduction=parse_decimal(data.get("deduction", 0)),
    )


def parse_rates(data: dict[str, Any]) -> PayrollRates:
    """Parse the ``payroll_rates`` section; absent keys keep statutory defaults."""
    _reject_unknown("payroll_rates", data, _RATE_FIELDS)
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key in _DECIMAL_RATE_FIELDS:
            kwargs[key] = parse_decimal(value)
        elif key == "max_dependants":
            kwargs[key] = int(value)
        elif key == "seniority_brackets":
            kwargs[key] = tuple(parse_seniority_bracket(b) for b in value)
        elif key == "tax_brackets":
            kwargs[key] = tuple(parse_tax_bracket(b) for b in value)
        else:
            kwargs[key] = str(value)
    return PayrollRates(**kwargs)


def parse_config(data: dict[str, Any], source: str = "<dict>") -> AppConfig:
    """
    Build an ``AppConfig`` from a parsed YAML document.

    Raises:
        ConfigurationError: for unknown keys or invalid values.
    """
    try:
        _reject_unknown("top-level", data, frozenset({"workflow", "payroll_rates"}))
        workflow = parse_workflow(data.get("workflow") or {})
        rates = parse_rates(data.get("payroll_rates") or {})
    except InvalidRateTableError as exc:
        raise ConfigurationError(source, str(exc)) from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(source, str(exc)) from exc
    return AppConfig(
        workflow=workflow,
        rates=rates,
        source=source,
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> AppConfig:
    """Load and parse one YAML configuration file."""
    try:
        data = load_yaml_file(path)
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML node must be a mapping")
    return parse_config(data, source=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 of the canonical JSON serialization of ``data``.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
