"""
payroll_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only place that reads configuration
    files or environment variables. Services receive the resulting
    ``AppConfig`` (or its ``WorkflowConfig`` / ``PayrollRates`` parts)
    through their constructors.

Environment:
    PAYROLL_WORKFLOW_CONFIG -- path of the YAML file to load
                               (defaults to the packaged defaults.yaml).
    PAYROLL_ENV             -- overrides ``workflow.environment``.

Audit relevance:
    Every successful call emits a ``PAYROLL_CONFIG_TRACE`` log entry with the
    source path and checksum so each document transition can be tied back
    to the configuration that governed it.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from payroll_config.loader import compute_checksum, load_config, parse_config
from payroll_config.schema import AppConfig, WorkflowConfig
from payroll_kernel.logging_config import get_logger

__all__ = [
    "AppConfig",
    "WorkflowConfig",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "parse_config",
]

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_PATH_ENV = "PAYROLL_WORKFLOW_CONFIG"
ENVIRONMENT_ENV = "PAYROLL_ENV"


def get_active_config(config_path: Path | None = None) -> AppConfig:
    """
    Load the active configuration.

    Raises:
        FileNotFoundError: if the configured file does not exist.
        ConfigurationError: if the file is malformed.
    """
    env_path = os.environ.get(CONFIG_PATH_ENV)
    path = config_path or (Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
    config = load_config(path)

    environment = os.environ.get(ENVIRONMENT_ENV)
    if environment:
        config = replace(
            config, workflow=replace(config.workflow, environment=environment)
        )

    _logger.info(
        "PAYROLL_CONFIG_TRACE",
        extra={
            "trace_type": "PAYROLL_CONFIG_TRACE",
            "config_source": config.source,
            "checksum": config.checksum,
            "environment": config.workflow.environment,
            "batch_size": config.workflow.batch_size,
            "max_concurrent_transitions": config.workflow.max_concurrent_transitions,
        },
    )
    return config
