"""
payroll_engines.statistics -- Aggregates over the status audit trail.

Pure folding of ``StatusChangeAuditEntry`` sequences into
``TransitionStatistics``. The error rate is the share of transitions that
carried error details (GENERATION_FAILED entries).
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from payroll_kernel.domain.audit import StatusChangeAuditEntry
from payroll_kernel.domain.transition import TransitionStatistics


def compute_transition_statistics(
    entries: Iterable[StatusChangeAuditEntry],
) -> TransitionStatistics:
    by_pair: Counter[str] = Counter()
    by_trigger: Counter[str] = Counter()
    by_user: Counter[str] = Counter()
    total = 0
    timed = 0
    total_ms = 0
    errors = 0
    critical = 0

    for entry in entries:
        total += 1
        by_pair[entry.status_pair] += 1
        by_trigger[entry.trigger.value] += 1
        by_user[entry.changed_by] += 1
        if entry.processing_time_ms is not None:
            timed += 1
            total_ms += entry.processing_time_ms
        if entry.error_details is not None:
            errors += 1
        if entry.is_critical:
            critical += 1

    return TransitionStatistics(
        total_transitions=total,
        transitions_by_status_pair=dict(by_pair),
        transitions_by_trigger=dict(by_trigger),
        transitions_by_user=dict(by_user),
        average_processing_time_ms=(total_ms / timed) if timed else 0.0,
        error_rate=(errors / total) if total else 0.0,
        critical_transitions=critical,
    )
