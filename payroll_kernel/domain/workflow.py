"""
Workflow -- Static document status transition table.

Responsibility:
    Declares every legal ``(from_status, to_status)`` edge of the payroll
    document lifecycle together with its trigger, named preconditions,
    approval requirement, side effects and timeout. Nothing else in the
    system decides which jumps are legal.

Architecture position:
    Kernel > Domain -- pure data, zero I/O. Read by the status service and
    by reporting code; conditions are evaluated by
    ``payroll_services.conditions.ConditionExecutor`` and side effects by
    ``payroll_services.side_effects.SideEffectExecutor``.

Invariants enforced:
    - At most one transition per ``(from, to)`` pair (checked at import).
    - ``ARCHIVED`` is terminal.
    - ``NOTIFICATION_PRIORITY`` and ``STATUS_LABELS`` cover every status
      (checked at import).
    - Every side effect belongs to exactly one phase: PRE effects run inside
      the transition's unit of work before the write, POST effects after
      commit. Each fires at most once per transition.

    CALCULATION_PENDING -> PREVIEW_REQUESTED -> PREVIEW_GENERATED
        -> (PENDING_APPROVAL ->) APPROVED_FOR_GENERATION -> GENERATING
        -> GENERATED -> APPROVED -> SENT -> ARCHIVED
    with GENERATION_FAILED reachable from PREVIEW_REQUESTED / GENERATING.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from payroll_kernel.domain.document import (
    DocumentStatus,
    NotificationPriority,
    TransitionTrigger,
)


@dataclass(frozen=True)
class Condition:
    """Named boolean precondition attached to a transition."""

    name: str
    description: str = ""


class SideEffectPhase(str, Enum):
    PRE = "PRE"
    POST = "POST"


class SideEffect(str, Enum):
    """Side effects a transition may trigger, each bound to one phase."""

    CACHE_PREVIEW_PDF = "cache_preview_pdf"
    SET_PREVIEW_EXPIRY = "set_preview_expiry"
    CLEAR_PREVIEW_CACHE = "clear_preview_cache"
    QUEUE_GENERATION_JOB = "queue_generation_job"
    SAVE_FINAL_DOCUMENT = "save_final_document"
    LOG_ERROR = "log_error"
    NOTIFY_ADMIN = "notify_admin"
    RETRY_GENERATION = "retry_generation"
    NOTIFY_STAKEHOLDERS = "notify_stakeholders"
    SEND_TO_EMPLOYEE = "send_to_employee"
    LOG_DISTRIBUTION = "log_distribution"

    @property
    def phase(self) -> SideEffectPhase:
        return _SIDE_EFFECT_PHASES[self]


_SIDE_EFFECT_PHASES: dict[SideEffect, SideEffectPhase] = {
    SideEffect.CACHE_PREVIEW_PDF: SideEffectPhase.PRE,
    SideEffect.SET_PREVIEW_EXPIRY: SideEffectPhase.PRE,
    SideEffect.CLEAR_PREVIEW_CACHE: SideEffectPhase.PRE,
    SideEffect.QUEUE_GENERATION_JOB: SideEffectPhase.PRE,
    SideEffect.SAVE_FINAL_DOCUMENT: SideEffectPhase.PRE,
    SideEffect.LOG_ERROR: SideEffectPhase.PRE,
    SideEffect.NOTIFY_ADMIN: SideEffectPhase.POST,
    SideEffect.RETRY_GENERATION: SideEffectPhase.POST,
    SideEffect.NOTIFY_STAKEHOLDERS: SideEffectPhase.POST,
    SideEffect.SEND_TO_EMPLOYEE: SideEffectPhase.POST,
    SideEffect.LOG_DISTRIBUTION: SideEffectPhase.POST,
}


# Named conditions

EMPLOYEE_DATA_VALID = Condition(
    "employee_data_valid", "Employee identity fields are present"
)
PAYROLL_CALCULATION_COMPLETE = Condition(
    "payroll_calculation_complete", "A consistent payroll summary is attached"
)
PREVIEW_VIEWED = Condition("preview_viewed", "The actor has opened the preview")
USER_HAS_APPROVAL_RIGHTS = Condition(
    "user_has_approval_rights", "Actor may approve generation directly"
)
APPROVER_AUTHORIZED = Condition(
    "approver_authorized", "Actor is an authorized approver"
)
DOCUMENT_QUALITY_VERIFIED = Condition(
    "document_quality_verified", "Generated file is stored with a checksum"
)
USER_HAS_ARCHIVE_RIGHTS = Condition(
    "user_has_archive_rights", "Actor may archive documents"
)
ERROR_RESOLVED = Condition(
    "error_resolved", "The cause of the generation failure was fixed"
)
PERMANENT_FAILURE_CONFIRMED = Condition(
    "permanent_failure_confirmed", "The failure was confirmed as permanent"
)


@dataclass(frozen=True)
class StatusTransition:
    """One legal edge of the document lifecycle."""

    from_status: DocumentStatus
    to_status: DocumentStatus
    trigger: TransitionTrigger
    conditions: tuple[Condition, ...] = ()
    side_effects: tuple[SideEffect, ...] = ()
    requires_approval: bool = False
    timeout_seconds: int | None = None

    def side_effects_for(self, phase: SideEffectPhase) -> tuple[SideEffect, ...]:
        return tuple(e for e in self.side_effects if e.phase == phase)

    @property
    def condition_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.conditions)


_S = DocumentStatus
_T = TransitionTrigger
_E = SideEffect

STATUS_TRANSITIONS: tuple[StatusTransition, ...] = (
    StatusTransition(
        _S.CALCULATION_PENDING, _S.PREVIEW_REQUESTED, _T.USER_ACTION,
        conditions=(EMPLOYEE_DATA_VALID, PAYROLL_CALCULATION_COMPLETE),
    ),
    StatusTransition(
        _S.PREVIEW_REQUESTED, _S.PREVIEW_GENERATED, _T.SYSTEM_EVENT,
        side_effects=(_E.CACHE_PREVIEW_PDF, _E.SET_PREVIEW_EXPIRY),
    ),
    StatusTransition(
        _S.PREVIEW_REQUESTED, _S.GENERATION_FAILED, _T.ERROR_EVENT,
        side_effects=(_E.LOG_ERROR, _E.NOTIFY_ADMIN),
    ),
    StatusTransition(
        _S.PREVIEW_GENERATED, _S.PENDING_APPROVAL, _T.USER_ACTION,
        conditions=(PREVIEW_VIEWED,),
    ),
    StatusTransition(
        _S.PREVIEW_GENERATED, _S.APPROVED_FOR_GENERATION, _T.USER_ACTION,
        conditions=(USER_HAS_APPROVAL_RIGHTS,),
    ),
    StatusTransition(
        _S.PENDING_APPROVAL, _S.APPROVED_FOR_GENERATION, _T.USER_ACTION,
        conditions=(APPROVER_AUTHORIZED,),
        requires_approval=True,
    ),
    StatusTransition(
        _S.PENDING_APPROVAL, _S.PREVIEW_REQUESTED, _T.USER_ACTION,
        side_effects=(_E.CLEAR_PREVIEW_CACHE,),
    ),
    StatusTransition(
        _S.APPROVED_FOR_GENERATION, _S.GENERATING, _T.SYSTEM_EVENT,
        side_effects=(_E.QUEUE_GENERATION_JOB, _E.CLEAR_PREVIEW_CACHE),
    ),
    StatusTransition(
        _S.GENERATING, _S.GENERATED, _T.SYSTEM_EVENT,
        side_effects=(_E.SAVE_FINAL_DOCUMENT, _E.NOTIFY_STAKEHOLDERS),
    ),
    StatusTransition(
        _S.GENERATING, _S.GENERATION_FAILED, _T.ERROR_EVENT,
        side_effects=(_E.LOG_ERROR, _E.RETRY_GENERATION, _E.NOTIFY_ADMIN),
        timeout_seconds=30,
    ),
    StatusTransition(
        _S.GENERATED, _S.APPROVED, _T.USER_ACTION,
        conditions=(DOCUMENT_QUALITY_VERIFIED,),
        requires_approval=True,
    ),
    StatusTransition(
        _S.GENERATED, _S.ARCHIVED, _T.USER_ACTION,
        conditions=(USER_HAS_ARCHIVE_RIGHTS,),
    ),
    StatusTransition(
        _S.APPROVED, _S.SENT, _T.USER_ACTION,
        side_effects=(_E.SEND_TO_EMPLOYEE, _E.LOG_DISTRIBUTION),
    ),
    StatusTransition(_S.APPROVED, _S.ARCHIVED, _T.USER_ACTION),
    StatusTransition(
        _S.SENT, _S.ARCHIVED, _T.SCHEDULED_EVENT,
        timeout_seconds=30 * 24 * 60 * 60,
    ),
    StatusTransition(
        _S.GENERATION_FAILED, _S.PREVIEW_REQUESTED, _T.USER_ACTION,
        conditions=(ERROR_RESOLVED,),
    ),
    StatusTransition(
        _S.GENERATION_FAILED, _S.ARCHIVED, _T.USER_ACTION,
        conditions=(PERMANENT_FAILURE_CONFIRMED,),
    ),
)


def _index_transitions(
    transitions: tuple[StatusTransition, ...],
) -> Mapping[tuple[DocumentStatus, DocumentStatus], StatusTransition]:
    index: dict[tuple[DocumentStatus, DocumentStatus], StatusTransition] = {}
    for t in transitions:
        key = (t.from_status, t.to_status)
        if key in index:
            raise ValueError(f"Duplicate transition {key[0].value} -> {key[1].value}")
        index[key] = t
    return MappingProxyType(index)


_TRANSITION_INDEX = _index_transitions(STATUS_TRANSITIONS)

# Side effects fired after commit because of the status reached, whatever
# edge led there.
STATUS_POST_EFFECTS: Mapping[DocumentStatus, tuple[SideEffect, ...]] = MappingProxyType({
    DocumentStatus.GENERATED: (SideEffect.NOTIFY_STAKEHOLDERS,),
    DocumentStatus.SENT: (SideEffect.LOG_DISTRIBUTION,),
})

NOTIFICATION_PRIORITY: Mapping[DocumentStatus, NotificationPriority] = MappingProxyType({
    DocumentStatus.CALCULATION_PENDING: NotificationPriority.LOW,
    DocumentStatus.PREVIEW_REQUESTED: NotificationPriority.LOW,
    DocumentStatus.PREVIEW_GENERATED: NotificationPriority.LOW,
    DocumentStatus.PENDING_APPROVAL: NotificationPriority.NORMAL,
    DocumentStatus.APPROVED_FOR_GENERATION: NotificationPriority.LOW,
    DocumentStatus.GENERATING: NotificationPriority.LOW,
    DocumentStatus.GENERATED: NotificationPriority.NORMAL,
    DocumentStatus.GENERATION_FAILED: NotificationPriority.URGENT,
    DocumentStatus.APPROVED: NotificationPriority.HIGH,
    DocumentStatus.SENT: NotificationPriority.HIGH,
    DocumentStatus.ARCHIVED: NotificationPriority.LOW,
})

STATUS_LABELS: Mapping[DocumentStatus, str] = MappingProxyType({
    DocumentStatus.CALCULATION_PENDING: "Calcul en attente",
    DocumentStatus.PREVIEW_REQUESTED: "Aperçu demandé",
    DocumentStatus.PREVIEW_GENERATED: "Aperçu généré",
    DocumentStatus.PENDING_APPROVAL: "En attente d'approbation",
    DocumentStatus.APPROVED_FOR_GENERATION: "Approuvé pour génération",
    DocumentStatus.GENERATING: "Génération en cours",
    DocumentStatus.GENERATED: "Généré",
    DocumentStatus.GENERATION_FAILED: "Échec de génération",
    DocumentStatus.APPROVED: "Approuvé",
    DocumentStatus.SENT: "Envoyé",
    DocumentStatus.ARCHIVED: "Archivé",
})

for _table_name, _table in (
    ("NOTIFICATION_PRIORITY", NOTIFICATION_PRIORITY),
    ("STATUS_LABELS", STATUS_LABELS),
):
    _missing = set(DocumentStatus) - set(_table)
    if _missing:
        raise ValueError(
            f"{_table_name} missing statuses: {sorted(s.value for s in _missing)}"
        )

if set(SideEffect) - set(_SIDE_EFFECT_PHASES):
    raise ValueError("Every SideEffect must declare a phase")


def get_status_transition(
    from_status: DocumentStatus, to_status: DocumentStatus
) -> StatusTransition | None:
    """Return the transition for a pair, or None when the jump is illegal."""
    return _TRANSITION_INDEX.get((from_status, to_status))


def is_valid_status_transition(
    from_status: DocumentStatus, to_status: DocumentStatus
) -> bool:
    return (from_status, to_status) in _TRANSITION_INDEX


def get_valid_next_statuses(from_status: DocumentStatus) -> tuple[DocumentStatus, ...]:
    """Statuses reachable in one step, in table order."""
    return tuple(
        t.to_status for t in STATUS_TRANSITIONS if t.from_status == from_status
    )


def post_commit_effects(transition: StatusTransition) -> tuple[SideEffect, ...]:
    """
    POST effects for a transition: declared ones first, then those implied
    by the target status, without duplicates.
    """
    effects = list(transition.side_effects_for(SideEffectPhase.POST))
    for effect in STATUS_POST_EFFECTS.get(transition.to_status, ()):
        if effect not in effects:
            effects.append(effect)
    return tuple(effects)
