"""
payroll_services.side_effects -- Best-effort transition side effects.

Responsibility:
    Maps each ``SideEffect`` to a handler and runs the handlers a transition
    asks for. Failures are logged and reported back; they never abort or
    roll back the transition.

Architecture position:
    Services layer. Default handlers only log; deployments replace them
    with ``register`` (queue a generation job, purge a preview cache, ...).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from payroll_kernel.domain.document import DocumentMetadata, DocumentStatus
from payroll_kernel.domain.transition import TransitionContext
from payroll_kernel.domain.workflow import SideEffect, SideEffectPhase
from payroll_kernel.logging_config import get_logger

logger = get_logger("services.side_effects")


@dataclass(frozen=True)
class SideEffectRequest:
    """Everything a side effect handler may look at."""

    effect: SideEffect
    document: DocumentMetadata
    from_status: DocumentStatus
    to_status: DocumentStatus
    context: TransitionContext


SideEffectHandler = Callable[[SideEffectRequest], None]


@dataclass(frozen=True)
class SideEffectOutcome:
    executed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


def _log_effect(request: SideEffectRequest) -> None:
    logger.info("side_effect_executed", extra={
        "side_effect": request.effect.value,
        "phase": request.effect.phase.value,
        "document_id": request.document.document_id,
        "from_status": request.from_status.value,
        "to_status": request.to_status.value,
    })


def _log_error_effect(request: SideEffectRequest) -> None:
    details = request.context.error_details
    logger.error("document_generation_error", extra={
        "document_id": request.document.document_id,
        "error_type": details.error_type if details else None,
        "error_message": details.message if details else request.context.reason,
        "retryable": details.retryable if details else False,
    })


class SideEffectExecutor:
    """Runs side effect handlers, isolating each failure."""

    def __init__(self) -> None:
        self._handlers: dict[SideEffect, SideEffectHandler] = {
            effect: _log_effect for effect in SideEffect
        }
        self._handlers[SideEffect.LOG_ERROR] = _log_error_effect

    def register(self, effect: SideEffect, handler: SideEffectHandler) -> None:
        """Replace the handler for one side effect."""
        self._handlers[effect] = handler

    def execute(
        self,
        effects: Sequence[SideEffect],
        phase: SideEffectPhase,
        document: DocumentMetadata,
        from_status: DocumentStatus,
        to_status: DocumentStatus,
        context: TransitionContext,
    ) -> SideEffectOutcome:
        executed: list[str] = []
        failed: list[str] = []
        for effect in effects:
            if effect.phase != phase:
                continue
            request = SideEffectRequest(
                effect=effect,
                document=document,
                from_status=from_status,
                to_status=to_status,
                context=context,
            )
            try:
                self._handlers[effect](request)
            except Exception as e:  # noqa: BLE001
                logger.warning("side_effect_failed", extra={
                    "side_effect": effect.value,
                    "phase": phase.value,
                    "document_id": document.document_id,
                    "error": str(e),
                })
                failed.append(effect.value)
            else:
                executed.append(effect.value)
        return SideEffectOutcome(executed=tuple(executed), failed=tuple(failed))
