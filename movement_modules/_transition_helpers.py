"""
Shared transition runner for module workflow services.

Used by movement_modules/*/service.py so every command follows the same
read -> authorize -> guard -> compare-and-set -> ledger sequence and emits
one ``workflow_transition`` trace per attempt.

Architecture: Modules layer.  Imports only from movement_kernel (domain,
services, exceptions, logging).
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any, Callable, Mapping
from uuid import UUID

from movement_kernel.domain.authorization import RoleProvider, authorize_transition
from movement_kernel.domain.values import (
    LineRevision,
    MovementRequest,
    TransitionCommand,
    require_actor,
)
from movement_kernel.domain.workflow import LedgerEffect, Transition, Workflow
from movement_kernel.exceptions import (
    AuthorizationError,
    ConflictError,
    IllegalTransitionError,
    LedgerError,
    RequestNotFoundError,
    ValidationError,
)
from movement_kernel.logging_config import LogContext, get_logger
from movement_kernel.services.request_store import RequestStore
from movement_kernel.services.stock_ledger import StockLedgerLike

logger = get_logger("modules.transitions")

# Trace message and outcome codes for structured logging and traceability
TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_NOT_AUTHORIZED = "not_authorized"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_INVALID = "invalid"
OUTCOME_CONFLICT = "conflict"
OUTCOME_LEDGER_FAILED = "ledger_failed"
OUTCOME_RECONCILIATION_PENDING = "reconciliation_pending"

ChangesFn = Callable[[MovementRequest], Mapping[str, Any]]
GuardCheck = Callable[[MovementRequest], None]


def emit_workflow_trace(
    workflow_name: str,
    action: str,
    request_id: UUID,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
    ledger_effect: LedgerEffect | None = None,
    outcome_sink: Callable[[dict], None] | None = None,
) -> None:
    """Emit a structured workflow transition record for traceability and lookback."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": datetime.now(UTC).isoformat(),
        "workflow": workflow_name,
        "action": action,
        "request_id": str(request_id),
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    record["ledger_effect"] = ledger_effect.value if ledger_effect else None
    record.update(LogContext.get_all())
    if outcome == OUTCOME_SUCCESS:
        logger.info("workflow_transition", extra=record)
    else:
        logger.warning("workflow_transition", extra=record)
    record["message"] = "workflow_transition"
    if outcome_sink is not None:
        outcome_sink(record)


def ledger_adjustments(
    request: MovementRequest,
    effect: LedgerEffect,
) -> list[tuple[str, int, int]]:
    """(branch_id, variant_id, delta) per line for ``effect`` on ``request``."""
    if effect is LedgerEffect.INCREASE_DESTINATION:
        branch_id, sign = request.destination_id, 1
    elif effect is LedgerEffect.DECREASE_ORIGIN:
        branch_id, sign = request.origin_branch_id, -1
    else:
        branch_id, sign = request.origin_branch_id, 1
    return [(branch_id, line.variant_id, sign * line.quantity) for line in request.lines]


class TransitionRunner:
    """
    Executes one workflow command against the request store.

    Contract
    --------
    * Preconditions are checked against a snapshot read at the start of
      the call; the compare-and-set write re-checks them at commit.
    * Ledger effects run only after the transition has committed.  A ledger
      failure flags the request for reconciliation and raises LedgerError;
      the transition is not rolled back.
    * While a request is flagged for reconciliation, edges that move stock
      are refused; edges without a ledger effect still fire.
    * Nothing is retried.
    """

    def __init__(
        self,
        workflow: Workflow,
        store: RequestStore,
        ledger: StockLedgerLike,
        role_provider: RoleProvider,
        guard_checks: Mapping[str, GuardCheck] | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ):
        self._workflow = workflow
        self._store = store
        self._ledger = ledger
        self._role_provider = role_provider
        self._guard_checks = dict(guard_checks or {})
        self._outcome_sink = outcome_sink

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    def _trace(
        self,
        request: MovementRequest,
        action: str,
        outcome: str,
        reason: str,
        started: float,
        transition: Transition | None = None,
    ) -> None:
        emit_workflow_trace(
            workflow_name=self._workflow.name,
            action=action,
            request_id=request.id,
            from_state=request.status,
            outcome=outcome,
            reason=reason,
            duration_ms=(time.monotonic() - started) * 1000,
            to_state=transition.to_state if transition else None,
            ledger_effect=transition.ledger_effect if transition else None,
            outcome_sink=self._outcome_sink,
        )

    def run(
        self,
        request_id: UUID,
        action: str,
        actor_id: UUID,
        changes: ChangesFn | Mapping[str, Any] | None = None,
        line_revisions: tuple[LineRevision, ...] = (),
    ) -> MovementRequest:
        """
        Fire ``action`` on the request for ``actor_id``.

        ``changes`` is either a mapping of column updates or a callable that
        builds them from the fresh snapshot.

        Raises:
            ValidationError: missing actor or rejected field values.
            RequestNotFoundError: unknown request.
            IllegalTransitionError: no edge from the current status, or the edge
                moves stock while the request awaits reconciliation.
            AuthorizationError: actor lacks the edge's role.
            InsufficientStockError: a guard check refused the edge.
            ConflictError: status changed between read and write.
            LedgerError: transition committed, stock adjustment failed.
        """
        started = time.monotonic()
        require_actor(actor_id)
        request = self._store.get(request_id)
        if request.kind.value != self._workflow.name:
            raise RequestNotFoundError(str(request_id))

        with LogContext.bind(
            actor_id=str(actor_id),
            request_id=str(request.id),
            workflow=self._workflow.name,
        ):
            try:
                transition = authorize_transition(
                    self._workflow, request, action, actor_id, self._role_provider,
                )
            except IllegalTransitionError as exc:
                self._trace(request, action, OUTCOME_NO_TRANSITION, str(exc), started)
                raise
            except AuthorizationError as exc:
                self._trace(request, action, OUTCOME_NOT_AUTHORIZED, str(exc), started)
                raise

            if transition.ledger_effect is not None and request.needs_reconciliation:
                exc = IllegalTransitionError(
                    str(request.id),
                    action,
                    request.status,
                    request=request,
                    message=(
                        f"Request {request.id} awaits stock reconciliation; "
                        f"'{action}' would move stock and is refused until it is resolved"
                    ),
                )
                self._trace(
                    request, action, OUTCOME_RECONCILIATION_PENDING, str(exc), started, transition,
                )
                raise exc

            if transition.guard is not None:
                check = self._guard_checks.get(transition.guard.name)
                if check is not None:
                    try:
                        check(request)
                    except ValidationError as exc:
                        self._trace(
                            request, action, OUTCOME_GUARD_FAILED, str(exc), started, transition,
                        )
                        raise

            values = changes(request) if callable(changes) else dict(changes or {})
            command = TransitionCommand(
                action=action,
                to_state=transition.to_state,
                actor_id=actor_id,
                changes=values,
                line_revisions=line_revisions,
            )
            try:
                updated = self._store.transition(request.id, request.status, command)
            except ConflictError as exc:
                self._trace(request, action, OUTCOME_CONFLICT, str(exc), started, transition)
                raise
            except ValidationError as exc:
                self._trace(request, action, OUTCOME_INVALID, str(exc), started, transition)
                raise

            if transition.ledger_effect is not None:
                self._apply_ledger_effect(updated, action, transition, request, started)

            self._trace(
                request, action, OUTCOME_SUCCESS, "transition applied", started, transition,
            )
            return updated

    def _apply_ledger_effect(
        self,
        updated: MovementRequest,
        action: str,
        transition: Transition,
        before: MovementRequest,
        started: float,
    ) -> None:
        applied: list[tuple[str, int, int]] = []
        reason = f"{self._workflow.name}:{action}"
        for branch_id, variant_id, delta in ledger_adjustments(updated, transition.ledger_effect):
            try:
                self._ledger.adjust(
                    branch_id, variant_id, delta, request_id=updated.id, reason=reason,
                )
            except Exception as exc:
                note = (
                    f"{action} committed as {updated.status}; ledger adjustment "
                    f"({branch_id}, {variant_id}, {delta:+d}) failed: {exc}. "
                    f"Applied before failure: {applied or 'none'}"
                )
                flagged = self._store.flag_for_reconciliation(updated.id, note)
                self._trace(before, action, OUTCOME_LEDGER_FAILED, str(exc), started, transition)
                raise LedgerError(
                    str(updated.id), action, applied, str(exc), request=flagged,
                ) from exc
            applied.append((branch_id, variant_id, delta))
