"""
Procurement Module Service (``movement_modules.procurement.service``).

Responsibility
--------------
Command surface for procurement requests: submission, review, payment,
receipt and cancellation.  Each command reads a fresh snapshot, resolves
the edge through the workflow table, and asks the request store to apply
it as a compare-and-set.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``ProcurementService`` is the sole public
entry point for procurement commands.  It composes the kernel
``RequestStore``, a ``StockLedgerLike`` and a ``RoleProvider`` through the
shared ``TransitionRunner``.

Invariants enforced
-------------------
* Review is legal only from ``requested``; payment only from ``approved``;
  receipt only from ``paid``.
* Receipt is the only procurement edge with a ledger effect: ``+quantity``
  per line at ``destination_id``, applied once.
* Line revisions and the supplier choice ride on the approving review and
  commit atomically with leaving ``requested``.

Failure modes
-------------
* ``ValidationError`` -- empty lines, non-positive quantity, missing actor,
  bad revision, negative payment amount.  Nothing is written.
* ``IllegalTransitionError`` / ``AuthorizationError`` -- wrong status or
  missing role.  Nothing is written.
* ``ConflictError`` -- a concurrent command won the race.
* ``LedgerError`` -- receipt committed but stock did not fully land; the
  request is flagged for reconciliation.

Usage::

    service = ProcurementService(store, ledger, role_provider, clock=clock)
    request = service.submit(
        requester_id=actor_id,
        lines=[LineItem(product_id=1, variant_id=10, quantity=5, unit_price=Decimal("2.50"))],
        destination_id="BR-01",
    )
    service.review(request.id, approver_id, ReviewDecision.APPROVE, supplier_id="SUP-7")
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from movement_kernel.domain.authorization import RoleProvider, check_roles
from movement_kernel.domain.clock import Clock, SystemClock
from movement_kernel.domain.values import (
    LineItem,
    LineRevision,
    PaymentStatus,
    ProcurementRequest,
    RequestDraft,
    RequestKind,
    ReviewDecision,
    require_actor,
    validate_lines,
)
from movement_kernel.exceptions import ValidationError
from movement_kernel.logging_config import get_logger
from movement_kernel.services.request_store import RequestStore
from movement_kernel.services.stock_ledger import StockLedgerLike
from movement_modules._transition_helpers import TransitionRunner
from movement_modules.procurement.workflows import PROCUREMENT_WORKFLOW, SUBMIT_ROLES

logger = get_logger("modules.procurement.service")


class ProcurementService:
    """
    Orchestrates procurement commands through the kernel store and ledger.

    Contract
    --------
    * Every command returns the request as committed.
    * No state is kept between calls; the role provider is consulted on
      every command.

    Non-goals
    ---------
    * Supplier catalogue and payment gateway integration.
    """

    def __init__(
        self,
        store: RequestStore,
        ledger: StockLedgerLike,
        role_provider: RoleProvider,
        clock: Clock | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ):
        self._store = store
        self._role_provider = role_provider
        self._clock = clock or SystemClock()
        self._runner = TransitionRunner(
            PROCUREMENT_WORKFLOW,
            store,
            ledger,
            role_provider,
            outcome_sink=outcome_sink,
        )

    # =========================================================================
    # Creation
    # =========================================================================

    def submit(
        self,
        requester_id: UUID,
        lines: Sequence[LineItem],
        destination_id: str,
        note: str | None = None,
    ) -> ProcurementRequest:
        """
        Create a procurement request in ``requested``.

        Raises:
            ValidationError: empty lines, quantity <= 0, missing requester
                or destination.
            AuthorizationError: requester lacks the requester role at the
                destination.
        """
        require_actor(requester_id, "requester_id")
        draft = RequestDraft(
            requested_by=requester_id,
            lines=validate_lines(tuple(lines)),
            destination_id=destination_id,
            note=note,
        )
        check_roles(SUBMIT_ROLES, requester_id, draft, self._role_provider, "submit")

        request = self._store.create(
            RequestKind.PROCUREMENT, draft, PROCUREMENT_WORKFLOW.initial_state,
        )
        logger.info(
            "procurement_submitted",
            extra={
                "request_id": str(request.id),
                "code": request.code,
                "destination_id": destination_id,
                "line_count": len(request.lines),
                "expected_total": str(request.expected_total),
            },
        )
        return request

    # =========================================================================
    # Review
    # =========================================================================

    def review(
        self,
        request_id: UUID,
        actor_id: UUID,
        decision: ReviewDecision | str,
        *,
        supplier_id: str | None = None,
        line_revisions: Sequence[LineRevision] = (),
        reason: str | None = None,
    ) -> ProcurementRequest:
        """
        Approve or reject a ``requested`` procurement.

        An approval may pick the supplier and fix provisional quantities and
        prices; those changes commit together with the status change.

        Raises:
            ValidationError: unknown decision, or revisions/supplier on a
                rejection, or a bad revision.
            IllegalTransitionError: request is not ``requested``.
            AuthorizationError: actor is not a procurement approver.
        """
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            raise ValidationError(
                f"Unknown review decision: {decision!r}",
                field_errors=[{"field": "decision", "error": "unknown"}],
            ) from None

        now = self._clock.now()
        if decision is ReviewDecision.REJECT:
            if line_revisions or supplier_id is not None:
                raise ValidationError(
                    "Line revisions and supplier apply only to approvals",
                    field_errors=[{"field": "line_revisions", "error": "reject_with_revisions"}],
                )
            return self._runner.run(
                request_id,
                "reject",
                actor_id,
                changes={"reviewed_by": actor_id, "reviewed_at": now, "reason": reason},
            )

        changes: dict[str, Any] = {"reviewed_by": actor_id, "reviewed_at": now}
        if supplier_id is not None:
            changes["supplier_id"] = supplier_id
        return self._runner.run(
            request_id,
            "approve",
            actor_id,
            changes=changes,
            line_revisions=tuple(line_revisions),
        )

    def revoke_approval(
        self,
        request_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ProcurementRequest:
        """Reject an already approved, unpaid procurement."""
        return self._runner.run(
            request_id,
            "revoke",
            actor_id,
            changes={
                "reviewed_by": actor_id,
                "reviewed_at": self._clock.now(),
                "reason": reason,
            },
        )

    # =========================================================================
    # Payment and receipt
    # =========================================================================

    def confirm_payment(
        self,
        request_id: UUID,
        actor_id: UUID,
        paid_amount: Decimal | None = None,
        payment_method: str | None = None,
    ) -> ProcurementRequest:
        """
        Record payment of an ``approved`` procurement.

        ``paid_amount`` defaults to the request's fixed expected total.

        Raises:
            ValidationError: negative ``paid_amount``.
            IllegalTransitionError: request is not ``approved``.
        """
        if paid_amount is not None and paid_amount < 0:
            raise ValidationError(
                "paid_amount must not be negative",
                field_errors=[{"field": "paid_amount", "error": "negative"}],
            )
        now = self._clock.now()

        def payment_changes(request: ProcurementRequest) -> dict[str, Any]:
            return {
                "payment_status": PaymentStatus.PAID,
                "paid_amount": paid_amount if paid_amount is not None else request.expected_total,
                "payment_method": payment_method,
                "paid_at": now,
            }

        return self._runner.run(request_id, "confirm_payment", actor_id, changes=payment_changes)

    def confirm_receipt(self, request_id: UUID, actor_id: UUID) -> ProcurementRequest:
        """
        Record receipt of a ``paid`` procurement and book the stock in.

        Raises:
            IllegalTransitionError: request is not ``paid`` (including a
                second receipt).
            LedgerError: receipt committed but the stock increase failed.
        """
        return self._runner.run(
            request_id,
            "confirm_receipt",
            actor_id,
            changes={"received_by": actor_id, "received_at": self._clock.now()},
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(
        self,
        request_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ProcurementRequest:
        """Cancel a ``requested``, ``approved`` or ``paid`` procurement.  No stock moves."""
        return self._runner.run(request_id, "cancel", actor_id, changes={"reason": reason})

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, request_id: UUID) -> ProcurementRequest:
        return self._store.get(request_id)

    def history(self, request_id: UUID):
        return self._store.history(request_id)
