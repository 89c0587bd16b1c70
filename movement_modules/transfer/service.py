"""
Transfer Module Service (``movement_modules.transfer.service``).

Responsibility
--------------
Command surface for inter-branch transfers: request, branch review,
warehouse review, shipment, receipt and cancellation.

Architecture position
---------------------
**Modules layer** -- thin glue over the kernel ``RequestStore`` and a
``StockLedgerLike``, sharing ``TransitionRunner`` with procurement.

Invariants enforced
-------------------
* Reviews are sequential: branch first (scoped to the origin), then
  warehouse (scoped to the destination).
* ``ship`` decrements the origin and ``receive`` increments the
  destination, each once per line.
* Cancelling a ``shipped`` transfer restores the origin quantities; stock
  that never arrived is not left in transit.
* Origin and destination differ.

Failure modes
-------------
* ``ValidationError`` -- bad lines, same origin and destination, unknown
  warehouse, empty cancellation reason.
* ``InsufficientStockError`` -- origin cannot cover the shipment and
  negative stock is disabled.  No state change.
* ``IllegalTransitionError`` / ``AuthorizationError`` / ``ConflictError``
  / ``LedgerError`` -- as for every workflow command.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from typing import Callable
from uuid import UUID

from movement_kernel.domain.authorization import RoleProvider, check_roles
from movement_kernel.domain.clock import Clock, SystemClock
from movement_kernel.domain.values import (
    LineItem,
    MovementRequest,
    RequestDraft,
    RequestKind,
    ReviewDecision,
    TransferRequest,
    require_actor,
    validate_lines,
)
from movement_kernel.exceptions import InsufficientStockError, ValidationError
from movement_kernel.logging_config import get_logger
from movement_kernel.services.request_store import RequestStore
from movement_kernel.services.stock_ledger import StockLedgerLike
from movement_modules._transition_helpers import TransitionRunner
from movement_modules.transfer.workflows import (
    STOCK_AVAILABLE,
    SUBMIT_ROLES,
    TRANSFER_WORKFLOW,
)

logger = get_logger("modules.transfer.service")


def _decision(decision: ReviewDecision | str) -> ReviewDecision:
    try:
        return ReviewDecision(decision)
    except ValueError:
        raise ValidationError(
            f"Unknown review decision: {decision!r}",
            field_errors=[{"field": "decision", "error": "unknown"}],
        ) from None


class TransferService:
    """
    Orchestrates transfer commands through the kernel store and ledger.

    ``warehouse_ids``, when given, restricts destinations to known
    warehouses.  ``allow_negative_stock`` disables the shipment stock guard.
    """

    def __init__(
        self,
        store: RequestStore,
        ledger: StockLedgerLike,
        role_provider: RoleProvider,
        clock: Clock | None = None,
        allow_negative_stock: bool = False,
        warehouse_ids: Collection[str] | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ):
        self._store = store
        self._ledger = ledger
        self._role_provider = role_provider
        self._clock = clock or SystemClock()
        self._allow_negative_stock = allow_negative_stock
        self._warehouse_ids = frozenset(warehouse_ids) if warehouse_ids else None
        self._runner = TransitionRunner(
            TRANSFER_WORKFLOW,
            store,
            ledger,
            role_provider,
            guard_checks={STOCK_AVAILABLE.name: self._check_stock_available},
            outcome_sink=outcome_sink,
        )

    # =========================================================================
    # Guards
    # =========================================================================

    def _check_stock_available(self, request: MovementRequest) -> None:
        if self._allow_negative_stock:
            return
        needed: dict[int, int] = {}
        for line in request.lines:
            needed[line.variant_id] = needed.get(line.variant_id, 0) + line.quantity
        for variant_id, quantity in needed.items():
            on_hand = self._ledger.on_hand(request.origin_branch_id, variant_id)
            if on_hand < quantity:
                raise InsufficientStockError(
                    request.origin_branch_id, variant_id, on_hand, quantity,
                )

    # =========================================================================
    # Creation
    # =========================================================================

    def request_transfer(
        self,
        requester_id: UUID,
        origin_branch_id: str,
        destination_id: str,
        lines: Sequence[LineItem],
        note: str | None = None,
    ) -> TransferRequest:
        """
        Create a transfer in ``branch_pending``.

        Raises:
            ValidationError: bad lines, missing requester, origin equals
                destination, or destination is not a known warehouse.
            AuthorizationError: requester lacks the requester role at the
                origin.
        """
        require_actor(requester_id, "requester_id")
        validated = validate_lines(tuple(lines))
        if origin_branch_id == destination_id:
            raise ValidationError(
                "Origin and destination must differ",
                field_errors=[{"field": "destination_id", "error": "same_as_origin"}],
            )
        if self._warehouse_ids is not None and destination_id not in self._warehouse_ids:
            raise ValidationError(
                f"Unknown warehouse: {destination_id}",
                field_errors=[{"field": "destination_id", "error": "unknown_warehouse"}],
            )

        draft = RequestDraft(
            requested_by=requester_id,
            lines=validated,
            destination_id=destination_id,
            origin_branch_id=origin_branch_id,
            note=note,
        )
        check_roles(SUBMIT_ROLES, requester_id, draft, self._role_provider, "request_transfer")

        request = self._store.create(
            RequestKind.TRANSFER, draft, TRANSFER_WORKFLOW.initial_state,
        )
        logger.info(
            "transfer_requested",
            extra={
                "request_id": str(request.id),
                "code": request.code,
                "origin_branch_id": origin_branch_id,
                "destination_id": destination_id,
                "total_quantity": request.total_quantity,
            },
        )
        return request

    # =========================================================================
    # Reviews
    # =========================================================================

    def review_branch(
        self,
        request_id: UUID,
        actor_id: UUID,
        decision: ReviewDecision | str,
        reason: str | None = None,
    ) -> TransferRequest:
        """Origin branch review: ``branch_pending`` -> ``warehouse_pending`` or ``rejected``."""
        decision = _decision(decision)
        action = "branch_approve" if decision is ReviewDecision.APPROVE else "branch_reject"
        changes = {
            "branch_reviewer_id": actor_id,
            "branch_reviewed_at": self._clock.now(),
        }
        if decision is ReviewDecision.REJECT:
            changes["reason"] = reason
        return self._runner.run(request_id, action, actor_id, changes=changes)

    def review_warehouse(
        self,
        request_id: UUID,
        actor_id: UUID,
        decision: ReviewDecision | str,
        reason: str | None = None,
    ) -> TransferRequest:
        """Destination warehouse review: ``warehouse_pending`` -> ``processing`` or ``rejected``."""
        decision = _decision(decision)
        action = "warehouse_approve" if decision is ReviewDecision.APPROVE else "warehouse_reject"
        now = self._clock.now()
        changes = {
            "warehouse_reviewer_id": actor_id,
            "warehouse_reviewed_at": now,
            "reviewed_by": actor_id,
            "reviewed_at": now,
        }
        if decision is ReviewDecision.REJECT:
            changes["reason"] = reason
        return self._runner.run(request_id, action, actor_id, changes=changes)

    # =========================================================================
    # Movement
    # =========================================================================

    def ship(self, request_id: UUID, actor_id: UUID) -> TransferRequest:
        """
        Dispatch a ``processing`` transfer; stock leaves the origin.

        Raises:
            InsufficientStockError: origin lacks stock and negative stock
                is disabled.  Status is unchanged.
            LedgerError: shipment committed but the decrement failed.
        """
        return self._runner.run(
            request_id,
            "ship",
            actor_id,
            changes={"shipped_by": actor_id, "shipped_at": self._clock.now()},
        )

    def receive(self, request_id: UUID, actor_id: UUID) -> TransferRequest:
        """Confirm arrival of a ``shipped`` transfer; stock enters the destination."""
        return self._runner.run(
            request_id,
            "receive",
            actor_id,
            changes={"received_by": actor_id, "received_at": self._clock.now()},
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self, request_id: UUID, actor_id: UUID, reason: str) -> TransferRequest:
        """
        Cancel a non-terminal transfer.

        From ``shipped`` the shipped quantities are put back at the origin.

        Raises:
            ValidationError: empty ``reason``.
        """
        if not reason or not reason.strip():
            raise ValidationError(
                "A cancellation reason is required",
                field_errors=[{"field": "reason", "error": "missing"}],
            )
        return self._runner.run(request_id, "cancel", actor_id, changes={"reason": reason})

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, request_id: UUID) -> TransferRequest:
        return self._store.get(request_id)
