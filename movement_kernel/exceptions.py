"""
Typed Exception Hierarchy for the Movement Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from MovementError:

    MovementError (base)
    |
    +-- ValidationError
    |   +-- InsufficientStockError
    |
    +-- RequestNotFoundError
    |
    +-- IllegalTransitionError
    |   +-- ConflictError
    |
    +-- AuthorizationError
    |
    +-- LedgerError
    |
    +-- ClassificationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Empty lines, quantity <= 0, missing actor
                | INSUFFICIENT_STOCK          | Shipment would drive origin stock negative
----------------|-----------------------------|-----------------------------------------
Lookup          | REQUEST_NOT_FOUND           | Request ID doesn't exist (or is deleted)
----------------|-----------------------------|-----------------------------------------
Transition      | ILLEGAL_TRANSITION          | No edge from current status for action
                | TRANSITION_CONFLICT         | Status changed between read and write
----------------|-----------------------------|-----------------------------------------
Authorization   | NOT_AUTHORIZED              | Actor lacks the role for the edge
----------------|-----------------------------|-----------------------------------------
Ledger          | LEDGER_ADJUSTMENT_FAILED    | Stock adjustment failed after commit
----------------|-----------------------------|-----------------------------------------
Classification  | UNCLASSIFIABLE_REQUEST      | Status outside the workflow's buckets

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ILLEGAL TRANSITIONS CARRY FRESH STATE:

    try:
        service.review(request_id, actor_id, ReviewDecision.APPROVE)
    except IllegalTransitionError as e:
        render(e.request)          # authoritative snapshot, re-read after failure

2. CONFLICTS ARE NOT RETRIED:

    except ConflictError as e:
        # Another actor moved the request first.  Show e.current_status and
        # let the user decide again; replaying the command may be stale.

3. LEDGER FAILURES NEED A HUMAN:

    except LedgerError as e:
        # The transition is committed and the request is flagged
        # needs_reconciliation.  e.applied lists adjustments that did land.
"""

from __future__ import annotations

from typing import Any


class MovementError(Exception):
    """
    Base exception for all movement engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MOVEMENT_ERROR"


# Validation


class ValidationError(MovementError):
    """Malformed input.  Raised before any state change."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field_errors: list[dict] | None = None):
        self.field_errors = field_errors or []
        super().__init__(message)


class InsufficientStockError(ValidationError):
    """On-hand quantity at a branch cannot cover the requested movement."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, branch_id: str, variant_id: int, on_hand: int, requested: int):
        self.branch_id = branch_id
        self.variant_id = variant_id
        self.on_hand = on_hand
        self.requested = requested
        super().__init__(
            f"Insufficient stock for variant {variant_id} at {branch_id}: "
            f"on hand {on_hand}, requested {requested}",
            field_errors=[{
                "field": "quantity",
                "variant_id": variant_id,
                "error": "insufficient_stock",
            }],
        )


# Lookup


class RequestNotFoundError(MovementError):
    """Request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request not found: {request_id}")


# Transitions


class IllegalTransitionError(MovementError):
    """
    Command issued against a request not in a legal precondition state.

    ``request`` holds the authoritative snapshot read after the failure so the
    caller can re-render without another round trip.
    """

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        request_id: str,
        action: str,
        current_status: str,
        request: Any = None,
        message: str | None = None,
    ):
        self.request_id = request_id
        self.action = action
        self.current_status = current_status
        self.request = request
        super().__init__(
            message
            or f"Action '{action}' is not allowed for request {request_id} "
            f"in status '{current_status}'"
        )


class ConflictError(IllegalTransitionError):
    """
    A concurrent transition raced ahead of this one.

    The store's compare-and-set found ``current_status`` where the caller
    expected ``expected_status``.
    """

    code: str = "TRANSITION_CONFLICT"

    def __init__(
        self,
        request_id: str,
        action: str,
        expected_status: str,
        current_status: str,
        request: Any = None,
    ):
        self.expected_status = expected_status
        super().__init__(
            request_id,
            action,
            current_status,
            request,
            message=(
                f"Conflict on request {request_id}: action '{action}' expected "
                f"status '{expected_status}' but found '{current_status}'"
            ),
        )


# Authorization


class AuthorizationError(MovementError):
    """Actor lacks the role required for the attempted edge."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: str, action: str, required_roles: tuple[str, ...]):
        self.actor_id = actor_id
        self.action = action
        self.required_roles = required_roles
        super().__init__(
            f"Actor {actor_id} is not authorized for '{action}' "
            f"(requires one of: {', '.join(required_roles) or 'requester'})"
        )


# Ledger


class LedgerError(MovementError):
    """
    A stock adjustment failed after its transition was committed.

    The request has already been flagged for manual reconciliation when this
    is raised.  ``applied`` lists the (branch_id, variant_id, delta) tuples
    that did land before the failure.
    """

    code: str = "LEDGER_ADJUSTMENT_FAILED"

    def __init__(
        self,
        request_id: str,
        action: str,
        applied: list[tuple[str, int, int]],
        cause: str,
        request: Any = None,
    ):
        self.request_id = request_id
        self.action = action
        self.applied = applied
        self.cause = cause
        self.request = request
        super().__init__(
            f"Stock ledger failed after '{action}' on request {request_id}: {cause}"
        )


# Classification


class ClassificationError(MovementError):
    """Request fields map to no bucket of its workflow."""

    code: str = "UNCLASSIFIABLE_REQUEST"

    def __init__(self, workflow: str, status: str):
        self.workflow = workflow
        self.status = status
        super().__init__(f"Status '{status}' has no bucket in workflow '{workflow}'")
