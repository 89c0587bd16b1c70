"""
Movement request value objects (``movement_kernel.domain.values``).

Frozen DTOs exchanged between the request store and the workflow services.
The store hands out a fresh snapshot per call; services never keep one
across calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from movement_kernel.exceptions import ValidationError


class RequestKind(str, Enum):
    """Which workflow a request belongs to."""

    PROCUREMENT = "procurement"
    TRANSFER = "transfer"


class PaymentStatus(str, Enum):
    """Secondary procurement dimension, orthogonal to status."""

    UNPAID = "unpaid"
    PAID = "paid"


class ReviewDecision(str, Enum):
    """Decision an approver records at a review edge."""

    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class LineItem:
    """One product variant line of a request."""
    product_id: int
    variant_id: int
    quantity: int
    unit_price: Decimal | None = None
    line_no: int | None = None

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity) * (self.unit_price or Decimal("0"))


@dataclass(frozen=True)
class LineRevision:
    """Approver correction of a provisional line, keyed by ``line_no``."""
    line_no: int
    quantity: int | None = None
    unit_price: Decimal | None = None


@dataclass(frozen=True, kw_only=True)
class MovementRequest:
    """Fields shared by procurement and transfer requests."""
    id: UUID
    code: str
    kind: RequestKind
    status: str
    lines: tuple[LineItem, ...]
    requested_by: UUID
    reviewed_by: UUID | None = None
    received_by: UUID | None = None
    note: str | None = None
    reason: str | None = None
    created_at: datetime
    updated_at: datetime
    requested_at: datetime
    reviewed_at: datetime | None = None
    received_at: datetime | None = None
    needs_reconciliation: bool = False
    reconciliation_note: str | None = None

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(frozen=True, kw_only=True)
class ProcurementRequest(MovementRequest):
    """Supplier-sourced stock entering ``destination_id``."""
    destination_id: str
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    supplier_id: str | None = None
    paid_amount: Decimal | None = None
    payment_method: str | None = None
    paid_at: datetime | None = None

    @property
    def is_total_provisional(self) -> bool:
        return self.status == "requested"

    @property
    def expected_total(self) -> Decimal:
        # Lines are frozen once the request leaves "requested", so the same
        # sum is the fixed total afterwards.
        return sum((line.line_total for line in self.lines), Decimal("0"))


@dataclass(frozen=True, kw_only=True)
class TransferRequest(MovementRequest):
    """Stock moving from ``origin_branch_id`` to ``destination_id``."""
    origin_branch_id: str
    destination_id: str
    branch_reviewer_id: UUID | None = None
    warehouse_reviewer_id: UUID | None = None
    branch_reviewed_at: datetime | None = None
    warehouse_reviewed_at: datetime | None = None
    shipped_by: UUID | None = None
    shipped_at: datetime | None = None


@dataclass(frozen=True)
class RequestDraft:
    """Creation payload handed to ``RequestStore.create``."""
    requested_by: UUID
    lines: tuple[LineItem, ...]
    destination_id: str
    origin_branch_id: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class TransitionCommand:
    """A single status change plus the field updates that ride with it."""
    action: str
    to_state: str
    actor_id: UUID
    changes: Mapping[str, Any] = field(default_factory=dict)
    line_revisions: tuple[LineRevision, ...] = ()


@dataclass(frozen=True)
class HistoryEntry:
    """One accepted transition, as recorded by the store."""
    request_id: UUID
    action: str
    from_state: str
    to_state: str
    actor_id: UUID
    occurred_at: datetime
    reason: str | None = None


def validate_lines(lines: tuple[LineItem, ...] | list[LineItem]) -> tuple[LineItem, ...]:
    """Check lines for creation and return them numbered from 1.

    Raises:
        ValidationError: if ``lines`` is empty or any quantity is not a
            positive integer or any price is negative.
    """
    if not lines:
        raise ValidationError(
            "A request needs at least one line",
            field_errors=[{"field": "lines", "error": "empty"}],
        )
    errors: list[dict] = []
    for index, line in enumerate(lines, start=1):
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            errors.append({"field": "quantity", "line_no": index, "error": "must_be_positive"})
        if line.unit_price is not None and line.unit_price < 0:
            errors.append({"field": "unit_price", "line_no": index, "error": "negative"})
    if errors:
        raise ValidationError(
            f"{len(errors)} invalid line field(s)", field_errors=errors,
        )
    return tuple(
        LineItem(
            product_id=line.product_id,
            variant_id=line.variant_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            line_no=index,
        )
        for index, line in enumerate(lines, start=1)
    )


def require_actor(actor_id: UUID | None, field_name: str = "actor_id") -> UUID:
    """Reject a missing actor reference."""
    if actor_id is None:
        raise ValidationError(
            f"{field_name} is required",
            field_errors=[{"field": field_name, "error": "missing"}],
        )
    return actor_id
