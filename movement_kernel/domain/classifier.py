"""
Status classifier (``movement_kernel.domain.classifier``).

Responsibility
--------------
Maps a request's raw fields onto exactly one display bucket of its
workflow.  This is the single place bucket membership is decided; the
board presenter and any other reader call it instead of re-deriving
membership from status strings.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.

Invariants enforced
-------------------
* Exactly one bucket per request.  Procurement predicates are evaluated in
  a fixed precedence order (first match wins), so a request that is both
  paid and received renders once, as ``completed``.
* A status outside the workflow's bucket list raises
  ``ClassificationError`` instead of silently matching nothing.
"""

from __future__ import annotations

from typing import Any

from movement_kernel.domain.values import (
    MovementRequest,
    PaymentStatus,
    ProcurementRequest,
    RequestKind,
    TransferRequest,
)
from movement_kernel.exceptions import ClassificationError

# Display order is fixed by the workflow, never by first-seen order.
PROCUREMENT_BUCKETS: tuple[str, ...] = (
    "requested",
    "approved",
    "paid",
    "completed",
    "rejected",
    "cancelled",
)

TRANSFER_BUCKETS: tuple[str, ...] = (
    "branch_pending",
    "warehouse_pending",
    "processing",
    "shipped",
    "completed",
    "rejected",
    "cancelled",
)

BUCKET_TITLES: dict[RequestKind, dict[str, str]] = {
    RequestKind.PROCUREMENT: {
        "requested": "Pending review",
        "approved": "Approved",
        "paid": "Paid",
        "completed": "Received",
        "rejected": "Rejected",
        "cancelled": "Cancelled",
    },
    RequestKind.TRANSFER: {
        "branch_pending": "Awaiting branch review",
        "warehouse_pending": "Awaiting warehouse review",
        "processing": "Processing",
        "shipped": "Shipped",
        "completed": "Completed",
        "rejected": "Rejected",
        "cancelled": "Cancelled",
    },
}


def buckets_for(kind: RequestKind) -> tuple[str, ...]:
    """Ordered bucket ids for a workflow kind."""
    if kind == RequestKind.PROCUREMENT:
        return PROCUREMENT_BUCKETS
    return TRANSFER_BUCKETS


def classify_procurement(
    status: str,
    payment_status: PaymentStatus | str | None,
    received_by: Any,
) -> str:
    """Bucket for a procurement request's raw field tuple.

    Precedence:
        1. received, or status ``completed``       -> ``completed``
        2. paid, not completed, not received       -> ``paid``
        3. otherwise                               -> status verbatim
    """
    if received_by is not None or status == "completed":
        return "completed"
    if payment_status == PaymentStatus.PAID:
        return "paid"
    if status not in PROCUREMENT_BUCKETS:
        raise ClassificationError("procurement", status)
    return status


def classify_transfer(status: str) -> str:
    """Bucket for a transfer request: its status, one-to-one."""
    if status not in TRANSFER_BUCKETS:
        raise ClassificationError("transfer", status)
    return status


def classify(request: MovementRequest) -> str:
    """Bucket for any movement request snapshot."""
    if isinstance(request, ProcurementRequest):
        return classify_procurement(
            request.status, request.payment_status, request.received_by,
        )
    if isinstance(request, TransferRequest):
        return classify_transfer(request.status)
    raise ClassificationError(str(request.kind), request.status)
