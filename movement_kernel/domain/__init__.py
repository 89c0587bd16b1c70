"""
Pure domain layer.

Value objects, workflow tables, the status classifier and the transition
authorizer.  No dependencies on the ORM, the database or wall-clock time
(apart from ``SystemClock``).
"""

from movement_kernel.domain.authorization import (
    RoleGrant,
    RoleProvider,
    StaticRoleProvider,
    authorize_transition,
)
from movement_kernel.domain.classifier import (
    PROCUREMENT_BUCKETS,
    TRANSFER_BUCKETS,
    classify,
    classify_procurement,
    classify_transfer,
)
from movement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from movement_kernel.domain.values import (
    HistoryEntry,
    LineItem,
    LineRevision,
    MovementRequest,
    PaymentStatus,
    ProcurementRequest,
    RequestDraft,
    RequestKind,
    ReviewDecision,
    TransferRequest,
    TransitionCommand,
)
from movement_kernel.domain.workflow import (
    Guard,
    LedgerEffect,
    RoleRequirement,
    Transition,
    Workflow,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "LedgerEffect",
    "RoleRequirement",
    "Transition",
    "Workflow",
    "HistoryEntry",
    "LineItem",
    "LineRevision",
    "MovementRequest",
    "PaymentStatus",
    "ProcurementRequest",
    "RequestDraft",
    "RequestKind",
    "ReviewDecision",
    "TransferRequest",
    "TransitionCommand",
    "RoleGrant",
    "RoleProvider",
    "StaticRoleProvider",
    "authorize_transition",
    "PROCUREMENT_BUCKETS",
    "TRANSFER_BUCKETS",
    "classify",
    "classify_procurement",
    "classify_transfer",
]
