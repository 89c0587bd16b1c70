"""
Module: movement_kernel.models.request
Responsibility: ORM persistence for movement requests, their lines, and the
    append-only transition history.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - Exactly one status per request; the CHECK constraint limits values to
      the union of both workflows' states.  Which edges are legal is the
      workflow table's job; the store writes status only via compare-and-set.
    - ``code`` is unique.
    - Lines are ordered by ``line_no`` and unique per request.
    - History rows are written in the same transaction as the status change
      and never updated.

Failure modes:
    - IntegrityError on duplicate code or duplicate (request_id, line_no).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from movement_kernel.db.base import Base, TrackedBase
from movement_kernel.domain.values import (
    HistoryEntry,
    LineItem,
    MovementRequest,
    PaymentStatus,
    ProcurementRequest,
    RequestKind,
    TransferRequest,
)

ALL_STATUSES = (
    "requested",
    "approved",
    "paid",
    "completed",
    "rejected",
    "cancelled",
    "branch_pending",
    "warehouse_pending",
    "processing",
    "shipped",
)


class MovementRequestModel(TrackedBase):
    """
    Persistent movement request (procurement or transfer, by ``kind``).

    Columns that only apply to one kind are nullable and stay NULL for the
    other.
    """

    __tablename__ = "movement_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in ALL_STATUSES) + ")",
            name="ck_movement_requests_valid_status",
        ),
        CheckConstraint(
            "kind IN ('procurement', 'transfer')",
            name="ck_movement_requests_valid_kind",
        ),
        Index("ix_movement_requests_kind_status", "kind", "status"),
        Index("ix_movement_requests_requested_at", "requested_at"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_by: Mapped[UUID] = mapped_column(nullable=False)
    requested_at: Mapped[datetime] = mapped_column(nullable=False)
    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_by: Mapped[UUID | None] = mapped_column(nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)

    destination_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # Procurement
    payment_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    supplier_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Transfer
    origin_branch_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    branch_reviewer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    branch_reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    warehouse_reviewer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    warehouse_reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    shipped_by: Mapped[UUID | None] = mapped_column(nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Reconciliation and archival
    needs_reconciliation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciliation_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list[MovementLineModel]] = relationship(
        back_populates="request",
        order_by="MovementLineModel.line_no",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self) -> MovementRequest:
        """Convert to the frozen DTO for this request's kind."""
        common = dict(
            id=self.id,
            code=self.code,
            kind=RequestKind(self.kind),
            status=self.status,
            lines=tuple(line.to_dto() for line in self.lines),
            requested_by=self.requested_by,
            reviewed_by=self.reviewed_by,
            received_by=self.received_by,
            note=self.note,
            reason=self.reason,
            created_at=self.created_at,
            updated_at=self.updated_at,
            requested_at=self.requested_at,
            reviewed_at=self.reviewed_at,
            received_at=self.received_at,
            needs_reconciliation=self.needs_reconciliation,
            reconciliation_note=self.reconciliation_note,
        )
        if self.kind == RequestKind.PROCUREMENT.value:
            return ProcurementRequest(
                **common,
                destination_id=self.destination_id,
                payment_status=PaymentStatus(self.payment_status or PaymentStatus.UNPAID.value),
                supplier_id=self.supplier_id,
                paid_amount=self.paid_amount,
                payment_method=self.payment_method,
                paid_at=self.paid_at,
            )
        return TransferRequest(
            **common,
            origin_branch_id=self.origin_branch_id or "",
            destination_id=self.destination_id,
            branch_reviewer_id=self.branch_reviewer_id,
            warehouse_reviewer_id=self.warehouse_reviewer_id,
            branch_reviewed_at=self.branch_reviewed_at,
            warehouse_reviewed_at=self.warehouse_reviewed_at,
            shipped_by=self.shipped_by,
            shipped_at=self.shipped_at,
        )


class MovementLineModel(Base):
    """A product variant line.  Shares its request's lifetime."""

    __tablename__ = "movement_request_lines"

    __table_args__ = (
        UniqueConstraint("request_id", "line_no", name="uq_movement_line_no"),
        CheckConstraint("quantity > 0", name="ck_movement_line_positive_qty"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("movement_requests.id", ondelete="CASCADE"), nullable=False,
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[int] = mapped_column(nullable=False)
    variant_id: Mapped[int] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    request: Mapped[MovementRequestModel] = relationship(back_populates="lines")

    def to_dto(self) -> LineItem:
        return LineItem(
            product_id=self.product_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            line_no=self.line_no,
        )


class RequestHistoryModel(Base):
    """Append-only record of one accepted transition."""

    __tablename__ = "movement_request_history"

    __table_args__ = (
        UniqueConstraint("request_id", "position", name="uq_movement_history_position"),
    )

    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("movement_requests.id", ondelete="CASCADE"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    from_state: Mapped[str] = mapped_column(String(30), nullable=False)
    to_state: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> HistoryEntry:
        return HistoryEntry(
            request_id=self.request_id,
            action=self.action,
            from_state=self.from_state,
            to_state=self.to_state,
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            reason=self.reason,
        )
