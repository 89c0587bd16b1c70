"""
Module: movement_kernel.models.stock
Responsibility: ORM persistence for on-hand stock per (branch, variant) and
    the append-only movement journal written alongside every adjustment.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One StockLevelModel row per (branch_id, variant_id).
    - Every adjustment writes exactly one StockMovementModel row in the same
      transaction as the balance change, so balances are reproducible as the
      sum of movements.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from movement_kernel.db.base import Base


class StockLevelModel(Base):
    """Current on-hand quantity of one variant at one branch or warehouse."""

    __tablename__ = "stock_levels"

    __table_args__ = (
        UniqueConstraint("branch_id", "variant_id", name="uq_stock_level_branch_variant"),
    )

    branch_id: Mapped[str] = mapped_column(String(50), nullable=False)
    variant_id: Mapped[int] = mapped_column(nullable=False)
    quantity_on_hand: Mapped[int] = mapped_column(nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)


class StockMovementModel(Base):
    """One applied ledger delta."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("ix_stock_movements_branch_variant", "branch_id", "variant_id"),
        Index("ix_stock_movements_request", "request_id"),
    )

    branch_id: Mapped[str] = mapped_column(String(50), nullable=False)
    variant_id: Mapped[int] = mapped_column(nullable=False)
    delta: Mapped[int] = mapped_column(nullable=False)
    balance_after: Mapped[int] = mapped_column(nullable=False)
    request_id: Mapped[UUID | None] = mapped_column(nullable=True)
    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
