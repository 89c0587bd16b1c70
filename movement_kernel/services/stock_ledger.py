"""
StockLedger -- per-(branch, variant) on-hand quantities.

Responsibility:
    Applies signed quantity deltas to stock balances and journals each one
    as a StockMovementModel row.  Workflow services call ``adjust`` after a
    transition commits; the ledger knows nothing about requests beyond the
    optional ``request_id`` it stamps on the journal row.

Architecture position:
    Kernel > Services.  Depends on models/stock.py and the db session
    factory.  Consumers type against ``StockLedgerLike`` so tests and other
    backends can stand in.

Invariants enforced:
    - Atomic per call: the balance update and its journal row commit
      together or not at all.
    - Non-negative balances unless ``allow_negative_stock`` is set.
    - The balance row is locked (``SELECT ... FOR UPDATE``) for the
      read-modify-write.

Failure modes:
    - InsufficientStockError when a negative delta would take the balance
      below zero and negative stock is not allowed.
    - ValidationError on a zero delta.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from movement_kernel.db.engine import session_scope
from movement_kernel.domain.clock import Clock, SystemClock
from movement_kernel.exceptions import InsufficientStockError, ValidationError
from movement_kernel.logging_config import get_logger
from movement_kernel.models.stock import StockLevelModel, StockMovementModel

logger = get_logger("services.stock_ledger")


@runtime_checkable
class StockLedgerLike(Protocol):
    """What workflow services need from a stock ledger."""

    def adjust(
        self,
        branch_id: str,
        variant_id: int,
        delta: int,
        request_id: UUID | None = None,
        reason: str | None = None,
    ) -> int:
        ...

    def on_hand(self, branch_id: str, variant_id: int) -> int:
        ...


class StockLedger:
    """SQLAlchemy-backed stock ledger.  One transaction per ``adjust``."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        allow_negative_stock: bool = False,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._allow_negative_stock = allow_negative_stock

    @property
    def allow_negative_stock(self) -> bool:
        return self._allow_negative_stock

    def _lock_level(
        self, session: Session, branch_id: str, variant_id: int,
    ) -> StockLevelModel | None:
        return session.execute(
            select(StockLevelModel)
            .where(
                StockLevelModel.branch_id == branch_id,
                StockLevelModel.variant_id == variant_id,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def _get_or_create_level(
        self, session: Session, branch_id: str, variant_id: int,
    ) -> StockLevelModel:
        level = self._lock_level(session, branch_id, variant_id)
        if level is not None:
            return level

        savepoint = session.begin_nested()
        try:
            level = StockLevelModel(
                branch_id=branch_id,
                variant_id=variant_id,
                quantity_on_hand=0,
                updated_at=self._clock.now(),
            )
            session.add(level)
            session.flush()
            savepoint.commit()
            return level
        except IntegrityError:
            # Concurrent first adjustment of the same pair.
            savepoint.rollback()
            level = self._lock_level(session, branch_id, variant_id)
            if level is None:
                raise
            return level

    def adjust(
        self,
        branch_id: str,
        variant_id: int,
        delta: int,
        request_id: UUID | None = None,
        reason: str | None = None,
    ) -> int:
        """
        Apply ``delta`` to the balance of (branch_id, variant_id).

        Returns:
            The balance after the adjustment.

        Raises:
            InsufficientStockError: balance would go negative.
            ValidationError: ``delta`` is zero.
        """
        if delta == 0:
            raise ValidationError(
                "Stock adjustment delta must be non-zero",
                field_errors=[{"field": "delta", "error": "zero"}],
            )

        with session_scope(self._session_factory) as session:
            level = self._get_or_create_level(session, branch_id, variant_id)
            new_balance = level.quantity_on_hand + delta
            if new_balance < 0 and not self._allow_negative_stock:
                logger.warning(
                    "stock_adjustment_rejected",
                    extra={
                        "branch_id": branch_id,
                        "variant_id": variant_id,
                        "on_hand": level.quantity_on_hand,
                        "delta": delta,
                    },
                )
                raise InsufficientStockError(
                    branch_id, variant_id, level.quantity_on_hand, -delta,
                )

            now = self._clock.now()
            level.quantity_on_hand = new_balance
            level.updated_at = now
            session.add(
                StockMovementModel(
                    branch_id=branch_id,
                    variant_id=variant_id,
                    delta=delta,
                    balance_after=new_balance,
                    request_id=request_id,
                    reason=reason,
                    occurred_at=now,
                )
            )

        logger.info(
            "stock_adjusted",
            extra={
                "branch_id": branch_id,
                "variant_id": variant_id,
                "delta": delta,
                "balance_after": new_balance,
                "request_id": str(request_id) if request_id else None,
                "reason": reason,
            },
        )
        return new_balance

    def on_hand(self, branch_id: str, variant_id: int) -> int:
        """Current balance; zero for a pair never adjusted."""
        with session_scope(self._session_factory) as session:
            quantity = session.execute(
                select(StockLevelModel.quantity_on_hand).where(
                    StockLevelModel.branch_id == branch_id,
                    StockLevelModel.variant_id == variant_id,
                )
            ).scalar_one_or_none()
        return quantity or 0

    def movements(self, branch_id: str, variant_id: int) -> list[tuple[int, int, str | None]]:
        """Journal of (delta, balance_after, reason) for one pair, oldest first."""
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(
                    StockMovementModel.delta,
                    StockMovementModel.balance_after,
                    StockMovementModel.reason,
                )
                .where(
                    StockMovementModel.branch_id == branch_id,
                    StockMovementModel.variant_id == variant_id,
                )
                .order_by(StockMovementModel.occurred_at)
            ).all()
        return [(r.delta, r.balance_after, r.reason) for r in rows]
