"""ORM models for movement requests and stock."""

from movement_kernel.models.request import (
    ALL_STATUSES,
    MovementLineModel,
    MovementRequestModel,
    RequestHistoryModel,
)
from movement_kernel.models.stock import StockLevelModel, StockMovementModel

__all__ = [
    "ALL_STATUSES",
    "MovementLineModel",
    "MovementRequestModel",
    "RequestHistoryModel",
    "StockLevelModel",
    "StockMovementModel",
]
