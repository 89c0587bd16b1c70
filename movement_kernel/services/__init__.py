"""Kernel services - request store, stock ledger and sequence allocation."""

from movement_kernel.services.request_store import (
    DEFAULT_CODE_PREFIXES,
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    RequestStore,
)
from movement_kernel.services.sequence_service import SequenceCounter, SequenceService
from movement_kernel.services.stock_ledger import StockLedger, StockLedgerLike

__all__ = [
    "DEFAULT_CODE_PREFIXES",
    "INITIAL_STATUS",
    "TERMINAL_STATUSES",
    "RequestStore",
    "SequenceCounter",
    "SequenceService",
    "StockLedger",
    "StockLedgerLike",
]
