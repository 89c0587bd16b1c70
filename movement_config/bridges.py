"""
Config -> Kernel Bridges.

Functions that convert a ``MovementConfig`` into kernel and module inputs.
These live in movement_config (the producer) because the kernel must never
import movement_config.

Usage:
    from movement_config.bridges import build_services

    config = get_active_config()
    procurement, transfer, board = build_services(config, session_factory)
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from movement_config.schema import MovementConfig
from movement_kernel.domain.authorization import StaticRoleProvider
from movement_kernel.domain.clock import Clock
from movement_kernel.services.request_store import RequestStore
from movement_kernel.services.stock_ledger import StockLedger
from movement_modules.procurement.service import ProcurementService
from movement_modules.transfer.service import TransferService
from movement_services.board_presenter import BoardPresenter


def role_provider_from_config(config: MovementConfig) -> StaticRoleProvider:
    """Build a StaticRoleProvider from the configured role bindings."""
    provider = StaticRoleProvider()
    for binding in config.role_bindings:
        provider.grant(binding.actor_id, binding.role, binding.scope)
    return provider


def build_services(
    config: MovementConfig,
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
) -> tuple[ProcurementService, TransferService, BoardPresenter]:
    """Wire store, ledger and role provider into the workflow services."""
    store = RequestStore(session_factory, clock=clock, code_prefixes=config.code_prefixes)
    ledger = StockLedger(
        session_factory, clock=clock, allow_negative_stock=config.allow_negative_stock,
    )
    roles = role_provider_from_config(config)
    procurement = ProcurementService(store, ledger, roles, clock=clock)
    transfer = TransferService(
        store,
        ledger,
        roles,
        clock=clock,
        allow_negative_stock=config.allow_negative_stock,
        warehouse_ids=config.warehouses or None,
    )
    return procurement, transfer, BoardPresenter(store)
