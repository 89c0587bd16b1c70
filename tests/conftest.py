"""
Pytest fixtures for the movement workflow test suite.

Provides:
- An in-memory SQLite database per test (tables created fresh)
- A file-backed SQLite database for threaded race tests
- Deterministic clock, actors and role grants
- Wired store, ledger, services and board presenter
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from movement_kernel.db.engine import build_engine, create_tables, drop_tables
from movement_kernel.domain.authorization import StaticRoleProvider
from movement_kernel.domain.clock import DeterministicClock
from movement_kernel.domain.values import LineItem
from movement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from movement_kernel.services.request_store import RequestStore
from movement_kernel.services.stock_ledger import StockLedger
from movement_modules.procurement.service import ProcurementService
from movement_modules.transfer.service import TransferService
from movement_services.board_presenter import BoardPresenter

BRANCH = "BR-01"
OTHER_BRANCH = "BR-02"
WAREHOUSE = "WH-CENTRAL"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture movement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, procurement):
            procurement.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "procurement_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("movement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = build_engine("sqlite://")
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine; connections are real and thread-independent."""
    eng = build_engine(f"sqlite:///{tmp_path / 'movement.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def deterministic_clock():
    """Clock pinned to 2024-01-01 12:00 UTC; advance explicitly."""
    return DeterministicClock()


# =============================================================================
# Actors and roles
# =============================================================================


@dataclass(frozen=True)
class Actors:
    requester: UUID
    approver: UUID
    accountant: UUID
    branch_receiver: UUID
    branch_reviewer: UUID
    warehouse_reviewer: UUID
    shipper: UUID
    warehouse_receiver: UUID
    outsider: UUID


@pytest.fixture
def actors() -> Actors:
    return Actors(*(uuid4() for _ in range(9)))


@pytest.fixture
def role_provider(actors) -> StaticRoleProvider:
    provider = StaticRoleProvider()
    provider.grant(actors.requester, "requester", BRANCH)
    provider.grant(actors.approver, "procurement_approver")
    provider.grant(actors.accountant, "accountant")
    provider.grant(actors.branch_receiver, "receiver", BRANCH)
    provider.grant(actors.branch_reviewer, "branch_reviewer", BRANCH)
    provider.grant(actors.warehouse_reviewer, "warehouse_reviewer", WAREHOUSE)
    provider.grant(actors.shipper, "shipper", BRANCH)
    provider.grant(actors.warehouse_receiver, "receiver", WAREHOUSE)
    return provider


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def store(session_factory, deterministic_clock) -> RequestStore:
    return RequestStore(session_factory, clock=deterministic_clock)


@pytest.fixture
def ledger(session_factory, deterministic_clock) -> StockLedger:
    return StockLedger(session_factory, clock=deterministic_clock)


@pytest.fixture
def trace_sink():
    """Collects workflow_transition records passed to outcome_sink."""
    return []


@pytest.fixture
def procurement(store, ledger, role_provider, deterministic_clock, trace_sink) -> ProcurementService:
    return ProcurementService(
        store, ledger, role_provider, clock=deterministic_clock, outcome_sink=trace_sink.append,
    )


@pytest.fixture
def transfer(store, ledger, role_provider, deterministic_clock, trace_sink) -> TransferService:
    return TransferService(
        store,
        ledger,
        role_provider,
        clock=deterministic_clock,
        warehouse_ids=(WAREHOUSE,),
        outcome_sink=trace_sink.append,
    )


@pytest.fixture
def board(store) -> BoardPresenter:
    return BoardPresenter(store)


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def lines() -> list[LineItem]:
    """Two priced lines: 5 x 2.50 and 3 x 10.00."""
    return [
        LineItem(product_id=1, variant_id=101, quantity=5, unit_price=Decimal("2.50")),
        LineItem(product_id=2, variant_id=202, quantity=3, unit_price=Decimal("10.00")),
    ]


@pytest.fixture
def paid_procurement(procurement, actors, lines):
    """A procurement driven to ``paid``."""
    request = procurement.submit(actors.requester, lines, BRANCH)
    procurement.review(request.id, actors.approver, "approve", supplier_id="SUP-1")
    return procurement.confirm_payment(request.id, actors.accountant)


@pytest.fixture
def stocked_origin(ledger):
    """Origin branch holding 50 of each test variant."""
    ledger.adjust(BRANCH, 101, 50, reason="opening_balance")
    ledger.adjust(BRANCH, 202, 50, reason="opening_balance")
    return ledger


@pytest.fixture
def processing_transfer(transfer, actors, lines, stocked_origin):
    """A transfer approved by both reviewers, ready to ship."""
    request = transfer.request_transfer(actors.requester, BRANCH, WAREHOUSE, lines)
    transfer.review_branch(request.id, actors.branch_reviewer, "approve")
    return transfer.review_warehouse(request.id, actors.warehouse_reviewer, "approve")
