"""
Tests for movement value objects and the exception hierarchy.

Invariants tested:
- Line validation: non-empty, positive integer quantities, non-negative
  prices; lines are renumbered from 1.
- Procurement totals are provisional only while ``requested``.
- Frozen DTOs cannot be mutated.
- Every exception carries a machine-readable code.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from movement_kernel.domain.values import (
    LineItem,
    PaymentStatus,
    ProcurementRequest,
    RequestKind,
    require_actor,
    validate_lines,
)
from movement_kernel import exceptions
from movement_kernel.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InsufficientStockError,
    MovementError,
    ValidationError,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _procurement(status, lines):
    return ProcurementRequest(
        id=uuid4(),
        code="PNK-20240101-0001",
        kind=RequestKind.PROCUREMENT,
        status=status,
        lines=lines,
        requested_by=uuid4(),
        created_at=NOW,
        updated_at=NOW,
        requested_at=NOW,
        destination_id="BR-01",
    )


# =========================================================================
# validate_lines
# =========================================================================


class TestValidateLines:
    """Creation-time line checks."""

    def test_empty_lines_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_lines([])
        assert exc_info.value.field_errors == [{"field": "lines", "error": "empty"}]

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_bad_quantity_rejected(self, quantity):
        with pytest.raises(ValidationError) as exc_info:
            validate_lines([LineItem(1, 10, quantity)])
        assert exc_info.value.field_errors[0]["field"] == "quantity"

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            validate_lines([LineItem(1, 10, 1, Decimal("-0.01"))])

    def test_all_errors_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_lines([LineItem(1, 10, 0), LineItem(2, 20, 1, Decimal("-1"))])
        assert [e["line_no"] for e in exc_info.value.field_errors] == [1, 2]

    def test_lines_renumbered(self):
        result = validate_lines([LineItem(1, 10, 1, line_no=7), LineItem(2, 20, 2)])
        assert [line.line_no for line in result] == [1, 2]
        assert isinstance(result, tuple)

    def test_zero_price_allowed(self):
        assert validate_lines([LineItem(1, 10, 1, Decimal("0"))])[0].unit_price == Decimal("0")


# =========================================================================
# Procurement totals
# =========================================================================


class TestProcurementTotals:
    """expected_total and its provisional flag."""

    def test_expected_total_sums_lines(self):
        request = _procurement(
            "requested",
            (LineItem(1, 10, 5, Decimal("2.50"), 1), LineItem(2, 20, 3, Decimal("10.00"), 2)),
        )
        assert request.expected_total == Decimal("42.50")
        assert request.total_quantity == 8

    def test_unpriced_lines_count_as_zero(self):
        request = _procurement("requested", (LineItem(1, 10, 5, None, 1),))
        assert request.expected_total == Decimal("0")

    @pytest.mark.parametrize(
        "status,provisional",
        [("requested", True), ("approved", False), ("paid", False), ("completed", False)],
    )
    def test_provisional_only_while_requested(self, status, provisional):
        request = _procurement(status, (LineItem(1, 10, 1, Decimal("1"), 1),))
        assert request.is_total_provisional is provisional

    def test_default_payment_status_unpaid(self):
        request = _procurement("requested", (LineItem(1, 10, 1, None, 1),))
        assert request.payment_status is PaymentStatus.UNPAID

    def test_frozen(self):
        request = _procurement("requested", (LineItem(1, 10, 1, None, 1),))
        with pytest.raises(FrozenInstanceError):
            request.status = "approved"


# =========================================================================
# require_actor
# =========================================================================


class TestRequireActor:

    def test_missing_actor(self):
        with pytest.raises(ValidationError) as exc_info:
            require_actor(None, "requester_id")
        assert exc_info.value.field_errors == [{"field": "requester_id", "error": "missing"}]

    def test_present_actor_returned(self):
        actor = uuid4()
        assert require_actor(actor) == actor


# =========================================================================
# Exception hierarchy
# =========================================================================


class TestExceptionHierarchy:
    """Codes and subclass relationships."""

    def test_every_exception_has_distinct_code(self):
        classes = [
            obj for obj in vars(exceptions).values()
            if isinstance(obj, type) and issubclass(obj, MovementError)
        ]
        codes = [cls.code for cls in classes]
        assert len(codes) == len(set(codes))

    def test_conflict_is_illegal_transition(self):
        err = ConflictError("r1", "approve", "requested", "approved")
        assert isinstance(err, IllegalTransitionError)
        assert err.expected_status == "requested"
        assert err.current_status == "approved"
        assert "expected status 'requested'" in str(err)

    def test_insufficient_stock_is_validation(self):
        err = InsufficientStockError("BR-01", 10, 2, 5)
        assert isinstance(err, ValidationError)
        assert err.on_hand == 2
        assert err.requested == 5
