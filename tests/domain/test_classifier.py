"""
Tests for the status classifier (``movement_kernel.domain.classifier``).

Invariants tested:
- Exactly one bucket per request, for every combination of raw fields.
- Procurement precedence: received/completed beats paid beats status.
- Transfer buckets are the status, one-to-one.
- Unknown statuses raise ClassificationError instead of vanishing.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from movement_kernel.domain.classifier import (
    BUCKET_TITLES,
    PROCUREMENT_BUCKETS,
    TRANSFER_BUCKETS,
    buckets_for,
    classify,
    classify_procurement,
    classify_transfer,
)
from movement_kernel.domain.values import (
    LineItem,
    PaymentStatus,
    ProcurementRequest,
    RequestKind,
    TransferRequest,
)
from movement_kernel.exceptions import ClassificationError

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _procurement(status="requested", payment_status=PaymentStatus.UNPAID, received_by=None):
    return ProcurementRequest(
        id=uuid4(),
        code="PNK-20240101-0001",
        kind=RequestKind.PROCUREMENT,
        status=status,
        lines=(LineItem(1, 10, 2, Decimal("1.00"), 1),),
        requested_by=uuid4(),
        received_by=received_by,
        created_at=NOW,
        updated_at=NOW,
        requested_at=NOW,
        destination_id="BR-01",
        payment_status=payment_status,
    )


def _transfer(status="branch_pending"):
    return TransferRequest(
        id=uuid4(),
        code="PCK-20240101-0001",
        kind=RequestKind.TRANSFER,
        status=status,
        lines=(LineItem(1, 10, 2, None, 1),),
        requested_by=uuid4(),
        created_at=NOW,
        updated_at=NOW,
        requested_at=NOW,
        origin_branch_id="BR-01",
        destination_id="WH-CENTRAL",
    )


# =========================================================================
# Procurement precedence
# =========================================================================


class TestProcurementClassification:
    """Precedence order of the procurement predicates."""

    @pytest.mark.parametrize("status", ["requested", "approved", "rejected", "cancelled"])
    def test_unpaid_unreceived_maps_to_status(self, status):
        assert classify_procurement(status, PaymentStatus.UNPAID, None) == status

    def test_paid_not_received_is_paid(self):
        assert classify_procurement("paid", PaymentStatus.PAID, None) == "paid"

    def test_completed_status_is_completed(self):
        assert classify_procurement("completed", PaymentStatus.PAID, None) == "completed"

    def test_received_wins_over_paid(self):
        """A paid and received request renders once, as completed."""
        assert classify_procurement("paid", PaymentStatus.PAID, uuid4()) == "completed"

    def test_received_wins_even_with_stale_status(self):
        assert classify_procurement("approved", PaymentStatus.UNPAID, uuid4()) == "completed"

    def test_payment_status_accepts_plain_string(self):
        assert classify_procurement("paid", "paid", None) == "paid"

    def test_unknown_status_raises(self):
        with pytest.raises(ClassificationError) as exc_info:
            classify_procurement("archived", PaymentStatus.UNPAID, None)
        assert exc_info.value.code == "UNCLASSIFIABLE_REQUEST"
        assert exc_info.value.status == "archived"

    @given(
        status=st.sampled_from(PROCUREMENT_BUCKETS),
        paid=st.booleans(),
        received=st.booleans(),
    )
    def test_exactly_one_bucket(self, status, paid, received):
        """Every field combination lands in exactly one known bucket."""
        request = _procurement(
            status=status,
            payment_status=PaymentStatus.PAID if paid else PaymentStatus.UNPAID,
            received_by=uuid4() if received else None,
        )
        bucket = classify(request)
        assert bucket in PROCUREMENT_BUCKETS
        matches = [b for b in PROCUREMENT_BUCKETS if b == bucket]
        assert len(matches) == 1
        if received or status == "completed":
            assert bucket == "completed"
        elif paid:
            assert bucket == "paid"
        else:
            assert bucket == status


# =========================================================================
# Transfer
# =========================================================================


class TestTransferClassification:
    """Transfer buckets mirror status."""

    @pytest.mark.parametrize("status", TRANSFER_BUCKETS)
    def test_status_verbatim(self, status):
        assert classify_transfer(status) == status
        assert classify(_transfer(status)) == status

    def test_procurement_only_status_rejected(self):
        with pytest.raises(ClassificationError):
            classify_transfer("paid")


# =========================================================================
# Bucket metadata
# =========================================================================


class TestBucketMetadata:
    """Fixed order and titles per workflow."""

    def test_procurement_order(self):
        assert buckets_for(RequestKind.PROCUREMENT) == (
            "requested", "approved", "paid", "completed", "rejected", "cancelled",
        )

    def test_transfer_order(self):
        assert buckets_for(RequestKind.TRANSFER) == (
            "branch_pending", "warehouse_pending", "processing",
            "shipped", "completed", "rejected", "cancelled",
        )

    @pytest.mark.parametrize("kind", list(RequestKind))
    def test_every_bucket_has_title(self, kind):
        assert set(BUCKET_TITLES[kind]) == set(buckets_for(kind))
