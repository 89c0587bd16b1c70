"""
Concurrent review tests.

Two reviewers act on the same pending procurement.  Exactly one decision
commits; the other surfaces as IllegalTransitionError (ConflictError when
it lost between read and write) and the final status is one of the two
decisions, never anything else.

The first class forces the losing interleaving deterministically by
running the competing review while the first command is inside its role
check.  The second class races two threads against a file-backed
database.
"""

import threading

import pytest
from sqlalchemy.orm import sessionmaker

from movement_kernel.domain.clock import DeterministicClock
from movement_kernel.domain.values import LineRevision
from movement_kernel.exceptions import ConflictError, IllegalTransitionError
from movement_kernel.services.request_store import RequestStore
from movement_kernel.services.stock_ledger import StockLedger
from movement_modules.procurement.service import ProcurementService

from tests.conftest import BRANCH


class InterleavingRoleProvider:
    """Runs ``hook`` once, on the next role lookup, before answering it."""

    def __init__(self, inner):
        self._inner = inner
        self.hook = None

    def has_role(self, actor_id, role, scope=None):
        hook, self.hook = self.hook, None
        if hook is not None:
            hook()
        return self._inner.has_role(actor_id, role, scope)


# =============================================================================
# Deterministic interleaving
# =============================================================================


class TestInterleavedReview:

    @pytest.fixture
    def interleaving(self, role_provider):
        return InterleavingRoleProvider(role_provider)

    @pytest.fixture
    def service(self, store, ledger, interleaving, deterministic_clock, trace_sink):
        return ProcurementService(
            store, ledger, interleaving, clock=deterministic_clock,
            outcome_sink=trace_sink.append,
        )

    def test_second_decision_conflicts(self, service, interleaving, store, actors, lines, trace_sink):
        request = service.submit(actors.requester, lines, BRANCH)
        interleaving.hook = lambda: service.review(request.id, actors.approver, "reject")

        with pytest.raises(ConflictError) as exc_info:
            service.review(request.id, actors.approver, "approve")

        err = exc_info.value
        assert err.expected_status == "requested"
        assert err.current_status == "rejected"
        assert err.request.status == "rejected"
        assert store.get(request.id).status == "rejected"
        assert [h.action for h in store.history(request.id)] == ["reject"]
        assert [t["outcome"] for t in trace_sink] == ["success", "conflict"]

    def test_losing_revisions_not_applied(self, service, interleaving, store, actors, lines):
        request = service.submit(actors.requester, lines, BRANCH)
        interleaving.hook = lambda: service.review(request.id, actors.approver, "approve")

        with pytest.raises(ConflictError):
            service.review(
                request.id, actors.approver, "approve",
                line_revisions=[LineRevision(line_no=1, quantity=99)],
            )
        after = store.get(request.id)
        assert after.status == "approved"
        assert after.lines[0].quantity == 5

    def test_receipt_race_increments_once(
        self, store, ledger, role_provider, deterministic_clock, actors, lines,
    ):
        interleaving = InterleavingRoleProvider(role_provider)
        service = ProcurementService(store, ledger, interleaving, clock=deterministic_clock)
        request = service.submit(actors.requester, lines, BRANCH)
        service.review(request.id, actors.approver, "approve")
        service.confirm_payment(request.id, actors.accountant)

        interleaving.hook = lambda: service.confirm_receipt(request.id, actors.branch_receiver)
        with pytest.raises(ConflictError):
            service.confirm_receipt(request.id, actors.branch_receiver)

        assert ledger.on_hand(BRANCH, 101) == 5
        assert ledger.on_hand(BRANCH, 202) == 3


# =============================================================================
# Threaded race
# =============================================================================


@pytest.mark.slow_locks
class TestThreadedReview:

    @pytest.fixture
    def file_services(self, file_engine, role_provider):
        factory = sessionmaker(bind=file_engine, expire_on_commit=False)
        clock = DeterministicClock()
        store = RequestStore(factory, clock=clock)
        ledger = StockLedger(factory, clock=clock)
        return store, ProcurementService(store, ledger, role_provider, clock=clock)

    @pytest.mark.parametrize("attempt", range(5))
    def test_exactly_one_decision_commits(self, file_services, actors, lines, attempt):
        store, service = file_services
        request = service.submit(actors.requester, lines, BRANCH)
        barrier = threading.Barrier(2)
        outcomes: dict[str, object] = {}

        def decide(decision):
            barrier.wait()
            try:
                outcomes[decision] = service.review(request.id, actors.approver, decision)
            except IllegalTransitionError as exc:
                outcomes[decision] = exc

        threads = [threading.Thread(target=decide, args=(d,)) for d in ("approve", "reject")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        errors = [v for v in outcomes.values() if isinstance(v, IllegalTransitionError)]
        successes = [v for v in outcomes.values() if not isinstance(v, Exception)]
        assert len(outcomes) == 2
        assert len(successes) == 1
        assert len(errors) == 1

        final = store.get(request.id)
        assert final.status in ("approved", "rejected")
        assert final.status == successes[0].status
        assert len(store.history(request.id)) == 1
