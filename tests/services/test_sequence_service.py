"""
Tests for SequenceService.

Invariants tested:
- Values per sequence are strictly increasing from 1.
- Sequences are independent.
- A rolled-back allocation is not consumed.
"""

from datetime import datetime, timezone

from movement_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_monotonic(self, session_factory):
        with session_factory() as session:
            service = SequenceService(session)
            values = [service.next_value("PNK:20240101") for _ in range(5)]
            session.commit()
        assert values == [1, 2, 3, 4, 5]

    def test_independent_sequences(self, session_factory):
        with session_factory() as session:
            service = SequenceService(session)
            assert service.next_value("a") == 1
            assert service.next_value("b") == 1
            assert service.next_value("a") == 2
            session.commit()

    def test_rollback_returns_value(self, session_factory):
        with session_factory() as session:
            service = SequenceService(session)
            assert service.next_value("seq") == 1
            session.commit()

        with session_factory() as session:
            assert SequenceService(session).next_value("seq") == 2
            session.rollback()

        with session_factory() as session:
            assert SequenceService(session).next_value("seq") == 2
            session.commit()

    def test_code_format(self, session_factory):
        as_of = datetime(2024, 7, 9, 23, 59, tzinfo=timezone.utc)
        with session_factory() as session:
            service = SequenceService(session)
            assert service.next_code("PCK", as_of) == "PCK-20240709-0001"
            assert service.next_code("PCK", as_of) == "PCK-20240709-0002"
            session.commit()
