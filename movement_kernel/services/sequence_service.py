"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers per named sequence and formats
    them into request document codes (``PNK-20240101-0001``).  Uses a
    counter table with row-level locking (``SELECT ... FOR UPDATE``) so
    concurrent creations never share a code.

Architecture position:
    Kernel > Services.  Called by RequestStore.create inside the creation
    transaction.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of the next
      value.  The aggregate-max-plus-one pattern is not used.
    - Transactional: an increment is visible only once the caller commits;
      a rolled-back creation returns its number.

Failure modes:
    - IntegrityError on concurrent first use of a sequence name (handled via
      savepoint rollback and retry).
"""

from datetime import datetime

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from movement_kernel.db.base import Base
from movement_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)


class SequenceService:
    """
    Generates transactional sequence numbers.

    The caller owns the transaction; this service only flushes.
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Allocate the next value of ``sequence_name`` (always > 0).

        The counter row stays locked until the caller's transaction ends.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the row at the same
            # time; the savepoint keeps the caller's work intact on a clash.
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_code(self, prefix: str, as_of: datetime) -> str:
        """Allocate a document code ``<prefix>-<YYYYMMDD>-<NNNN>``.

        The counter runs per prefix and per day.
        """
        day = as_of.strftime("%Y%m%d")
        value = self.next_value(f"{prefix}:{day}")
        return f"{prefix}-{day}-{value:04d}"
