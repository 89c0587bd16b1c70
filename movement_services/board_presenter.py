"""
movement_services.board_presenter -- Kanban-style request boards.

Responsibility:
    Partitions a fresh snapshot of live requests into the classifier's
    buckets, in the workflow's fixed order, with a count per bucket.
    Optionally narrowed to the month and/or year of ``requested_at``.

Architecture position:
    Services layer.  Reads through ``RequestStore.list_active`` and
    delegates bucket membership to ``movement_kernel.domain.classifier``.
    Never writes.

Invariants enforced:
    - Every bucket of the workflow appears, empty ones included.
    - Each request appears in exactly one column.
    - ``Board.total`` equals the sum of column counts.
    - Nothing is cached; every ``build`` re-reads the store.

Failure modes:
    - ClassificationError propagates when a stored request maps to no
      bucket; it is never dropped silently.
    - ValueError on a month outside 1..12.
"""

from __future__ import annotations

from dataclasses import dataclass

from movement_kernel.domain.classifier import BUCKET_TITLES, buckets_for, classify
from movement_kernel.domain.values import MovementRequest, RequestKind
from movement_kernel.logging_config import get_logger
from movement_kernel.services.request_store import RequestStore

logger = get_logger("services.board_presenter")


@dataclass(frozen=True)
class BoardColumn:
    """One bucket of a board."""
    bucket_id: str
    title: str
    count: int
    requests: tuple[MovementRequest, ...]


@dataclass(frozen=True)
class Board:
    """A full board for one workflow kind."""
    kind: RequestKind
    columns: tuple[BoardColumn, ...]
    month: int | None = None
    year: int | None = None

    @property
    def total(self) -> int:
        return sum(c.count for c in self.columns)

    def column(self, bucket_id: str) -> BoardColumn:
        for c in self.columns:
            if c.bucket_id == bucket_id:
                return c
        raise KeyError(bucket_id)


class BoardPresenter:
    """Builds boards from the request store on demand."""

    def __init__(self, store: RequestStore):
        self._store = store

    def build(
        self,
        kind: RequestKind,
        month: int | None = None,
        year: int | None = None,
    ) -> Board:
        """Snapshot board for ``kind``; requests newest ``requested_at`` first."""
        kind = RequestKind(kind)
        if month is not None and not 1 <= month <= 12:
            raise ValueError(f"month must be 1..12, got {month}")

        requests = [
            r for r in self._store.list_active(kind)
            if (month is None or r.requested_at.month == month)
            and (year is None or r.requested_at.year == year)
        ]

        order = buckets_for(kind)
        grouped: dict[str, list[MovementRequest]] = {bucket: [] for bucket in order}
        for request in requests:
            grouped[classify(request)].append(request)

        titles = BUCKET_TITLES[kind]
        columns = tuple(
            BoardColumn(
                bucket_id=bucket,
                title=titles[bucket],
                count=len(grouped[bucket]),
                requests=tuple(
                    sorted(grouped[bucket], key=lambda r: r.requested_at, reverse=True)
                ),
            )
            for bucket in order
        )
        board = Board(kind=kind, columns=columns, month=month, year=year)

        logger.debug(
            "board_built",
            extra={
                "kind": kind.value,
                "month": month,
                "year": year,
                "total": board.total,
                "counts": {c.bucket_id: c.count for c in columns},
            },
        )
        return board
