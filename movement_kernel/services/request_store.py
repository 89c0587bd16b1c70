"""
RequestStore -- authoritative persistence for movement requests.

Responsibility:
    The only writer of request status.  Creates requests (allocating their
    document codes), hands out fresh DTO snapshots, and applies transitions
    as compare-and-set updates on the stored status.  Every accepted
    transition appends a history row in the same transaction.

Architecture position:
    Kernel > Services.  Opens one session per call from the injected
    session factory and keeps no state between calls, so every read the
    workflow services make is authoritative.

Invariants enforced:
    - Status changes only through ``transition``, and only when the stored
      status equals the caller's expected status
      (``UPDATE ... WHERE id = ? AND status = ?``).
    - ``changes`` is limited to a whitelist of columns; ``status``, ``code``
      and lines can never be written through it.
    - Lines are revised only together with leaving the initial status.
    - ``received_by`` is written at most once.
    - Terminal requests are never transitioned.
    - History rows are written in the transaction of their status change.

Failure modes:
    - RequestNotFoundError: unknown or soft-deleted id.
    - ConflictError: stored status differs from the expected status; the
      error carries a snapshot read in the same session.
    - IllegalTransitionError: transition from a terminal status, or delete
      outside the initial or terminal statuses.
    - ValidationError: bad draft, bad line revision, unknown change field.
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from movement_kernel.db.engine import session_scope
from movement_kernel.domain.clock import Clock, SystemClock
from movement_kernel.domain.values import (
    HistoryEntry,
    LineRevision,
    MovementRequest,
    PaymentStatus,
    RequestDraft,
    RequestKind,
    TransitionCommand,
    require_actor,
    validate_lines,
)
from movement_kernel.exceptions import (
    ConflictError,
    IllegalTransitionError,
    RequestNotFoundError,
    ValidationError,
)
from movement_kernel.logging_config import get_logger
from movement_kernel.models.request import (
    MovementLineModel,
    MovementRequestModel,
    RequestHistoryModel,
)
from movement_kernel.services.sequence_service import SequenceService

logger = get_logger("services.request_store")

DEFAULT_CODE_PREFIXES: dict[RequestKind, str] = {
    RequestKind.PROCUREMENT: "PNK",
    RequestKind.TRANSFER: "PCK",
}

INITIAL_STATUS: dict[RequestKind, str] = {
    RequestKind.PROCUREMENT: "requested",
    RequestKind.TRANSFER: "branch_pending",
}

TERMINAL_STATUSES = frozenset({"completed", "rejected", "cancelled"})

# Columns a transition may write besides status and the audit stamps.
MUTABLE_FIELDS = frozenset({
    "note",
    "reason",
    "reviewed_by",
    "reviewed_at",
    "received_by",
    "received_at",
    "payment_status",
    "supplier_id",
    "paid_amount",
    "payment_method",
    "paid_at",
    "branch_reviewer_id",
    "branch_reviewed_at",
    "warehouse_reviewer_id",
    "warehouse_reviewed_at",
    "shipped_by",
    "shipped_at",
})


class RequestStore:
    """SQLAlchemy-backed request store.  Stateless between calls."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        code_prefixes: Mapping[RequestKind, str] | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._code_prefixes = {**DEFAULT_CODE_PREFIXES, **(code_prefixes or {})}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _load(self, session: Session, request_id: UUID) -> MovementRequestModel:
        model = session.execute(
            select(MovementRequestModel)
            .where(MovementRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None or model.deleted_at is not None:
            raise RequestNotFoundError(str(request_id))
        return model

    def get(self, request_id: UUID) -> MovementRequest:
        """Fresh snapshot of one request."""
        with session_scope(self._session_factory) as session:
            return self._load(session, request_id).to_dto()

    def list_active(self, kind: RequestKind) -> list[MovementRequest]:
        """All non-deleted requests of ``kind``, newest ``requested_at`` first."""
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(MovementRequestModel)
                .where(
                    MovementRequestModel.kind == RequestKind(kind).value,
                    MovementRequestModel.deleted_at.is_(None),
                )
                .order_by(
                    MovementRequestModel.requested_at.desc(),
                    MovementRequestModel.code.desc(),
                )
            ).scalars().all()
            return [m.to_dto() for m in models]

    def list_needing_reconciliation(self, kind: RequestKind | None = None) -> list[MovementRequest]:
        """Requests whose ledger effect failed after a committed transition."""
        stmt = select(MovementRequestModel).where(
            MovementRequestModel.needs_reconciliation.is_(True),
            MovementRequestModel.deleted_at.is_(None),
        )
        if kind is not None:
            stmt = stmt.where(MovementRequestModel.kind == RequestKind(kind).value)
        with session_scope(self._session_factory) as session:
            models = session.execute(
                stmt.order_by(MovementRequestModel.updated_at)
            ).scalars().all()
            return [m.to_dto() for m in models]

    def history(self, request_id: UUID) -> list[HistoryEntry]:
        """Accepted transitions of one request, oldest first."""
        with session_scope(self._session_factory) as session:
            self._load(session, request_id)
            rows = session.execute(
                select(RequestHistoryModel)
                .where(RequestHistoryModel.request_id == request_id)
                .order_by(RequestHistoryModel.position)
            ).scalars().all()
            return [r.to_dto() for r in rows]

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create(
        self,
        kind: RequestKind,
        draft: RequestDraft,
        initial_status: str | None = None,
    ) -> MovementRequest:
        """
        Persist a new request in its workflow's initial status.

        Validation runs before any session is opened; a rejected draft
        leaves no trace in the database.

        Raises:
            ValidationError: empty lines, non-positive quantity, negative
                price, or missing requester.
        """
        kind = RequestKind(kind)
        require_actor(draft.requested_by, "requested_by")
        lines = validate_lines(draft.lines)
        if not draft.destination_id:
            raise ValidationError(
                "destination_id is required",
                field_errors=[{"field": "destination_id", "error": "missing"}],
            )
        if kind is RequestKind.TRANSFER and not draft.origin_branch_id:
            raise ValidationError(
                "origin_branch_id is required for transfers",
                field_errors=[{"field": "origin_branch_id", "error": "missing"}],
            )

        status = initial_status or INITIAL_STATUS[kind]
        now = self._clock.now()

        with session_scope(self._session_factory) as session:
            code = SequenceService(session).next_code(self._code_prefixes[kind], now)
            model = MovementRequestModel(
                kind=kind.value,
                code=code,
                status=status,
                note=draft.note,
                requested_by=draft.requested_by,
                requested_at=now,
                destination_id=draft.destination_id,
                origin_branch_id=draft.origin_branch_id,
                payment_status=(
                    PaymentStatus.UNPAID.value if kind is RequestKind.PROCUREMENT else None
                ),
                needs_reconciliation=False,
                created_at=now,
                updated_at=now,
                created_by_id=draft.requested_by,
                lines=[
                    MovementLineModel(
                        line_no=line.line_no,
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                    )
                    for line in lines
                ],
            )
            session.add(model)
            session.flush()
            request = model.to_dto()

        logger.info(
            "request_created",
            extra={
                "request_id": str(request.id),
                "code": request.code,
                "kind": kind.value,
                "status": status,
                "line_count": len(lines),
            },
        )
        return request

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _column_values(self, changes: Mapping[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(changes) - MUTABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be changed by a transition: {', '.join(unknown)}",
                field_errors=[{"field": name, "error": "immutable"} for name in unknown],
            )
        values = {}
        for name, value in changes.items():
            if isinstance(value, PaymentStatus):
                value = value.value
            values[name] = value
        return values

    def _apply_line_revisions(
        self,
        model: MovementRequestModel,
        revisions: tuple[LineRevision, ...],
    ) -> None:
        by_no = {line.line_no: line for line in model.lines}
        errors: list[dict] = []
        for rev in revisions:
            line = by_no.get(rev.line_no)
            if line is None:
                errors.append({"field": "line_no", "line_no": rev.line_no, "error": "unknown"})
                continue
            if rev.quantity is not None:
                if isinstance(rev.quantity, bool) or not isinstance(rev.quantity, int) or rev.quantity <= 0:
                    errors.append({"field": "quantity", "line_no": rev.line_no, "error": "must_be_positive"})
                else:
                    line.quantity = rev.quantity
            if rev.unit_price is not None:
                if rev.unit_price < 0:
                    errors.append({"field": "unit_price", "line_no": rev.line_no, "error": "negative"})
                else:
                    line.unit_price = rev.unit_price
        if errors:
            raise ValidationError(
                f"{len(errors)} invalid line revision(s)", field_errors=errors,
            )

    def transition(
        self,
        request_id: UUID,
        expected_status: str,
        command: TransitionCommand,
    ) -> MovementRequest:
        """
        Move a request from ``expected_status`` to ``command.to_state``.

        The status check and the write are a single UPDATE; a concurrent
        transition that got there first makes this one a ConflictError.

        Returns:
            The request as committed.

        Raises:
            ConflictError: stored status is not ``expected_status``.
            RequestNotFoundError: unknown or deleted request.
            IllegalTransitionError: ``expected_status`` is terminal, or line
                revisions outside the initial status.
            ValidationError: unknown change field or bad line revision.
        """
        require_actor(command.actor_id)
        if expected_status in TERMINAL_STATUSES:
            with session_scope(self._session_factory) as session:
                current = self._load(session, request_id).to_dto()
            raise IllegalTransitionError(
                str(request_id), command.action, current.status, request=current,
            )

        values = self._column_values(command.changes)
        now = self._clock.now()
        values.update(
            status=command.to_state,
            updated_at=now,
            updated_by_id=command.actor_id,
        )

        stmt = (
            update(MovementRequestModel)
            .where(
                MovementRequestModel.id == request_id,
                MovementRequestModel.status == expected_status,
                MovementRequestModel.deleted_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if "received_by" in values:
            stmt = stmt.where(MovementRequestModel.received_by.is_(None))

        with session_scope(self._session_factory) as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                current = self._load(session, request_id).to_dto()
                logger.info(
                    "transition_conflict",
                    extra={
                        "request_id": str(request_id),
                        "action": command.action,
                        "expected_status": expected_status,
                        "current_status": current.status,
                    },
                )
                raise ConflictError(
                    str(request_id),
                    command.action,
                    expected_status,
                    current.status,
                    request=current,
                )

            model = self._load(session, request_id)
            if command.line_revisions:
                if expected_status != INITIAL_STATUS[RequestKind(model.kind)]:
                    raise IllegalTransitionError(
                        str(request_id),
                        command.action,
                        expected_status,
                        message=(
                            f"Lines of request {request_id} are fixed once it "
                            f"leaves its initial status"
                        ),
                    )
                self._apply_line_revisions(model, command.line_revisions)

            position = session.execute(
                select(func.coalesce(func.max(RequestHistoryModel.position), 0))
                .where(RequestHistoryModel.request_id == request_id)
            ).scalar_one()
            session.add(
                RequestHistoryModel(
                    request_id=request_id,
                    position=position + 1,
                    action=command.action,
                    from_state=expected_status,
                    to_state=command.to_state,
                    actor_id=command.actor_id,
                    occurred_at=now,
                    reason=values.get("reason"),
                )
            )
            session.flush()
            request = model.to_dto()

        logger.info(
            "request_transitioned",
            extra={
                "request_id": str(request_id),
                "action": command.action,
                "from_state": expected_status,
                "to_state": command.to_state,
                "revised_lines": len(command.line_revisions),
            },
        )
        return request

    # -------------------------------------------------------------------------
    # Reconciliation and archival
    # -------------------------------------------------------------------------

    def flag_for_reconciliation(self, request_id: UUID, note: str) -> MovementRequest:
        """Mark a request whose ledger effect did not fully land.  Status is untouched."""
        with session_scope(self._session_factory) as session:
            model = self._load(session, request_id)
            model.needs_reconciliation = True
            model.reconciliation_note = note
            model.updated_at = self._clock.now()
            session.flush()
            request = model.to_dto()

        logger.warning(
            "request_flagged_for_reconciliation",
            extra={"request_id": str(request_id), "note": note},
        )
        return request

    def resolve_reconciliation(self, request_id: UUID, actor_id: UUID) -> MovementRequest:
        """Clear the reconciliation flag once stock has been corrected by hand."""
        require_actor(actor_id)
        with session_scope(self._session_factory) as session:
            model = self._load(session, request_id)
            if not model.needs_reconciliation:
                raise ValidationError(
                    f"Request {request_id} is not flagged for reconciliation",
                    field_errors=[{"field": "needs_reconciliation", "error": "not_flagged"}],
                )
            model.needs_reconciliation = False
            model.updated_at = self._clock.now()
            model.updated_by_id = actor_id
            session.flush()
            request = model.to_dto()

        logger.info(
            "request_reconciliation_resolved",
            extra={"request_id": str(request_id), "resolved_by": str(actor_id)},
        )
        return request

    def delete(self, request_id: UUID, actor_id: UUID) -> None:
        """
        Soft-delete a request.

        Raises:
            IllegalTransitionError: the request is in flight (neither in its
                initial status nor terminal).
        """
        require_actor(actor_id)
        with session_scope(self._session_factory) as session:
            model = self._load(session, request_id)
            initial = INITIAL_STATUS[RequestKind(model.kind)]
            if model.status != initial and model.status not in TERMINAL_STATUSES:
                raise IllegalTransitionError(
                    str(request_id), "delete", model.status, request=model.to_dto(),
                )
            now = self._clock.now()
            model.deleted_at = now
            model.updated_at = now
            model.updated_by_id = actor_id

        logger.info(
            "request_deleted",
            extra={"request_id": str(request_id), "deleted_by": str(actor_id)},
        )
