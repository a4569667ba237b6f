"""
StatusMutationService -- validated, atomic status changes.

Responsibility:
    Applies a status change to a purchase order or invoice: load the
    entity, validate the requested status and the acting role against the
    injected TransitionPolicy, then update the status and append the
    history entry in one transaction.  Publishes a StatusChangedEvent once
    the transaction has committed.

Architecture position:
    Kernel > Services.  The only sanctioned writer of document status.
    Owns its transaction boundaries: one session per call, opened from the
    injected session factory, so calls from different threads never share
    a session.

Invariants enforced:
    - Atomicity: the status update and the history append commit together
      or not at all.
    - Compare-and-swap: the UPDATE is conditioned on the status read at
      the start of the call; a concurrent commit makes it miss and the
      call fails with CONCURRENT_MODIFICATION, writing nothing.
    - Rejections (not found, invalid status, illegal transition, malformed
      request) never write.
    - ``transition`` never raises for workflow, concurrency or persistence
      failures; they are returned as TransitionOutcome values.
    - No retries.  Callers re-read and decide.

Mutation states:
    PENDING_VALIDATION -> REJECTED_NOT_FOUND
                       -> REJECTED_INVALID_TRANSITION
                       -> APPLYING -> COMMITTED
                                   -> FAILED_PERSISTENCE
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.dtos import (
    ActingUser,
    MutationState,
    NewHistoryEntry,
    StatusChange,
    StatusChangedEvent,
    StatusChangeRequest,
    TransitionOutcome,
)
from invoicing_kernel.domain.statuses import (
    EntityKind,
    Role,
    Status,
    parse_entity_kind,
    parse_role,
    parse_status,
)
from invoicing_kernel.domain.transitions import TransitionPolicy
from invoicing_kernel.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    IllegalTransitionError,
    InvalidRequestError,
    InvalidStatusError,
    InvoicingKernelError,
    PersistenceFailureError,
)
from invoicing_kernel.logging_config import LogContext, get_logger
from invoicing_kernel.services.entity_store import EntityStore
from invoicing_kernel.services.notifications import StatusChangePublisher
from invoicing_kernel.services.status_ledger import StatusLedger

logger = get_logger("services.status_mutation")

EntityStoreFactory = Callable[[Session], EntityStore]
LedgerFactory = Callable[[Session], StatusLedger]


class StatusMutationService:
    """
    Entry point for every document status change.

    Usage:
        service = StatusMutationService(get_session_factory(), default_policy())
        outcome = service.transition(
            StatusChangeRequest(
                kind=EntityKind.PURCHASE_ORDER,
                entity_id="po-1",
                to_status=PurchaseOrderStatus.PENDING,
                acting_user=ActingUser(id="u-1", role=Role.CREATOR),
            )
        )
        if outcome.success:
            ...  # outcome.change.previous_status / new_status
        else:
            ...  # outcome.failure.kind / http_status / to_payload()
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        policy: TransitionPolicy,
        clock: Clock | None = None,
        publisher: StatusChangePublisher | None = None,
        entity_store_factory: EntityStoreFactory | None = None,
        ledger_factory: LedgerFactory | None = None,
    ):
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock or SystemClock()
        self._publisher = publisher
        self._entity_store_factory = entity_store_factory or EntityStore
        self._ledger_factory = ledger_factory or StatusLedger

    @property
    def policy(self) -> TransitionPolicy:
        return self._policy

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def transition(self, request: StatusChangeRequest) -> TransitionOutcome:
        """
        Validate and apply one status change.

        Never raises for NOT_FOUND, INVALID_STATUS, ILLEGAL_TRANSITION,
        CONCURRENT_MODIFICATION, PERSISTENCE_FAILURE or INVALID_REQUEST;
        those come back in ``outcome.failure``.
        """
        try:
            kind = parse_entity_kind(request.kind)
            role = parse_role(request.acting_user.role)
        except InvalidRequestError as exc:
            return self._reject(MutationState.REJECTED_INVALID_TRANSITION, exc)

        with LogContext.bind(
            actor_id=request.acting_user.id,
            entity_type=kind.value,
            entity_id=request.entity_id,
        ):
            t0 = time.monotonic()
            outcome, event = self._execute(kind, role, request)
            logger.debug(
                "status_transition_finished",
                extra={
                    "state": outcome.state.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 3),
                },
            )

            if event is not None:
                self._publish(event)
        return outcome

    def transition_payload(self, payload: Mapping[str, Any]) -> TransitionOutcome:
        """
        Parse a wire payload and apply it.

        ``{kind, entityId, toStatus, actingUser: {id, role}, comment?}``;
        malformed input yields an INVALID_REQUEST failure.
        """
        try:
            request = StatusChangeRequest.from_payload(payload)
        except InvalidRequestError as exc:
            return self._reject(MutationState.REJECTED_INVALID_TRANSITION, exc)
        return self.transition(request)

    def transition_many(
        self,
        kind: EntityKind,
        entity_ids: Iterable[str],
        to_status: Status | str,
        acting_user: ActingUser,
        comment: str | None = None,
    ) -> dict[str, TransitionOutcome]:
        """
        Apply the same status change to several entities.

        Each entity runs in its own transaction, so one rejection does not
        block the others.  Duplicate ids are processed once.  Results keep
        the input order.
        """
        results: dict[str, TransitionOutcome] = {}
        for entity_id in dict.fromkeys(entity_ids):
            results[entity_id] = self.transition(
                StatusChangeRequest(
                    kind=kind,
                    entity_id=entity_id,
                    to_status=to_status,
                    acting_user=acting_user,
                    comment=comment,
                )
            )

        committed = sum(1 for o in results.values() if o.success)
        logger.info(
            "bulk_status_transition_completed",
            extra={
                "entity_type": kind.value if isinstance(kind, EntityKind) else str(kind),
                "requested": len(results),
                "committed": committed,
                "failed": len(results) - committed,
            },
        )
        return results

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _execute(
        self,
        kind: EntityKind,
        role: Role,
        request: StatusChangeRequest,
    ) -> tuple[TransitionOutcome, StatusChangedEvent | None]:
        session = self._session_factory()
        try:
            return self._run(session, kind, role, request)
        finally:
            session.close()

    def _run(
        self,
        session: Session,
        kind: EntityKind,
        role: Role,
        request: StatusChangeRequest,
    ) -> tuple[TransitionOutcome, StatusChangedEvent | None]:
        store = self._entity_store_factory(session)

        # PENDING_VALIDATION
        try:
            snapshot = store.find_by_id(kind, request.entity_id)
        except SQLAlchemyError as exc:
            self._rollback(session)
            return self._fail(PersistenceFailureError("entity_lookup", str(exc))), None

        if snapshot is None:
            self._rollback(session)
            return self._reject(
                MutationState.REJECTED_NOT_FOUND,
                EntityNotFoundError(kind.value, request.entity_id),
            ), None

        try:
            to_status = parse_status(kind, request.to_status)
            self._policy.require(kind, snapshot.status, to_status, role)
        except (InvalidStatusError, IllegalTransitionError) as exc:
            self._rollback(session)
            return self._reject(MutationState.REJECTED_INVALID_TRANSITION, exc), None

        # APPLYING
        now = self._clock.now_utc()
        try:
            store.update_status_with_precondition(
                kind,
                snapshot.id,
                expected_status=snapshot.status,
                new_status=to_status,
                updated_by_id=request.acting_user.id,
                updated_at=now,
            )
            record = self._ledger_factory(session).append(
                NewHistoryEntry(
                    entity_type=kind,
                    entity_id=snapshot.id,
                    from_status=snapshot.status,
                    to_status=to_status,
                    user_id=request.acting_user.id,
                    created_at=now,
                    comment=request.comment,
                )
            )
            session.commit()
        except (ConcurrentModificationError, PersistenceFailureError) as exc:
            self._rollback(session)
            return self._fail(exc), None
        except SQLAlchemyError as exc:
            self._rollback(session)
            return self._fail(PersistenceFailureError("status_transition", str(exc))), None

        change = StatusChange(previous_status=snapshot.status, new_status=to_status)
        logger.info(
            "status_transition_committed",
            extra={
                "from_status": change.previous_status.value,
                "to_status": change.new_status.value,
                "role": role.value,
                "history_seq": record.seq,
            },
        )
        event = StatusChangedEvent(
            kind=kind,
            entity_id=snapshot.id,
            previous_status=change.previous_status,
            new_status=change.new_status,
            acting_user_id=request.acting_user.id,
            timestamp=now,
        )
        return TransitionOutcome.committed(change, history_entry=record), event

    def _reject(self, state: MutationState, error: InvoicingKernelError) -> TransitionOutcome:
        logger.info(
            "status_transition_rejected",
            extra={"state": state.value, "error_code": error.code, "reason": str(error)},
        )
        return TransitionOutcome.failed(state, error)

    def _fail(self, error: InvoicingKernelError) -> TransitionOutcome:
        logger.warning(
            "status_transition_failed",
            extra={"error_code": error.code, "reason": str(error)},
        )
        return TransitionOutcome.failed(MutationState.FAILED_PERSISTENCE, error)

    def _rollback(self, session: Session) -> None:
        try:
            session.rollback()
        except SQLAlchemyError:
            logger.error("transaction_rollback_failed", exc_info=True)

    def _publish(self, event: StatusChangedEvent) -> None:
        if self._publisher is None:
            return
        self._publisher.publish(event)
