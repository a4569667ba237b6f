"""
StatusLedger -- append-only status history.

Responsibility:
    Appends one history entry per committed status change and exposes an
    entity's history as a lazy, restartable sequence.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by StatusMutationService inside its transaction; read by
    StatusHistorySelector.

Invariants enforced:
    - Append-only: no update or delete path exists here, and the ORM
      listeners in db/immutability.py reject one if attempted elsewhere.
    - Entries are ordered by (created_at, seq); seq comes from
      SequenceService and is strictly increasing.
    - append() flushes but never commits; the caller owns the transaction.

Failure modes:
    - PersistenceFailureError wrapping any SQLAlchemyError raised while
      allocating the sequence or inserting the row.

Audit relevance:
    Every append emits a ``status_history_appended`` log record carrying
    the entity, both statuses and the acting user.
"""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from invoicing_kernel.db.base import as_utc
from invoicing_kernel.db.immutability import register_immutability_listeners
from invoicing_kernel.domain.dtos import NewHistoryEntry, StatusHistoryRecord
from invoicing_kernel.domain.statuses import EntityKind
from invoicing_kernel.exceptions import PersistenceFailureError
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.status_history import StatusHistoryEntry
from invoicing_kernel.services.base import BaseService
from invoicing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.status_ledger")


class HistoryView:
    """
    Lazy view over one entity's history.

    Each iteration issues a fresh query streamed in batches, so a view can
    be iterated any number of times and always reflects what the session
    can currently see.  Ascending (oldest first) unless ``descending()``
    was requested.
    """

    def __init__(
        self,
        session: Session,
        entity_type: EntityKind,
        entity_id: str,
        *,
        newest_first: bool = False,
        batch_size: int = 100,
    ):
        self._session = session
        self._entity_type = EntityKind(entity_type)
        self._entity_id = entity_id
        self._newest_first = newest_first
        self._batch_size = batch_size

    def ascending(self) -> HistoryView:
        return HistoryView(
            self._session, self._entity_type, self._entity_id,
            newest_first=False, batch_size=self._batch_size,
        )

    def descending(self) -> HistoryView:
        return HistoryView(
            self._session, self._entity_type, self._entity_id,
            newest_first=True, batch_size=self._batch_size,
        )

    @property
    def newest_first(self) -> bool:
        return self._newest_first

    def _filter(self, stmt):
        return stmt.where(
            StatusHistoryEntry.entity_type == self._entity_type.value,
            StatusHistoryEntry.entity_id == self._entity_id,
        )

    def __iter__(self) -> Iterator[StatusHistoryRecord]:
        if self._newest_first:
            order = (StatusHistoryEntry.created_at.desc(), StatusHistoryEntry.seq.desc())
        else:
            order = (StatusHistoryEntry.created_at.asc(), StatusHistoryEntry.seq.asc())
        stmt = (
            self._filter(select(StatusHistoryEntry))
            .order_by(*order)
            .execution_options(yield_per=self._batch_size)
        )
        for model in self._session.scalars(stmt):
            yield StatusHistoryRecord.from_model(model)

    def count(self) -> int:
        return self._session.scalar(
            self._filter(select(func.count()).select_from(StatusHistoryEntry))
        ) or 0

    def __repr__(self) -> str:
        order = "desc" if self._newest_first else "asc"
        return f"<HistoryView {self._entity_type.value}:{self._entity_id} {order}>"


class StatusLedger(BaseService):
    """
    Append-only status history ledger.

    Contract:
        ``append`` writes exactly one row per call within the caller's
        transaction.  ``list_for`` never writes.
    """

    def __init__(self, session: Session, sequence_service: SequenceService | None = None):
        super().__init__(session)
        self._sequence_service = sequence_service or SequenceService(session)
        register_immutability_listeners()

    def append(self, entry: NewHistoryEntry) -> StatusHistoryRecord:
        """
        Persist ``entry`` and return the stored record.

        Raises:
            PersistenceFailureError: the store rejected the sequence
                allocation or the insert.
        """
        try:
            seq = self._sequence_service.next_value(SequenceService.STATUS_HISTORY)
            model = StatusHistoryEntry(
                seq=seq,
                entity_type=EntityKind(entry.entity_type).value,
                entity_id=entry.entity_id,
                from_status=entry.from_status.value,
                to_status=entry.to_status.value,
                user_id=entry.user_id,
                comment=entry.comment,
                created_at=as_utc(entry.created_at),
            )
            self.session.add(model)
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "status_history_append_failed",
                extra={
                    "entity_type": EntityKind(entry.entity_type).value,
                    "entity_id": entry.entity_id,
                },
                exc_info=True,
            )
            raise PersistenceFailureError("status_history_append", str(exc)) from exc

        record = StatusHistoryRecord.from_model(model)
        logger.info(
            "status_history_appended",
            extra={
                "history_id": record.id,
                "seq": record.seq,
                "entity_type": record.entity_type.value,
                "entity_id": record.entity_id,
                "from_status": record.from_status.value,
                "to_status": record.to_status.value,
                "user_id": record.user_id,
            },
        )
        return record

    def list_for(self, entity_type: EntityKind, entity_id: str) -> HistoryView:
        """Lazy, restartable view of the entity's history (oldest first)."""
        return HistoryView(self.session, entity_type, entity_id)
