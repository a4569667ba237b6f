"""
Module: invoicing_kernel.selectors.status_history_selector
Responsibility: Read side of the status history ledger: display order
    (newest first), audit-replay order (oldest first), and chain
    verification against the document's current status.
Architecture position: Kernel > Selectors.

Invariants verified:
    - The first entry's from_status is the kind's initial status (DRAFT).
    - Each later entry's from_status equals the previous entry's to_status.
    - The last entry's to_status equals the document's current status
      (or, with no entries, the document is still in DRAFT).

Failure modes:
    - EntityNotFoundError when verifying a document that does not exist.
    - HistoryChainBrokenError at the first position that breaks the chain.
"""

from __future__ import annotations

from sqlalchemy import select

from invoicing_kernel.domain.dtos import StatusHistoryRecord
from invoicing_kernel.domain.statuses import EntityKind, initial_status
from invoicing_kernel.exceptions import EntityNotFoundError, HistoryChainBrokenError
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.documents import DOCUMENT_MODELS
from invoicing_kernel.models.status_history import StatusHistoryEntry
from invoicing_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.status_history")


class StatusHistorySelector(BaseSelector):
    """Queries over StatusHistoryEntry rows for one document."""

    def _entries(
        self,
        kind: EntityKind,
        entity_id: str,
        newest_first: bool,
    ) -> list[StatusHistoryRecord]:
        if newest_first:
            order = (StatusHistoryEntry.created_at.desc(), StatusHistoryEntry.seq.desc())
        else:
            order = (StatusHistoryEntry.created_at.asc(), StatusHistoryEntry.seq.asc())
        rows = self.session.scalars(
            select(StatusHistoryEntry)
            .where(
                StatusHistoryEntry.entity_type == EntityKind(kind).value,
                StatusHistoryEntry.entity_id == entity_id,
            )
            .order_by(*order)
        )
        return [StatusHistoryRecord.from_model(row) for row in rows]

    def for_display(self, kind: EntityKind, entity_id: str) -> list[StatusHistoryRecord]:
        """Newest first, as shown on the document's history panel."""
        return self._entries(kind, entity_id, newest_first=True)

    def for_audit(self, kind: EntityKind, entity_id: str) -> list[StatusHistoryRecord]:
        """Oldest first, for replaying the document's lifecycle."""
        return self._entries(kind, entity_id, newest_first=False)

    def latest(self, kind: EntityKind, entity_id: str) -> StatusHistoryRecord | None:
        entries = self._entries(kind, entity_id, newest_first=True)
        return entries[0] if entries else None

    def current_status(self, kind: EntityKind, entity_id: str) -> str | None:
        model = DOCUMENT_MODELS[EntityKind(kind)]
        return self.session.scalar(select(model.status).where(model.id == entity_id))

    def verify_chain(self, kind: EntityKind, entity_id: str) -> bool:
        """
        Check that the history replays from DRAFT to the current status.

        Returns:
            True when the chain is intact.

        Raises:
            EntityNotFoundError: the document does not exist.
            HistoryChainBrokenError: the first broken link.
        """
        kind = EntityKind(kind)
        current = self.current_status(kind, entity_id)
        if current is None:
            raise EntityNotFoundError(kind.value, entity_id)

        expected = initial_status(kind).value
        entries = self.for_audit(kind, entity_id)
        for position, entry in enumerate(entries):
            if entry.from_status.value != expected:
                self._broken(kind, entity_id, position, expected, entry.from_status.value)
            expected = entry.to_status.value

        if current != expected:
            self._broken(kind, entity_id, len(entries), expected, current)
        return True

    def _broken(
        self,
        kind: EntityKind,
        entity_id: str,
        position: int,
        expected: str,
        actual: str,
    ) -> None:
        logger.critical(
            "status_history_chain_broken",
            extra={
                "entity_type": kind.value,
                "entity_id": entity_id,
                "position": position,
                "expected": expected,
                "actual": actual,
            },
        )
        raise HistoryChainBrokenError(
            entity_type=kind.value,
            entity_id=entity_id,
            position=position,
            expected=expected,
            actual=actual,
        )
