"""
EntityStore -- record store for status-bearing documents.

Responsibility:
    Finds purchase orders and invoices by primary key, creates them in
    their initial status, and performs the compare-and-swap status update
    the mutation service relies on.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Used by StatusMutationService; flush-only like every kernel service.

Invariants enforced:
    - New entities always start in DRAFT.
    - ``update_status_with_precondition`` issues
      ``UPDATE ... WHERE id = :id AND status = :expected``; zero affected
      rows means another mutation committed first.

Failure modes:
    - ConcurrentModificationError when the precondition matches no row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from invoicing_kernel.db.base import new_id
from invoicing_kernel.domain.statuses import (
    EntityKind,
    Status,
    initial_status,
    parse_status,
)
from invoicing_kernel.exceptions import ConcurrentModificationError
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.documents import DOCUMENT_MODELS
from invoicing_kernel.services.base import BaseService

logger = get_logger("services.entity_store")


@dataclass(frozen=True)
class EntitySnapshot:
    """The fields of a document the status workflow reads."""

    kind: EntityKind
    id: str
    status: Status


class EntityStore(BaseService):
    """Purchase-order and invoice persistence keyed by (kind, id)."""

    def __init__(self, session: Session):
        super().__init__(session)

    def find_by_id(self, kind: EntityKind, entity_id: str) -> EntitySnapshot | None:
        model = DOCUMENT_MODELS[kind]
        row = self.session.execute(
            select(model.id, model.status).where(model.id == entity_id)
        ).one_or_none()
        if row is None:
            return None
        return EntitySnapshot(kind=kind, id=row.id, status=parse_status(kind, row.status))

    def create(
        self,
        kind: EntityKind,
        created_by_id: str,
        entity_id: str | None = None,
        **fields: Any,
    ) -> EntitySnapshot:
        """
        Insert a new document in its initial status.

        ``fields`` are passed to the model (amounts, dates, numbers); a
        ``status`` field is rejected so that every entity starts in DRAFT.
        """
        if "status" in fields:
            raise ValueError("new entities always start in DRAFT; status cannot be set")

        model = DOCUMENT_MODELS[kind]
        status = initial_status(kind)
        entity = model(
            id=entity_id or new_id(),
            status=status.value,
            created_by_id=created_by_id,
            **fields,
        )
        self.session.add(entity)
        self.session.flush()

        logger.info(
            "entity_created",
            extra={
                "entity_type": kind.value,
                "entity_id": entity.id,
                "status": status.value,
            },
        )
        return EntitySnapshot(kind=kind, id=entity.id, status=status)

    def update_status_with_precondition(
        self,
        kind: EntityKind,
        entity_id: str,
        expected_status: Status,
        new_status: Status,
        updated_by_id: str,
        updated_at: datetime,
    ) -> None:
        """
        Compare-and-swap the status column.

        Raises:
            ConcurrentModificationError: the row no longer has
                ``expected_status`` (or no longer exists).
        """
        model = DOCUMENT_MODELS[kind]
        result = self.session.execute(
            update(model)
            .where(model.id == entity_id, model.status == expected_status.value)
            .values(
                status=new_status.value,
                updated_by_id=updated_by_id,
                updated_at=updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "status_compare_and_swap_missed",
                extra={
                    "entity_type": kind.value,
                    "entity_id": entity_id,
                    "expected_status": expected_status.value,
                },
            )
            raise ConcurrentModificationError(
                entity_type=kind.value,
                entity_id=entity_id,
                expected_status=expected_status.value,
            )
