"""
Module: invoicing_kernel.models.status_history
Responsibility: ORM persistence for the append-only status history ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only; no UPDATE or DELETE (db/immutability.py).
    - seq is unique and strictly increasing, allocated by SequenceService.
      Entries are ordered by (created_at, seq).
    - For one entity, the first entry starts at DRAFT and each entry's
      from_status equals the previous entry's to_status (verified by
      StatusHistorySelector.verify_chain).

Audit relevance:
    StatusHistoryEntry IS the audit trail of document status changes.
"""

from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import ID_LENGTH, Base, UTCDateTime


class StatusHistoryEntry(Base):
    """One recorded status change of a purchase order or invoice."""

    __tablename__ = "status_history"

    __table_args__ = (
        Index("idx_status_history_entity", "entity_type", "entity_id", "created_at", "seq"),
    )

    # Monotonic sequence, breaks created_at ties
    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    # PURCHASE_ORDER | INVOICE
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)

    from_status: Mapped[str] = mapped_column(String(20), nullable=False)

    to_status: Mapped[str] = mapped_column(String(20), nullable=False)

    # Acting user
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Injected clock time, not a server default
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StatusHistoryEntry {self.entity_type}:{self.entity_id} "
            f"{self.from_status}->{self.to_status}>"
        )
