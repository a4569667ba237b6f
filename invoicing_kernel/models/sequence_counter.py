"""
Module: invoicing_kernel.models.sequence_counter
Responsibility: ORM persistence for named monotonic sequence counters.
Architecture position: Kernel > Models.  May import from db/base.py only.
    Allocation logic lives in services/sequence_service.py.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "status_history")
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
