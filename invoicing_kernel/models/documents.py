"""
Module: invoicing_kernel.models.documents
Responsibility: ORM persistence for the two status-bearing documents,
    purchase orders and invoices.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/statuses.py only.

Invariants enforced:
    - status is drawn from the kind's vocabulary (CHECK constraint).
    - Monetary amounts are Numeric(18, 2); never float.
    - After creation, status changes only through StatusMutationService,
      which updates it with a compare-and-swap on the previous value.
"""

from datetime import date
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import ID_LENGTH, TrackedBase
from invoicing_kernel.domain.statuses import (
    EntityKind,
    InvoiceStatus,
    PurchaseOrderStatus,
)


def _status_check(enum_cls, table: str) -> CheckConstraint:
    allowed = ", ".join(f"'{s.value}'" for s in enum_cls)
    return CheckConstraint(f"status IN ({allowed})", name=f"ck_{table}_status")


class PurchaseOrder(TrackedBase):
    """A purchase order (発注書) issued to a vendor."""

    __tablename__ = "purchase_orders"

    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.PURCHASE_ORDER

    __table_args__ = (
        _status_check(PurchaseOrderStatus, "purchase_orders"),
        Index("idx_purchase_orders_status", "status"),
    )

    order_number: Mapped[str | None] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PurchaseOrderStatus.DRAFT.value,
    )

    vendor_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    issue_date: Mapped[date | None] = mapped_column(nullable=True)
    delivery_date: Mapped[date | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="JPY")

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.id} {self.status}>"


class Invoice(TrackedBase):
    """An invoice (請求書), optionally raised against a purchase order."""

    __tablename__ = "invoices"

    ENTITY_KIND: ClassVar[EntityKind] = EntityKind.INVOICE

    __table_args__ = (
        _status_check(InvoiceStatus, "invoices"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_purchase_order", "purchase_order_id"),
    )

    invoice_number: Mapped[str | None] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.DRAFT.value,
    )

    purchase_order_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("purchase_orders.id"),
        nullable=True,
    )

    issue_date: Mapped[date | None] = mapped_column(nullable=True)
    due_date: Mapped[date | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="JPY")

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Invoice {self.id} {self.status}>"


DOCUMENT_MODELS: dict[EntityKind, type[PurchaseOrder] | type[Invoice]] = {
    EntityKind.PURCHASE_ORDER: PurchaseOrder,
    EntityKind.INVOICE: Invoice,
}
