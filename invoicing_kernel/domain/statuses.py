"""
Status vocabulary (``invoicing_kernel.domain.statuses``).

Responsibility
--------------
Closed status enumerations per entity kind, their Japanese display labels
and badge colors, plus the entity-kind and role enumerations used by the
transition policy.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Every status belongs to exactly one kind's enumeration.  Textually
  overlapping names (DRAFT, SENT, OVERDUE) are still distinct members and
  are never shared across kinds.
* Every entity starts life in DRAFT.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from invoicing_kernel.exceptions import InvalidRequestError, InvalidStatusError


class EntityKind(str, Enum):
    """Document kinds that carry a status workflow."""

    PURCHASE_ORDER = "PURCHASE_ORDER"
    INVOICE = "INVOICE"


class Role(str, Enum):
    """Acting-user roles recognised by the transition policy."""

    CREATOR = "CREATOR"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    USER = "USER"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    SENT = "SENT"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    OVERDUE = "OVERDUE"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


Status = PurchaseOrderStatus | InvoiceStatus


@dataclass(frozen=True)
class StatusDisplay:
    """One row of the UI status listing."""

    value: str
    label: str
    color: str


_STATUS_ENUMS: dict[EntityKind, type[PurchaseOrderStatus] | type[InvoiceStatus]] = {
    EntityKind.PURCHASE_ORDER: PurchaseOrderStatus,
    EntityKind.INVOICE: InvoiceStatus,
}

# Members of different kinds compare equal as strings, so lookups are
# always scoped by kind first.
_LABELS: dict[EntityKind, dict[Status, str]] = {
    EntityKind.PURCHASE_ORDER: {
        PurchaseOrderStatus.DRAFT: "下書き",
        PurchaseOrderStatus.PENDING: "保留中",
        PurchaseOrderStatus.SENT: "送信済み",
        PurchaseOrderStatus.COMPLETED: "納品完了",
        PurchaseOrderStatus.REJECTED: "却下",
        PurchaseOrderStatus.OVERDUE: "期限超過",
    },
    EntityKind.INVOICE: {
        InvoiceStatus.DRAFT: "下書き",
        InvoiceStatus.SENT: "送信済み",
        InvoiceStatus.PAID: "支払済み",
        InvoiceStatus.OVERDUE: "期限超過",
        InvoiceStatus.CANCELLED: "キャンセル",
    },
}

_COLORS: dict[EntityKind, dict[Status, str]] = {
    EntityKind.PURCHASE_ORDER: {
        PurchaseOrderStatus.DRAFT: "gray",
        PurchaseOrderStatus.PENDING: "yellow",
        PurchaseOrderStatus.SENT: "blue",
        PurchaseOrderStatus.COMPLETED: "purple",
        PurchaseOrderStatus.REJECTED: "red",
        PurchaseOrderStatus.OVERDUE: "orange",
    },
    EntityKind.INVOICE: {
        InvoiceStatus.DRAFT: "gray",
        InvoiceStatus.SENT: "blue",
        InvoiceStatus.PAID: "green",
        InvoiceStatus.OVERDUE: "orange",
        InvoiceStatus.CANCELLED: "red",
    },
}


def status_enum(kind: EntityKind) -> type[PurchaseOrderStatus] | type[InvoiceStatus]:
    """Return the status enumeration class for ``kind``."""
    return _STATUS_ENUMS[EntityKind(kind)]


def list_statuses(kind: EntityKind) -> tuple[Status, ...]:
    """All statuses of ``kind`` in declaration order."""
    return tuple(status_enum(kind))


def is_valid(kind: EntityKind, candidate: object) -> bool:
    """
    True if ``candidate`` names a status of ``kind``.

    Accepts the kind's own enum members or their string values.  A member
    of another kind's enumeration is rejected even when its text matches.
    Never raises.
    """
    try:
        parse_status(kind, candidate)
    except InvalidStatusError:
        return False
    return True


def parse_status(kind: EntityKind, candidate: object) -> Status:
    """
    Coerce ``candidate`` into a status member of ``kind``.

    Raises:
        InvalidStatusError: candidate is not part of the kind's vocabulary.
    """
    enum_cls = status_enum(kind)
    if isinstance(candidate, enum_cls):
        return candidate
    if isinstance(candidate, Enum) or not isinstance(candidate, str):
        raise InvalidStatusError(EntityKind(kind).value, candidate)
    try:
        return enum_cls(candidate)
    except ValueError:
        raise InvalidStatusError(EntityKind(kind).value, candidate) from None


def initial_status(kind: EntityKind) -> Status:
    """The status every new entity of ``kind`` is created with."""
    return status_enum(kind).DRAFT


def label(kind: EntityKind, status: Status | str) -> str:
    """Japanese display label, e.g. PURCHASE_ORDER/COMPLETED -> 納品完了."""
    return _LABELS[EntityKind(kind)][parse_status(kind, status)]


def color(kind: EntityKind, status: Status | str) -> str:
    """Badge color name for the status."""
    return _COLORS[EntityKind(kind)][parse_status(kind, status)]


def status_display(kind: EntityKind) -> tuple[StatusDisplay, ...]:
    kind = EntityKind(kind)
    return tuple(
        StatusDisplay(value=s.value, label=_LABELS[kind][s], color=_COLORS[kind][s])
        for s in list_statuses(kind)
    )


def parse_entity_kind(candidate: object) -> EntityKind:
    """
    Raises:
        InvalidRequestError: candidate is not a known entity kind.
    """
    if isinstance(candidate, EntityKind):
        return candidate
    try:
        return EntityKind(candidate)
    except ValueError:
        raise InvalidRequestError(
            "kind", f"unknown entity kind {candidate!r}"
        ) from None


def parse_role(candidate: object) -> Role:
    """
    Raises:
        InvalidRequestError: candidate is not a known role.
    """
    if isinstance(candidate, Role):
        return candidate
    try:
        return Role(candidate)
    except ValueError:
        raise InvalidRequestError(
            "actingUser.role", f"unknown role {candidate!r}"
        ) from None
