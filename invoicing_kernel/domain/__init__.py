"""
Pure domain layer.

This module contains the status vocabulary, the transition policy and the
data transfer objects of a status mutation, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from invoicing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from invoicing_kernel.domain.dtos import (
    ActingUser,
    FailureKind,
    MutationState,
    NewHistoryEntry,
    StatusChange,
    StatusChangedEvent,
    StatusChangeRequest,
    StatusHistoryRecord,
    TransitionFailure,
    TransitionOutcome,
)
from invoicing_kernel.domain.statuses import (
    EntityKind,
    InvoiceStatus,
    PurchaseOrderStatus,
    Role,
    Status,
    StatusDisplay,
    color,
    initial_status,
    is_valid,
    label,
    list_statuses,
    parse_entity_kind,
    parse_role,
    parse_status,
    status_display,
)
from invoicing_kernel.domain.transitions import (
    Authorizer,
    RoleSetAuthorizer,
    TransitionPolicy,
    TransitionRule,
    default_policy,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Vocabulary
    "EntityKind",
    "InvoiceStatus",
    "PurchaseOrderStatus",
    "Role",
    "Status",
    "StatusDisplay",
    "color",
    "initial_status",
    "is_valid",
    "label",
    "list_statuses",
    "parse_entity_kind",
    "parse_role",
    "parse_status",
    "status_display",
    # Policy
    "Authorizer",
    "RoleSetAuthorizer",
    "TransitionPolicy",
    "TransitionRule",
    "default_policy",
    # DTOs
    "ActingUser",
    "FailureKind",
    "MutationState",
    "NewHistoryEntry",
    "StatusChange",
    "StatusChangedEvent",
    "StatusChangeRequest",
    "StatusHistoryRecord",
    "TransitionFailure",
    "TransitionOutcome",
]
