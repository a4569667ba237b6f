"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow through a status
    mutation: StatusChangeRequest (input), StatusChange (success value),
    TransitionFailure (failure value), TransitionOutcome (what the mutation
    service returns), NewHistoryEntry / StatusHistoryRecord (ledger
    persistence boundary) and StatusChangedEvent (post-commit notification).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ``StatusHistoryRecord.from_model()`` is a
    boundary converter invoked only from the service and selector layers.

Failure modes:
    - InvalidRequestError from ``StatusChangeRequest.from_payload`` for
      malformed wire input.

Data flow:
    payload -> StatusChangeRequest -> (policy) -> NewHistoryEntry
        -> StatusHistoryRecord -> TransitionOutcome -> payload
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from invoicing_kernel.domain.statuses import (
    EntityKind,
    Role,
    Status,
    parse_entity_kind,
    parse_role,
    parse_status,
)
from invoicing_kernel.exceptions import InvalidRequestError, InvoicingKernelError

if TYPE_CHECKING:
    from invoicing_kernel.models.status_history import StatusHistoryEntry


# =========================================================================
# Request
# =========================================================================


@dataclass(frozen=True)
class ActingUser:
    """The authenticated user performing a status change."""

    id: str
    role: Role


def _require_text(payload: Mapping[str, Any], key: str, path: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(path, "must be a non-empty string")
    return value


@dataclass(frozen=True)
class StatusChangeRequest:
    """
    A request to move one entity to a new status.

    ``to_status`` is kept as supplied (member or raw string); the mutation
    service validates it against the kind's vocabulary so that an unknown
    value is reported as INVALID_STATUS rather than a malformed request.
    """

    kind: EntityKind
    entity_id: str
    to_status: Status | str
    acting_user: ActingUser
    comment: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StatusChangeRequest:
        """
        Parse ``{kind, entityId, toStatus, actingUser: {id, role}, comment?}``.

        Raises:
            InvalidRequestError: a field is missing or has the wrong shape.
        """
        if not isinstance(payload, Mapping):
            raise InvalidRequestError("payload", "must be an object")

        kind = parse_entity_kind(payload.get("kind"))
        entity_id = _require_text(payload, "entityId", "entityId")
        to_status = _require_text(payload, "toStatus", "toStatus")

        user = payload.get("actingUser")
        if not isinstance(user, Mapping):
            raise InvalidRequestError("actingUser", "must be an object")
        user_id = _require_text(user, "id", "actingUser.id")
        role = parse_role(user.get("role"))

        comment = payload.get("comment")
        if comment is not None and not isinstance(comment, str):
            raise InvalidRequestError("comment", "must be a string when present")

        return cls(
            kind=kind,
            entity_id=entity_id,
            to_status=to_status,
            acting_user=ActingUser(id=user_id, role=role),
            comment=comment,
        )


# =========================================================================
# Results
# =========================================================================


@dataclass(frozen=True)
class StatusChange:
    """A committed status change."""

    previous_status: Status
    new_status: Status

    def to_payload(self) -> dict[str, str]:
        return {
            "previousStatus": self.previous_status.value,
            "newStatus": self.new_status.value,
        }


class FailureKind(str, Enum):
    """Machine-readable failure tags returned to callers."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATUS = "INVALID_STATUS"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    INVALID_REQUEST = "INVALID_REQUEST"


_HTTP_STATUS: Mapping[FailureKind, int] = MappingProxyType({
    FailureKind.NOT_FOUND: 404,
    FailureKind.INVALID_STATUS: 400,
    FailureKind.ILLEGAL_TRANSITION: 403,
    FailureKind.CONCURRENT_MODIFICATION: 409,
    FailureKind.PERSISTENCE_FAILURE: 500,
    FailureKind.INVALID_REQUEST: 400,
})


@dataclass(frozen=True)
class TransitionFailure:
    """A rejected or failed status change, as a value."""

    kind: FailureKind
    message: str
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    error: InvoicingKernelError | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_error(cls, error: InvoicingKernelError) -> TransitionFailure:
        """
        Wrap a kernel exception whose ``code`` is one of the failure tags.

        Raises:
            ValueError: the error's code has no failure tag.
        """
        return cls(
            kind=FailureKind(error.code),
            message=str(error),
            details=MappingProxyType(dict(error.details())),
            error=error,
        )

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class MutationState(str, Enum):
    """Lifecycle of a single mutation attempt."""

    PENDING_VALIDATION = "pending_validation"
    REJECTED_NOT_FOUND = "rejected_not_found"
    REJECTED_INVALID_TRANSITION = "rejected_invalid_transition"
    APPLYING = "applying"
    COMMITTED = "committed"
    FAILED_PERSISTENCE = "failed_persistence"


@dataclass(frozen=True)
class TransitionOutcome:
    """
    What ``StatusMutationService.transition`` returns.

    Exactly one of ``change`` (state COMMITTED) or ``failure`` is set.
    """

    state: MutationState
    change: StatusChange | None = None
    failure: TransitionFailure | None = None
    history_entry: StatusHistoryRecord | None = None

    def __post_init__(self) -> None:
        if (self.change is None) == (self.failure is None):
            raise ValueError("TransitionOutcome needs exactly one of change or failure")

    @classmethod
    def committed(
        cls,
        change: StatusChange,
        history_entry: StatusHistoryRecord | None = None,
    ) -> TransitionOutcome:
        return cls(
            state=MutationState.COMMITTED,
            change=change,
            history_entry=history_entry,
        )

    @classmethod
    def failed(cls, state: MutationState, error: InvoicingKernelError) -> TransitionOutcome:
        return cls(state=state, failure=TransitionFailure.from_error(error))

    @property
    def success(self) -> bool:
        return self.change is not None

    def unwrap(self) -> StatusChange:
        """Return the change, or re-raise the failure's underlying error."""
        if self.change is not None:
            return self.change
        if self.failure.error is not None:
            raise self.failure.error
        raise RuntimeError(self.failure.message)

    def to_payload(self) -> dict[str, Any]:
        if self.change is not None:
            return self.change.to_payload()
        return self.failure.to_payload()


# =========================================================================
# Ledger boundary
# =========================================================================


@dataclass(frozen=True)
class NewHistoryEntry:
    """A history entry about to be appended (no id or sequence yet)."""

    entity_type: EntityKind
    entity_id: str
    from_status: Status
    to_status: Status
    user_id: str
    created_at: datetime
    comment: str | None = None


@dataclass(frozen=True)
class StatusHistoryRecord:
    """A persisted, immutable history entry."""

    id: str
    seq: int
    entity_type: EntityKind
    entity_id: str
    from_status: Status
    to_status: Status
    user_id: str
    created_at: datetime
    comment: str | None = None

    @classmethod
    def from_model(cls, model: StatusHistoryEntry) -> StatusHistoryRecord:
        kind = EntityKind(model.entity_type)
        return cls(
            id=model.id,
            seq=model.seq,
            entity_type=kind,
            entity_id=model.entity_id,
            from_status=parse_status(kind, model.from_status),
            to_status=parse_status(kind, model.to_status),
            user_id=model.user_id,
            created_at=model.created_at,
            comment=model.comment,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entityType": self.entity_type.value,
            "entityId": self.entity_id,
            "fromStatus": self.from_status.value,
            "toStatus": self.to_status.value,
            "userId": self.user_id,
            "comment": self.comment,
            "createdAt": self.created_at.isoformat(),
        }


# =========================================================================
# Notification
# =========================================================================


@dataclass(frozen=True)
class StatusChangedEvent:
    """Published after a status change commits."""

    kind: EntityKind
    entity_id: str
    previous_status: Status
    new_status: Status
    acting_user_id: str
    timestamp: datetime

    def to_payload(self) -> dict[str, str]:
        return {
            "kind": self.kind.value,
            "entityId": self.entity_id,
            "previousStatus": self.previous_status.value,
            "newStatus": self.new_status.value,
            "actingUserId": self.acting_user_id,
            "timestamp": self.timestamp.isoformat(),
        }
